import logging

import pytest
from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider

from storefront.common import ServiceSettings, build_app, configure_logging
from storefront.common.logging import ServiceContextFilter
from storefront.common.tracing import configure_tracing, current_trace_ids, is_traced


def _settings(name: str, *, tracing: bool) -> ServiceSettings:
    return ServiceSettings(enable_tracing=tracing, enable_metrics=False, app_name=name)


class TestTracingInstrumentation:
    def test_checkout_and_notification_apps_share_one_provider(self) -> None:
        checkout = build_app(_settings("Checkout Tracing Test", tracing=True))
        provider = trace.get_tracer_provider()
        notification = build_app(_settings("Notification Tracing Test", tracing=True))

        assert isinstance(provider, TracerProvider)
        assert trace.get_tracer_provider() is provider
        assert is_traced(checkout)
        assert is_traced(notification)

    def test_configure_tracing_is_idempotent_per_app(self) -> None:
        settings = _settings("Idempotent Tracing Test", tracing=True)
        app = build_app(settings)
        middleware_count = len(app.user_middleware)

        configure_tracing(app, settings)

        assert len(app.user_middleware) == middleware_count

    def test_tracing_disabled_leaves_app_uninstrumented(self) -> None:
        app = build_app(_settings("Untraced Service", tracing=False))
        assert not is_traced(app)

    def test_trace_ids_only_inside_a_span(self) -> None:
        build_app(_settings("Trace Id Test", tracing=True))
        assert current_trace_ids() is None
        with trace.get_tracer(__name__).start_as_current_span("checkout"):
            ids = current_trace_ids()
        assert ids is not None
        trace_id, span_id = ids
        assert (len(trace_id), len(span_id)) == (32, 16)


def test_log_records_carry_service_and_trace_context(caplog: pytest.LogCaptureFixture) -> None:
    settings = _settings("Notification Logging Test", tracing=True)
    build_app(settings)
    configure_logging(settings)
    logger = logging.getLogger("storefront.trace-test")
    caplog.clear()

    with caplog.at_level(logging.INFO):
        logger.info("outside span")
        with trace.get_tracer(__name__).start_as_current_span("dispatch"):
            logger.info("inside span")

    outside = next(record for record in caplog.records if record.message == "outside span")
    inside = next(record for record in caplog.records if record.message == "inside span")
    assert getattr(outside, "trace_id", "-") == "-"
    assert len(getattr(inside, "trace_id", "-")) == 32
    assert len(getattr(inside, "span_id", "-")) == 16
    assert getattr(inside, "service", None)


def test_configure_logging_installs_single_context_filter() -> None:
    settings = _settings("Filter Test", tracing=False)
    configure_logging(settings)
    configure_logging(settings)
    filters = [f for f in logging.getLogger().filters if isinstance(f, ServiceContextFilter)]
    assert len(filters) == 1
