"""OpenTelemetry wiring for the storefront services.

Tracing is opt-in (``enable_tracing``). The tracer provider is process wide:
the first service to enable tracing installs it and later apps reuse it, so
running the checkout and notification apps in one process (as the tests do)
yields a single provider. Outgoing httpx calls to Razorpay and FCM are traced
through the same provider.
"""

import logging
from typing import Any, cast

from fastapi import FastAPI

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (  # type: ignore[attr-defined]
    OTLPSpanExporter as OTLPGrpcExporter,
)
from opentelemetry.exporter.otlp.proto.http.trace_exporter import (  # type: ignore[attr-defined]
    OTLPSpanExporter as OTLPHttpExporter,
)
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, SpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.trace import TracerProvider as APITracerProvider

from .config import ServiceSettings

_LOGGER = logging.getLogger(__name__)
_UNTRACED_ROUTES = "health,metrics"
_httpx_traced = False


def current_trace_ids() -> tuple[str, str] | None:
    """Hex trace and span ids of the active span, or None outside a recorded span."""

    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x"), format(span_context.span_id, "016x")


def is_traced(app: FastAPI) -> bool:
    return bool(getattr(app.state, "tracing_enabled", False))


def _span_exporter(settings: ServiceSettings) -> SpanExporter | None:
    endpoint = settings.tracing_endpoint
    if endpoint is None:
        return None
    if settings.tracing_protocol == "grpc":
        return OTLPGrpcExporter(endpoint=endpoint, insecure=settings.tracing_insecure)
    return OTLPHttpExporter(endpoint=endpoint)


def _storefront_provider(settings: ServiceSettings) -> APITracerProvider:
    installed = trace.get_tracer_provider()
    if isinstance(installed, TracerProvider):
        return installed

    provider = TracerProvider(
        resource=Resource.create(
            {
                "service.name": settings.app_name,
                "service.namespace": "storefront",
                "deployment.environment": settings.environment,
            }
        ),
        sampler=ParentBased(TraceIdRatioBased(settings.tracing_sample_rate)),
    )
    exporter = _span_exporter(settings)
    if exporter is None:
        _LOGGER.warning("No OTLP endpoint configured for %s; spans stay in process", settings.app_name)
    else:
        provider.add_span_processor(BatchSpanProcessor(exporter))

    try:
        trace.set_tracer_provider(provider)
    except RuntimeError:  # pragma: no cover - another library installed a provider first
        return trace.get_tracer_provider()
    return provider


def _trace_gateway_calls(provider: APITracerProvider) -> None:
    global _httpx_traced
    if _httpx_traced:
        return
    try:
        HTTPXClientInstrumentor().instrument(tracer_provider=provider)
    except Exception as exc:  # pragma: no cover - httpx instrumentation is optional
        _LOGGER.warning("Outgoing HTTP calls will not be traced: %s", exc)
        return
    _httpx_traced = True


def configure_tracing(app: FastAPI, settings: ServiceSettings) -> None:
    """Instrument ``app`` (once) when tracing is enabled in settings."""

    if not settings.enable_tracing or is_traced(app):
        return

    provider = _storefront_provider(settings)
    FastAPIInstrumentor().instrument_app(app, tracer_provider=provider, excluded_urls=_UNTRACED_ROUTES)
    cast(Any, app.state).tracing_enabled = True
    _trace_gateway_calls(provider)
