from typing import Any, cast

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from .config import ServiceSettings
from .tracing import configure_tracing

_UNMETERED_ROUTES = ["/health", "/metrics"]


def instrument_app(app: FastAPI, settings: ServiceSettings) -> None:
    """Attach settings to the app and publish ``/metrics`` when metrics are on.

    Request histograms keep exact status codes so 502 gateway failures and
    503 unconfigured-gateway responses are counted apart.
    """

    state = cast(Any, app.state)
    state.settings = settings
    if not settings.enable_metrics:
        return

    instrumentator = Instrumentator(should_group_status_codes=False, excluded_handlers=_UNMETERED_ROUTES)
    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint="/metrics", include_in_schema=False)


def build_app(settings: ServiceSettings, **fastapi_kwargs: Any) -> FastAPI:
    app = FastAPI(title=settings.app_name, version="1.0.0", **fastapi_kwargs)
    instrument_app(app, settings)
    configure_tracing(app, settings)
    return app
