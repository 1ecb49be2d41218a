"""Shared utilities for the storefront services."""

from .config import DEFAULT_APP_NAME, ServiceSettings, get_settings
from .instrumentation import build_app, instrument_app
from .logging import configure_logging
from .database import (
    create_engine,
    create_schema,
    dispose_engines,
    get_session_factory,
    lifespan_session,
    resolve_database_url,
)
from .events import (
    ORDER_CREATED_TOPIC,
    ORDER_STATUS_CHANGED_TOPIC,
    EventConsumer,
    EventProducer,
)

__all__ = [
    "ServiceSettings",
    "get_settings",
    "build_app",
    "instrument_app",
    "configure_logging",
    "DEFAULT_APP_NAME",
    "create_engine",
    "create_schema",
    "dispose_engines",
    "get_session_factory",
    "lifespan_session",
    "resolve_database_url",
    "EventProducer",
    "EventConsumer",
    "ORDER_CREATED_TOPIC",
    "ORDER_STATUS_CHANGED_TOPIC",
]
