import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from httpx import AsyncClient

from storefront.common import (
    DEFAULT_APP_NAME,
    ORDER_CREATED_TOPIC,
    ORDER_STATUS_CHANGED_TOPIC,
    EventConsumer,
    ServiceSettings,
    build_app,
    configure_logging,
    create_schema,
    dispose_engines,
    get_session_factory,
    resolve_database_url,
)

from .api.health import router as health_router
from .api.notifications import router as notifications_router
from .api.profiles import router as profiles_router
from .api.templates import email_router as email_templates_router
from .api.templates import notification_router as notification_templates_router
from .api.tokens import router as tokens_router
from .event_handlers import NotificationEventHandler
from .models import Base
from .providers import (
    EmailProvider,
    FirebasePushProvider,
    InMemoryEmailProvider,
    InMemoryPushProvider,
    PushProvider,
    SmtpEmailProvider,
    load_fcm_credentials,
)
from .services import NotificationDispatcher

SERVICE_NAME = "Notification Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./notification_service.db"

logger = logging.getLogger(__name__)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Missing required fields", "detail": jsonable_encoder(exc.errors())},
    )


def _build_push_provider(settings: ServiceSettings, client: AsyncClient) -> PushProvider:
    has_key = settings.fcm_credentials_file or (settings.fcm_client_email and settings.fcm_private_key)
    if settings.fcm_project_id and has_key:
        credentials = load_fcm_credentials(
            project_id=settings.fcm_project_id,
            client_email=settings.fcm_client_email,
            private_key=settings.fcm_private_key,
            credentials_file=settings.fcm_credentials_file,
        )
        return FirebasePushProvider(
            client=client,
            project_id=settings.fcm_project_id,
            credentials=credentials,
            api_url=settings.fcm_api_url,
        )
    logger.warning("FCM credentials missing; push notifications are recorded in memory only")
    return InMemoryPushProvider()


def _build_email_provider(settings: ServiceSettings) -> EmailProvider:
    if settings.smtp_host:
        return SmtpEmailProvider(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            sender=settings.email_from,
        )
    logger.warning("SMTP host missing; emails are recorded in memory only")
    return InMemoryEmailProvider()


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Notification Service FastAPI application."""

    resolved_settings = settings or ServiceSettings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    session_factory = get_session_factory(database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        http_client: AsyncClient | None = None
        event_consumer: EventConsumer | None = None
        app.state.session_factory = session_factory
        try:
            if resolved_settings.auto_create_schema:
                await create_schema(database_url, Base.metadata)
            http_client = AsyncClient(timeout=resolved_settings.push_timeout_seconds)
            dispatcher = NotificationDispatcher(
                session_factory,
                push_provider=_build_push_provider(resolved_settings, http_client),
                email_provider=_build_email_provider(resolved_settings),
            )
            app.state.dispatcher = dispatcher
            event_handler = NotificationEventHandler(session_factory, dispatcher=dispatcher)
            event_consumer = EventConsumer([ORDER_CREATED_TOPIC, ORDER_STATUS_CHANGED_TOPIC], event_handler.handle)
            await event_consumer.start()
            app.state.notification_event_consumer = event_consumer
            app.state.notification_event_handler = event_handler
            yield
        finally:
            app.state.session_factory = None  # type: ignore[assignment]
            app.state.dispatcher = None
            app.state.notification_event_consumer = None
            app.state.notification_event_handler = None
            if event_consumer is not None:
                await event_consumer.stop()
            if http_client is not None:
                await http_client.aclose()
            await dispose_engines()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.include_router(health_router)
    app.include_router(notifications_router)
    app.include_router(tokens_router)
    app.include_router(email_templates_router)
    app.include_router(notification_templates_router)
    app.include_router(profiles_router)
    return app


app = create_app()
