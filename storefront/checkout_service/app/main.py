import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from httpx import AsyncClient

from storefront.common import (
    DEFAULT_APP_NAME,
    EventProducer,
    ServiceSettings,
    build_app,
    configure_logging,
    create_schema,
    dispose_engines,
    get_session_factory,
    resolve_database_url,
)

from .api.cart import router as cart_router
from .api.categories import router as categories_router
from .api.coupons import router as coupons_router
from .api.health import router as health_router
from .api.orders import router as orders_router
from .api.payments import router as payments_router
from .api.products import router as products_router
from .api.settings import router as settings_router
from .api.users import router as users_router
from .events import OrderEventPublisher
from .models import Base
from .payments import RazorpayGateway
from .services import CheckoutError

SERVICE_NAME = "Checkout Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./checkout_service.db"

logger = logging.getLogger(__name__)


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


async def _checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": exc.message})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": _describe_validation_error(exc), "detail": jsonable_encoder(exc.errors())},
    )


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Checkout Service FastAPI application."""

    resolved_settings = settings or ServiceSettings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    session_factory = get_session_factory(database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        producer: EventProducer | None = None
        http_client: AsyncClient | None = None
        app.state.session_factory = session_factory
        try:
            if resolved_settings.auto_create_schema:
                await create_schema(database_url, Base.metadata)
            producer = EventProducer(
                source=resolved_settings.app_name,
                bootstrap_servers=resolved_settings.kafka_bootstrap_servers,
            )
            await producer.connect()
            app.state.event_producer = producer
            app.state.event_publisher = OrderEventPublisher(producer)
            http_client = AsyncClient(timeout=resolved_settings.payment_timeout_seconds)
            app.state.payment_gateway = RazorpayGateway(
                key_id=resolved_settings.razorpay_key_id,
                key_secret=resolved_settings.razorpay_key_secret,
                api_url=resolved_settings.razorpay_api_url,
                client=http_client,
            )
            if not app.state.payment_gateway.live:
                logger.warning("Razorpay credentials missing; gateway orders will be simulated")
            yield
        finally:
            app.state.session_factory = None  # type: ignore[assignment]
            app.state.event_producer = None
            app.state.event_publisher = None
            app.state.payment_gateway = None
            if http_client is not None:
                await http_client.aclose()
            if producer is not None:
                await producer.close()
            await dispose_engines()

    app = build_app(resolved_settings, lifespan=lifespan)
    app.add_exception_handler(CheckoutError, _checkout_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.include_router(health_router)
    app.include_router(categories_router)
    app.include_router(products_router)
    app.include_router(cart_router)
    app.include_router(coupons_router)
    app.include_router(payments_router)
    app.include_router(orders_router)
    app.include_router(settings_router)
    app.include_router(users_router)
    return app


app = create_app()
