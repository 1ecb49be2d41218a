from collections.abc import Callable
from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from storefront.common import ServiceSettings, dispose_engines
from storefront.checkout_service.app.main import create_app as create_checkout_app
from storefront.notification_service.app.main import create_app as create_notification_app


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "app_factory",
    [
        create_checkout_app,
        create_notification_app,
    ],
)
async def test_health_endpoint_returns_ok(app_factory: Callable[..., FastAPI], tmp_path) -> None:
    settings = ServiceSettings(
        enable_metrics=False,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'health.db'}",
    )
    app = app_factory(settings)

    async with lifespan(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    await dispose_engines()


@pytest.mark.parametrize(
    ("app_factory", "expected_title"),
    [
        (create_checkout_app, "Checkout Service"),
        (create_notification_app, "Notification Service"),
    ],
)
def test_default_app_name_is_replaced_by_service_name(app_factory, expected_title: str) -> None:
    app = app_factory(ServiceSettings(enable_metrics=False, enable_tracing=False))
    assert app.title == expected_title
    assert app.state.settings.app_name == expected_title


@pytest.mark.asyncio
async def test_checkout_metrics_are_exposed_when_enabled(tmp_path) -> None:
    settings = ServiceSettings(
        enable_metrics=True,
        enable_tracing=False,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'metrics.db'}",
    )
    app = create_checkout_app(settings)

    async with lifespan(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            await client.get("/health")
            response = await client.get("/metrics")
    await dispose_engines()

    assert response.status_code == 200
    assert "checkout_orders_created_total" in response.text
    assert 'handler="/health"' not in response.text


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with app.router.lifespan_context(app):
        yield
