"""Dependency helpers for the checkout service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.common import ServiceSettings, lifespan_session

from .payments import RazorpayGateway
from .repository import (
    AccountRepository,
    CategoryRepository,
    CouponRepository,
    OrderRepository,
    ProductRepository,
    SettingsRepository,
)
from .services import OrderWriter


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """Yield an AsyncSession for the current request lifecycle."""

    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        yield session


def get_settings(request: Request) -> ServiceSettings:
    return request.app.state.settings


def get_product_repository(session: AsyncSession = Depends(get_session)) -> ProductRepository:
    return ProductRepository(session)


def get_category_repository(session: AsyncSession = Depends(get_session)) -> CategoryRepository:
    return CategoryRepository(session)


def get_coupon_repository(session: AsyncSession = Depends(get_session)) -> CouponRepository:
    return CouponRepository(session)


def get_order_repository(session: AsyncSession = Depends(get_session)) -> OrderRepository:
    return OrderRepository(session)


def get_settings_repository(session: AsyncSession = Depends(get_session)) -> SettingsRepository:
    return SettingsRepository(session)


def get_account_repository(session: AsyncSession = Depends(get_session)) -> AccountRepository:
    return AccountRepository(session)


def get_event_publisher(request: Request) -> Any:
    return getattr(request.app.state, "event_publisher", None)


def get_payment_gateway(request: Request) -> RazorpayGateway:
    return request.app.state.payment_gateway


def get_order_writer(
    request: Request,
    settings: ServiceSettings = Depends(get_settings),
    event_publisher: Any = Depends(get_event_publisher),
) -> OrderWriter:
    """Order writes run their own transaction instead of the request session."""

    return OrderWriter(
        request.app.state.session_factory,
        currency=settings.currency,
        total_tolerance=settings.order_total_tolerance,
        low_stock_threshold=settings.low_inventory_threshold,
        event_publisher=event_publisher,
    )
