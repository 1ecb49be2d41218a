"""Dependency helpers for the notification service."""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.common import lifespan_session

from .repository import NotificationRepository
from .services import NotificationDispatcher


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory: async_sessionmaker[AsyncSession] = request.app.state.session_factory
    async with lifespan_session(session_factory) as session:
        yield session


def get_repository(session: AsyncSession = Depends(get_session)) -> NotificationRepository:
    return NotificationRepository(session)


def get_dispatcher(request: Request) -> NotificationDispatcher:
    return request.app.state.dispatcher
