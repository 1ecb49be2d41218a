"""Async SQLAlchemy plumbing for the storefront services.

Each service owns one database URL. Engines and session factories are cached
per URL so dependencies, event handlers and background dispatch share a pool.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import MetaData, event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import ServiceSettings

_engines: dict[str, AsyncEngine] = {}
_session_factories: dict[str, async_sessionmaker[AsyncSession]] = {}


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _: Any) -> None:
    # SQLite ignores ON DELETE clauses unless this is set per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Return the engine for ``database_url``, creating it on first use."""

    engine = _engines.get(database_url)
    if engine is not None:
        return engine

    engine = create_async_engine(database_url, pool_pre_ping=True, **kwargs)
    if make_url(database_url).get_backend_name() == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    _engines[database_url] = engine
    return engine


def get_session_factory(database_url: str) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the cached engine; objects stay usable after commit."""

    factory = _session_factories.get(database_url)
    if factory is None:
        factory = async_sessionmaker(create_engine(database_url), expire_on_commit=False)
        _session_factories[database_url] = factory
    return factory


@asynccontextmanager
async def lifespan_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Provide a unit of work: commit on success, roll back on any exception."""

    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_schema(database_url: str, metadata: MetaData) -> None:
    """Create the tables of ``metadata`` that do not exist yet."""

    async with create_engine(database_url).begin() as conn:
        await conn.run_sync(metadata.create_all)


def resolve_database_url(settings: ServiceSettings, fallback: str) -> str:
    return settings.database_url or fallback


async def dispose_engines() -> None:
    """Close every pooled connection and forget the cached engines."""

    engines = list(_engines.values())
    _engines.clear()
    _session_factories.clear()
    for engine in engines:
        await engine.dispose()
