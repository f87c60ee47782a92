"""Database engine, session factory and connection helpers."""
from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from movierating.core.config import get_settings

_settings = get_settings()


def _build_engine(db_url: str) -> AsyncEngine:
    engine = create_async_engine(db_url, echo=False, future=True, pool_pre_ping=True)
    if make_url(db_url).get_backend_name() == "sqlite":
        # SQLite ignores ON DELETE CASCADE unless the pragma is set per connection.
        @event.listens_for(engine.sync_engine, "connect")
        def _enable_foreign_keys(dbapi_connection: Any, _: Any) -> None:
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


_async_engine: AsyncEngine = _build_engine(_settings.db_url)
_async_session_factory = async_sessionmaker(_async_engine, expire_on_commit=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async SQLAlchemy session for request handling."""

    async with _async_session_factory() as session:
        yield session


async def dispose_engine() -> None:
    """Dispose pooled connections (used in test teardown and on shutdown)."""

    await _async_engine.dispose()


async def check_connection() -> None:
    async with _async_engine.connect() as connection:
        await connection.execute(text("SELECT 1"))


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the shared async session factory."""

    return _async_session_factory
