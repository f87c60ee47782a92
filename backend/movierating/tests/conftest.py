from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncIterator, Iterator, cast

import pytest
from alembic import command
from alembic.config import Config
from httpx import ASGITransport, AsyncClient
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.types import ASGIApp

# Configure environment for tests before importing the app
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///./test_movierating.db")
os.environ.setdefault("JWT_SECRET", "test_secret")
os.environ.setdefault("JWT_ISSUER", "movie-rating-system")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("JWT_ACCESS_TOKEN_DURATION", "PT1H")
os.environ.setdefault("JWT_REFRESH_TOKEN_DURATION", "P7D")
os.environ.setdefault("JWT_CLEANUP_RETENTION_PERIOD", "P30D")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ENV", "local")
os.environ.setdefault("CORS_ALLOWED_ORIGINS", '["http://testserver"]')
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("LOG_LEVEL", "ERROR")
logger.remove()

from movierating.core.database import dispose_engine, get_session_factory  # noqa: E402
from movierating.main import app  # noqa: E402


def _apply_migrations() -> None:
    root_path = Path(__file__).resolve().parents[2]
    alembic_cfg = Config(str(root_path / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(root_path / "movierating" / "migrations"))
    alembic_cfg.attributes["configure_logger"] = False
    command.upgrade(alembic_cfg, "head")


@pytest.fixture(scope="session", autouse=True)
def apply_migrations() -> Iterator[None]:
    db_path = Path("test_movierating.db")
    if db_path.exists():
        db_path.unlink()
    _apply_migrations()
    yield
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(autouse=True)
async def release_connections() -> AsyncIterator[None]:
    """Pooled aiosqlite connections are bound to the loop of the test that opened them."""

    yield
    await dispose_engine()


@pytest.fixture()
async def client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=cast(ASGIApp, app))  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture()
async def session() -> AsyncIterator[AsyncSession]:
    session_factory = get_session_factory()
    async with session_factory() as session:
        yield session
