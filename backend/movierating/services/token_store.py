"""Persistence of issued token records.

Every operation opens its own session from the shared factory, so concurrent
callers (for example the two issuances of a login) never share a session.
SQLAlchemy failures surface as :class:`StorageError`.
"""
from __future__ import annotations

import datetime as dt
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any, cast

from loguru import logger
from sqlalchemy import delete, func, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql.elements import ColumnElement

from movierating.core.errors import StorageError
from movierating.models.base import utcnow
from movierating.models.token import JwtToken, TokenType


class TokenStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.bind(operation=operation, error=exc.__class__.__name__).error("token_store_failed")
            raise StorageError() from exc

    def _active_filter(self, user_id: str) -> list[ColumnElement[bool]]:
        return [
            JwtToken.user_id == user_id,
            JwtToken.is_revoked.is_(False),
            JwtToken.expires_at > self._clock(),
        ]

    async def _revoke_where(self, operation: str, reason: str, *criteria: ColumnElement[bool]) -> int:
        now = self._clock()
        stmt = (
            update(JwtToken)
            .where(*criteria)
            .values(is_revoked=True, revoked_at=now, revoked_reason=reason[:100], updated_at=now)
            .execution_options(synchronize_session=False)
        )
        async with self._session(operation) as session:
            result = cast(CursorResult[Any], await session.execute(stmt))
            await session.commit()
            return int(result.rowcount or 0)

    async def save(self, record: JwtToken) -> JwtToken:
        async with self._session("save") as session:
            session.add(record)
            await session.commit()
        return record

    async def find_by_id(self, token_id: str) -> JwtToken | None:
        async with self._session("find_by_id") as session:
            return await session.get(JwtToken, token_id)

    async def find_by_token_hash(self, token_hash: str) -> JwtToken | None:
        stmt = select(JwtToken).where(JwtToken.token_hash == token_hash)
        async with self._session("find_by_token_hash") as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def find_active_by_user(self, user_id: str) -> Sequence[JwtToken]:
        """Return non-revoked, unexpired tokens for a user, newest first."""

        stmt = select(JwtToken).where(*self._active_filter(user_id)).order_by(JwtToken.issued_at.desc())
        async with self._session("find_active_by_user") as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def find_active_by_user_and_type(self, user_id: str, token_type: TokenType) -> Sequence[JwtToken]:
        stmt = (
            select(JwtToken)
            .where(*self._active_filter(user_id), JwtToken.token_type == token_type)
            .order_by(JwtToken.issued_at.desc())
        )
        async with self._session("find_active_by_user_and_type") as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def count_active_for_user(self, user_id: str) -> int:
        stmt = select(func.count()).select_from(JwtToken).where(*self._active_filter(user_id))
        async with self._session("count_active_for_user") as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def is_revoked(self, token_hash: str) -> bool:
        """True only when a record exists and has been revoked.

        An unknown hash is reported as not revoked; signature checks decide validity.
        """

        stmt = select(JwtToken.is_revoked).where(JwtToken.token_hash == token_hash)
        async with self._session("is_revoked") as session:
            result = await session.execute(stmt)
            return bool(result.scalar_one_or_none())

    async def revoke_by_hash(self, token_hash: str, reason: str) -> int:
        """Mark the record revoked. Repeating the call overwrites the reason and timestamp."""

        return await self._revoke_where("revoke_by_hash", reason, JwtToken.token_hash == token_hash)

    async def revoke_all_for_user(self, user_id: str, reason: str) -> int:
        """Revoke the user's records that are not revoked yet; earlier revocations keep their reason."""

        return await self._revoke_where(
            "revoke_all_for_user", reason, JwtToken.user_id == user_id, JwtToken.is_revoked.is_(False)
        )

    async def revoke_all_for_user_and_type(self, user_id: str, token_type: TokenType, reason: str) -> int:
        return await self._revoke_where(
            "revoke_all_for_user_and_type",
            reason,
            JwtToken.user_id == user_id,
            JwtToken.token_type == token_type,
            JwtToken.is_revoked.is_(False),
        )

    async def delete_expired_before(self, cutoff: dt.datetime) -> int:
        """Hard-delete records whose expiry is strictly before ``cutoff``."""

        stmt = delete(JwtToken).where(JwtToken.expires_at < cutoff).execution_options(synchronize_session=False)
        async with self._session("delete_expired_before") as session:
            result = cast(CursorResult[Any], await session.execute(stmt))
            await session.commit()
            return int(result.rowcount or 0)

