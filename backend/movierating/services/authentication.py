"""Login, refresh and logout flows."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from movierating.core.config import Settings
from movierating.core.errors import AccountInactive, AuthenticationFailed, InvalidToken
from movierating.core.jwt import JwtTokenService
from movierating.core.logging import mask_identifier
from movierating.core.metrics import record_auth_login, record_token_revocation
from movierating.core.security import verify_password_async
from movierating.models.base import utcnow
from movierating.models.token import TokenType
from movierating.models.user import User

LOGOUT_REASON = "User logout"
LOGOUT_ALL_REASON = "User logout from all sessions"


@dataclass(slots=True)
class IssuedTokens:
    access_token: str
    refresh_token: str
    expires_in: int
    user: User


async def find_user_by_identifier(session: AsyncSession, identifier: str) -> User | None:
    """Look a user up by email when the identifier contains ``@``, else by username."""

    identifier = identifier.strip()
    if "@" in identifier:
        stmt = select(User).where(func.lower(User.email) == identifier.lower())
    else:
        stmt = select(User).where(User.username == identifier)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def login(
    session: AsyncSession,
    token_service: JwtTokenService,
    settings: Settings,
    *,
    identifier: str,
    password: str,
) -> IssuedTokens:
    """Authenticate credentials and issue an access/refresh pair.

    Unknown users and wrong passwords fail identically. A deactivated account
    is only reported once the password has been verified.
    """

    user = await find_user_by_identifier(session, identifier)
    if user is None or not await verify_password_async(password, user.password_hash):
        record_auth_login("failure")
        logger.bind(identifier=mask_identifier(identifier)).info("login_failed")
        raise AuthenticationFailed()

    if not user.is_active:
        record_auth_login("inactive")
        logger.bind(user_id=user.id).info("login_rejected_inactive")
        raise AccountInactive()

    issuances = [
        asyncio.ensure_future(
            token_service.generate(user.id, user.username, user.email, settings.access_token_duration)
        ),
        asyncio.ensure_future(
            token_service.generate(
                user.id,
                user.username,
                user.email,
                settings.refresh_token_duration,
                purpose=TokenType.REFRESH,
            )
        ),
    ]
    try:
        access_token, refresh_token = await asyncio.gather(*issuances)
    except BaseException:
        # A failed issuance must not leave its sibling running.
        for issuance in issuances:
            issuance.cancel()
        raise

    now = utcnow()
    user.last_login_at = now
    user.updated_at = now
    await session.commit()

    record_auth_login("success")
    logger.bind(user_id=user.id).info("login_succeeded")
    return IssuedTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=int(settings.access_token_duration.total_seconds()),
        user=user,
    )


async def refresh_access_token(
    session: AsyncSession,
    token_service: JwtTokenService,
    settings: Settings,
    *,
    refresh_token: str,
) -> IssuedTokens:
    """Exchange a live refresh token for a new access token.

    The refresh token itself is returned unchanged; it is not rotated.
    """

    claims = await token_service.validate_with_blacklist(refresh_token)
    if claims.purpose is not TokenType.REFRESH:
        raise InvalidToken("Refresh token required.")

    user = await get_active_user(session, claims.user_id)
    access_token = await token_service.generate(
        user.id,
        user.username,
        user.email,
        settings.access_token_duration,
    )
    logger.bind(user_id=user.id).info("access_token_refreshed")
    return IssuedTokens(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=int(settings.access_token_duration.total_seconds()),
        user=user,
    )


async def logout(token_service: JwtTokenService, token: str | None) -> None:
    """Revoke the presented token; failures are logged and never surfaced."""

    if not token:
        return
    try:
        revoked = await token_service.blacklist(token, LOGOUT_REASON)
    except Exception as exc:
        record_token_revocation("failed")
        logger.bind(error=exc.__class__.__name__).exception("logout_revocation_failed")
        return
    record_token_revocation("success", revoked)
    logger.bind(revoked=revoked).info("logout_completed")


async def logout_all(
    token_service: JwtTokenService,
    *,
    user_id: str,
    token_type: TokenType | None = None,
) -> int:
    """Revoke every active token of a user, optionally limited to one type."""

    store = token_service.store
    if token_type is None:
        revoked = await store.revoke_all_for_user(user_id, LOGOUT_ALL_REASON)
    else:
        revoked = await store.revoke_all_for_user_and_type(user_id, token_type, LOGOUT_ALL_REASON)
    record_token_revocation("success", revoked)
    logger.bind(user_id=user_id, token_type=token_type.value if token_type else "all", revoked=revoked).info(
        "logout_all_completed"
    )
    return revoked


async def get_active_user(session: AsyncSession, user_id: str) -> User:
    """Load the user behind an accepted token, enforcing that it is still active."""

    user = await session.get(User, user_id)
    if user is None:
        raise InvalidToken("Token subject no longer exists.")
    if not user.is_active:
        raise AccountInactive()
    return user
