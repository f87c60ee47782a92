"""Account registration and self-service operations."""
from __future__ import annotations

from collections.abc import Sequence

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from movierating.core.errors import AuthenticationFailed, EmailTaken, NotFound, UsernameTaken, ValidationFailed
from movierating.core.jwt import JwtTokenService
from movierating.core.logging import mask_email
from movierating.core.metrics import record_token_revocation
from movierating.core.security import (
    USERNAME_REGEX,
    PasswordValidationError,
    hash_password_async,
    verify_password_async,
)
from movierating.models.base import utcnow
from movierating.models.token import JwtToken, TokenType
from movierating.models.user import User
from movierating.schemas.user import UserCreate

PASSWORD_CHANGED_REASON = "Password changed"
DEACTIVATED_REASON = "Account deactivated"
SESSION_REVOKED_REASON = "Session revoked by user"


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def _hash_new_password(password: str) -> str:
    try:
        return await hash_password_async(password)
    except PasswordValidationError as exc:
        raise ValidationFailed(str(exc), details=[{"field": "password", "message": str(exc)}]) from exc


async def username_exists(session: AsyncSession, username: str) -> bool:
    stmt = select(User.id).where(User.username == username.strip())
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def email_exists(session: AsyncSession, email: str) -> bool:
    stmt = select(User.id).where(func.lower(User.email) == normalize_email(email))
    result = await session.execute(stmt)
    return result.scalar_one_or_none() is not None


async def check_username_availability(session: AsyncSession, username: str) -> tuple[bool, str]:
    """Return whether ``username`` can be registered and a human-readable reason."""

    candidate = username.strip()
    if not candidate:
        return False, "Username is required."
    if not USERNAME_REGEX.fullmatch(candidate):
        return False, "Username must be 3-100 characters of letters, digits, '_' or '-'."
    if await username_exists(session, candidate):
        return False, "Username is already taken."
    return True, "Username is available."


async def check_email_availability(session: AsyncSession, email: str) -> tuple[bool, str]:
    candidate = normalize_email(email)
    if not candidate:
        return False, "Email is required."
    if await email_exists(session, candidate):
        return False, "Email is already registered."
    return True, "Email is available."


async def register_user(session: AsyncSession, payload: UserCreate) -> User:
    """Create an active account; raises a conflict error on duplicate username or email."""

    username = payload.username.strip()
    email = normalize_email(str(payload.email))
    if await username_exists(session, username):
        raise UsernameTaken()
    if await email_exists(session, email):
        raise EmailTaken()

    user = User(
        username=username,
        email=email,
        password_hash=await _hash_new_password(payload.password),
        first_name=payload.first_name,
        last_name=payload.last_name,
        is_active=True,
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError as exc:
        # Lost a race with a concurrent registration for the same identity.
        await session.rollback()
        if await email_exists(session, email):
            raise EmailTaken() from exc
        raise UsernameTaken() from exc
    await session.refresh(user)
    logger.bind(user_id=user.id, email=mask_email(email)).info("user_registered")
    return user


async def change_password(
    session: AsyncSession,
    token_service: JwtTokenService,
    user: User,
    *,
    current_password: str,
    new_password: str,
) -> int:
    """Replace the password and revoke every token issued to the user."""

    if not await verify_password_async(current_password, user.password_hash):
        raise AuthenticationFailed("Current password is incorrect.")
    user.password_hash = await _hash_new_password(new_password)
    await session.commit()

    revoked = await token_service.store.revoke_all_for_user(user.id, PASSWORD_CHANGED_REASON)
    record_token_revocation("success", revoked)
    logger.bind(user_id=user.id, revoked=revoked).info("password_changed")
    return revoked


async def deactivate_user(session: AsyncSession, token_service: JwtTokenService, user: User) -> int:
    user.deactivate(utcnow())
    await session.commit()

    revoked = await token_service.store.revoke_all_for_user(user.id, DEACTIVATED_REASON)
    record_token_revocation("success", revoked)
    logger.bind(user_id=user.id, revoked=revoked).info("user_deactivated")
    return revoked


async def list_active_sessions(
    token_service: JwtTokenService,
    user_id: str,
    token_type: TokenType | None = None,
) -> tuple[int, Sequence[JwtToken]]:
    store = token_service.store
    if token_type is None:
        tokens = await store.find_active_by_user(user_id)
    else:
        tokens = await store.find_active_by_user_and_type(user_id, token_type)
    return await store.count_active_for_user(user_id), tokens


async def revoke_session(token_service: JwtTokenService, user_id: str, token_id: str) -> int:
    """Revoke one of the caller's own tokens by record id."""

    store = token_service.store
    record = await store.find_by_id(token_id)
    if record is None or record.user_id != user_id:
        raise NotFound("Session not found.")
    revoked = await store.revoke_by_hash(record.token_hash, SESSION_REVOKED_REASON)
    record_token_revocation("success", revoked)
    return revoked
