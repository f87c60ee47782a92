"""Password hashing and policy helpers."""
from __future__ import annotations

import asyncio
import re
from typing import Final, cast

from passlib.context import CryptContext  # type: ignore[import-untyped]

from movierating.core.config import get_settings

USERNAME_REGEX: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z0-9_-]{3,100}$")
PASSWORD_MIN_LENGTH: Final[int] = 8
# bcrypt only considers the first 72 bytes of input.
PASSWORD_MAX_BYTES: Final[int] = 72

_pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=get_settings().bcrypt_rounds,
)


class PasswordValidationError(ValueError):
    """Raised when the provided password fails policy validation."""


def validate_password_strength(password: str) -> None:
    if len(password) < PASSWORD_MIN_LENGTH:
        raise PasswordValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.")
    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise PasswordValidationError(f"Password must be at most {PASSWORD_MAX_BYTES} bytes long.")


def hash_password(password: str) -> str:
    """Return a bcrypt hash for the provided password."""

    validate_password_strength(password)
    return cast(str, _pwd_context.hash(password))


def verify_password(password: str, password_hash: str) -> bool:
    """Validate a plaintext password against a bcrypt hash."""

    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        return False
    return bool(_pwd_context.verify(password, password_hash))


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password: str, password_hash: str) -> bool:
    """Run the CPU-bound bcrypt check off the event loop."""

    return await asyncio.to_thread(verify_password, password, password_hash)
