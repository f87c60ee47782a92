from __future__ import annotations

import datetime as dt
import itertools
import uuid

from httpx import AsyncClient, Response
from sqlalchemy.ext.asyncio import AsyncSession

from movierating.core.security import hash_password
from movierating.models.token import JwtToken, TokenType
from movierating.models.user import User

DEFAULT_PASSWORD = "StrongPass1"

_counter = itertools.count()


def unique_username(prefix: str = "user") -> str:
    return f"{prefix}_{next(_counter)}_{uuid.uuid4().hex[:6]}"


async def create_user(
    session: AsyncSession,
    *,
    username: str | None = None,
    email: str | None = None,
    password: str = DEFAULT_PASSWORD,
    is_active: bool = True,
) -> User:
    username = username or unique_username()
    user = User(
        username=username,
        email=email or f"{username}@example.com",
        password_hash=hash_password(password),
        first_name="Test",
        last_name="User",
        is_active=is_active,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)
    return user


def token_record(
    user_id: str,
    *,
    expires_at: dt.datetime,
    token_type: TokenType = TokenType.ACCESS,
    issued_at: dt.datetime | None = None,
) -> JwtToken:
    return JwtToken(
        user_id=user_id,
        token_hash=uuid.uuid4().hex + uuid.uuid4().hex,
        token_type=token_type,
        issued_at=issued_at or expires_at - dt.timedelta(hours=1),
        expires_at=expires_at,
    )


async def login(client: AsyncClient, identifier: str, password: str = DEFAULT_PASSWORD) -> Response:
    return await client.post("/api/v1/auth/login", json={"usernameOrEmail": identifier, "password": password})


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
