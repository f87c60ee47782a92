"""Common FastAPI dependencies."""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from movierating.core.config import Settings, get_settings
from movierating.core.database import get_db_session, get_session_factory
from movierating.core.errors import InvalidToken
from movierating.core.jwt import JwtTokenService
from movierating.services.token_store import TokenStore

DBSession = Annotated[AsyncSession, Depends(get_db_session)]
AppSettings = Annotated[Settings, Depends(get_settings)]


@dataclass(frozen=True, slots=True)
class AuthenticatedPrincipal:
    """Identity attached to a request once its bearer token has been accepted."""

    user_id: str
    username: str
    email: str
    token: str = field(repr=False)


@lru_cache(maxsize=1)
def get_token_store() -> TokenStore:
    return TokenStore(get_session_factory())


@lru_cache(maxsize=1)
def get_token_service() -> JwtTokenService:
    return JwtTokenService.from_settings(get_token_store(), get_settings())


def get_current_principal(request: Request) -> AuthenticatedPrincipal:
    """Return the principal stored by the authentication gate."""

    principal = getattr(request.state, "principal", None)
    if not isinstance(principal, AuthenticatedPrincipal):
        raise InvalidToken("Authentication required.")
    return principal


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header[len("Bearer ") :].strip()
    return token or None


TokenService = Annotated[JwtTokenService, Depends(get_token_service)]
CurrentPrincipal = Annotated[AuthenticatedPrincipal, Depends(get_current_principal)]
