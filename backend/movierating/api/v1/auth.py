"""Authentication endpoints."""
from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Request, status

from movierating.core.dependencies import (
    AppSettings,
    CurrentPrincipal,
    DBSession,
    TokenService,
    extract_bearer_token,
)
from movierating.schemas import auth as auth_schema
from movierating.schemas.user import MessageResponse, UserCreate, UserProfile
from movierating.services import authentication, users
from movierating.services.authentication import IssuedTokens

router = APIRouter(prefix="/auth")


def _auth_response(issued: IssuedTokens) -> auth_schema.AuthResponse:
    return auth_schema.AuthResponse(
        access_token=issued.access_token,
        refresh_token=issued.refresh_token,
        expires_in=issued.expires_in,
        user=UserProfile.model_validate(issued.user),
    )


@router.post("/register", response_model=UserProfile, status_code=status.HTTP_201_CREATED)
async def register(payload: UserCreate, session: DBSession) -> UserProfile:
    """Create a new active account."""

    user = await users.register_user(session, payload)
    return UserProfile.model_validate(user)


@router.post("/login", response_model=auth_schema.AuthResponse)
async def login(
    payload: auth_schema.LoginRequest,
    session: DBSession,
    token_service: TokenService,
    settings: AppSettings,
) -> auth_schema.AuthResponse:
    """Authenticate by username or email and return an access/refresh token pair."""

    issued = await authentication.login(
        session,
        token_service,
        settings,
        identifier=payload.username_or_email,
        password=payload.password,
    )
    return _auth_response(issued)


@router.post("/refresh", response_model=auth_schema.AuthResponse)
async def refresh(
    payload: auth_schema.RefreshRequest,
    session: DBSession,
    token_service: TokenService,
    settings: AppSettings,
) -> auth_schema.AuthResponse:
    """Exchange a refresh token for a new access token."""

    issued = await authentication.refresh_access_token(
        session,
        token_service,
        settings,
        refresh_token=payload.refresh_token,
    )
    return _auth_response(issued)


@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request, token_service: TokenService) -> MessageResponse:
    """Revoke the presented bearer token. Always reports success."""

    await authentication.logout(token_service, extract_bearer_token(request))
    return MessageResponse(message="Logged out successfully", timestamp=dt.datetime.now(dt.timezone.utc))


@router.post("/logout-all", response_model=auth_schema.LogoutAllResponse)
async def logout_all(
    principal: CurrentPrincipal,
    token_service: TokenService,
    payload: auth_schema.LogoutAllRequest | None = None,
) -> auth_schema.LogoutAllResponse:
    """Revoke every active token of the caller, optionally restricted to one token type."""

    revoked = await authentication.logout_all(
        token_service,
        user_id=principal.user_id,
        token_type=payload.token_type if payload else None,
    )
    return auth_schema.LogoutAllResponse(message="Logged out from all sessions", revoked=revoked)
