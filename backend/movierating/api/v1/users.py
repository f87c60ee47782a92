"""User account endpoints."""
from __future__ import annotations

import datetime as dt

from fastapi import APIRouter, Query, status

from movierating.core.dependencies import CurrentPrincipal, DBSession, TokenService
from movierating.models.token import TokenType
from movierating.schemas.user import (
    AvailabilityResponse,
    ChangePasswordRequest,
    MessageResponse,
    SessionOut,
    SessionsResponse,
    UserProfile,
)
from movierating.services import users
from movierating.services.authentication import get_active_user

router = APIRouter(prefix="/users")


@router.get("/check/username", response_model=AvailabilityResponse)
async def check_username(session: DBSession, username: str = Query(default="")) -> AvailabilityResponse:
    available, message = await users.check_username_availability(session, username)
    return AvailabilityResponse(available=available, field="username", value=username, message=message)


@router.get("/check/email", response_model=AvailabilityResponse)
async def check_email(session: DBSession, email: str = Query(default="")) -> AvailabilityResponse:
    available, message = await users.check_email_availability(session, email)
    return AvailabilityResponse(available=available, field="email", value=email, message=message)


@router.get("/me", response_model=UserProfile)
async def read_me(principal: CurrentPrincipal, session: DBSession) -> UserProfile:
    """Return the profile of the authenticated user."""

    user = await get_active_user(session, principal.user_id)
    return UserProfile.model_validate(user)


@router.get("/me/sessions", response_model=SessionsResponse)
async def list_sessions(
    principal: CurrentPrincipal,
    token_service: TokenService,
    token_type: TokenType | None = None,
) -> SessionsResponse:
    """List the caller's unexpired, unrevoked tokens."""

    active_count, tokens = await users.list_active_sessions(token_service, principal.user_id, token_type)
    return SessionsResponse(
        active_count=active_count,
        tokens=[SessionOut.model_validate(token) for token in tokens],
    )


@router.delete("/me/sessions/{token_id}", response_model=MessageResponse)
async def revoke_session(
    token_id: str,
    principal: CurrentPrincipal,
    token_service: TokenService,
) -> MessageResponse:
    await users.revoke_session(token_service, principal.user_id, token_id)
    return MessageResponse(message="Session revoked", timestamp=dt.datetime.now(dt.timezone.utc))


@router.post("/me/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    principal: CurrentPrincipal,
    session: DBSession,
    token_service: TokenService,
) -> MessageResponse:
    """Change the caller's password; all existing tokens are revoked."""

    user = await get_active_user(session, principal.user_id)
    await users.change_password(
        session,
        token_service,
        user,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    return MessageResponse(message="Password changed successfully", timestamp=dt.datetime.now(dt.timezone.utc))


@router.delete("/me", response_model=MessageResponse, status_code=status.HTTP_200_OK)
async def deactivate_me(
    principal: CurrentPrincipal,
    session: DBSession,
    token_service: TokenService,
) -> MessageResponse:
    """Deactivate the caller's account and revoke all of its tokens."""

    user = await get_active_user(session, principal.user_id)
    await users.deactivate_user(session, token_service, user)
    return MessageResponse(message="Account deactivated", timestamp=dt.datetime.now(dt.timezone.utc))
