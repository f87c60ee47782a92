"""Authentication schemas."""
from __future__ import annotations

from pydantic import AliasChoices, BaseModel, Field

from ..models.token import TokenType
from .user import UserProfile


class LoginRequest(BaseModel):
    username_or_email: str = Field(
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("usernameOrEmail", "username_or_email"),
    )
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(
        min_length=1,
        validation_alias=AliasChoices("refreshToken", "refresh_token"),
    )


class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"
    expires_in: int
    user: UserProfile


class LogoutAllRequest(BaseModel):
    token_type: TokenType | None = None


class LogoutAllResponse(BaseModel):
    message: str
    revoked: int
