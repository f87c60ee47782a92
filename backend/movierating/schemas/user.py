"""User related schemas."""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from ..models.token import TokenType


class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=100, pattern=r"^[a-zA-Z0-9_-]+$")
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)


class UserProfile(BaseModel):
    id: str
    username: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    available: bool
    field: str
    value: str
    message: str


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=8, max_length=72)


class SessionOut(BaseModel):
    id: str
    token_type: TokenType
    issued_at: datetime
    expires_at: datetime

    class Config:
        from_attributes = True


class SessionsResponse(BaseModel):
    active_count: int
    tokens: list[SessionOut]


class MessageResponse(BaseModel):
    message: str
    timestamp: datetime
