"""Issued JWT records used for revocation and cleanup."""
from __future__ import annotations

import datetime as dt
import enum
from typing import Any

from sqlalchemy import Boolean, CheckConstraint, Enum, ForeignKey, Index, String, false
from sqlalchemy.orm import Mapped, mapped_column

from movierating.models.base import Base, TimestampMixin, UTCDateTime, UUIDPrimaryKeyMixin


class TokenType(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class JwtToken(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Server-side record of an issued token, keyed by the SHA-256 of the bearer string.

    The raw token is never stored. A record only moves from active to revoked;
    it is hard-deleted by the cleanup job once it is past retention.
    """

    __tablename__ = "jwt_tokens"
    __table_args__ = (
        Index("ix_jwt_tokens_active", "user_id", "token_type", "is_revoked", "expires_at"),
        Index("ix_jwt_tokens_expires_at", "expires_at"),
        CheckConstraint("issued_at <= expires_at", name="ck_jwt_tokens_issued_before_expiry"),
    )

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    token_type: Mapped[TokenType] = mapped_column(
        Enum(TokenType, name="tokentype"), nullable=False
    )
    issued_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    expires_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), nullable=False)
    is_revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    revoked_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    revoked_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __init__(self, **kwargs: Any) -> None:
        issued_at = kwargs.get("issued_at")
        expires_at = kwargs.get("expires_at")
        if issued_at is not None and expires_at is not None and issued_at > expires_at:
            raise ValueError("issued_at must not be after expires_at")
        super().__init__(**kwargs)
