"""JWT issuance, validation and revocation."""
from __future__ import annotations

import datetime as dt
import hashlib
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from jose import jwt  # type: ignore[import-untyped]
from jose.exceptions import ExpiredSignatureError, JOSEError  # type: ignore[import-untyped]
from loguru import logger

from movierating.core.config import Settings
from movierating.core.errors import InvalidToken, TokenExpired, TokenRevoked
from movierating.core.metrics import record_token_issued
from movierating.models.base import utcnow
from movierating.models.token import JwtToken, TokenType
from movierating.services.token_store import TokenStore

PURPOSE_CLAIM = "token_type"
_REGISTERED_CLAIMS = frozenset({"sub", "iss", "iat", "exp", "nbf", "aud", "jti"})
_IDENTITY_CLAIMS = frozenset({"user_id", "username", "email"})
_RESERVED_CLAIMS = _REGISTERED_CLAIMS | _IDENTITY_CLAIMS | {PURPOSE_CLAIM}


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Identity and metadata recovered from a verified token."""

    user_id: str
    username: str
    email: str
    issued_at: dt.datetime
    expires_at: dt.datetime
    purpose: TokenType = TokenType.ACCESS
    custom_claims: Mapping[str, Any] = field(default_factory=dict)


class JwtTokenService:
    """Sign tokens with a shared HMAC secret and track them in the token store.

    Every issued token is persisted (by hash) before it is handed out, which is
    what lets ``validate_with_blacklist`` reject a revoked but unexpired token.
    """

    def __init__(
        self,
        store: TokenStore,
        *,
        secret: str,
        issuer: str,
        algorithm: str = "HS256",
        clock: Callable[[], dt.datetime] = utcnow,
    ) -> None:
        if not secret:
            raise ValueError("A signing secret is required.")
        self._store = store
        self._secret = secret
        self._issuer = issuer
        self._algorithm = algorithm
        self._clock = clock

    @classmethod
    def from_settings(cls, store: TokenStore, settings: Settings) -> JwtTokenService:
        return cls(
            store,
            secret=settings.jwt_secret.get_secret_value(),
            issuer=settings.jwt_issuer,
            algorithm=settings.jwt_algorithm,
        )

    @property
    def store(self) -> TokenStore:
        return self._store

    @staticmethod
    def hash_token(token: str | None) -> str:
        """SHA-256 hex digest of the bearer string; ``None`` hashes as the empty string."""

        return hashlib.sha256((token or "").encode("utf-8")).hexdigest()

    async def generate(
        self,
        user_id: str,
        username: str,
        email: str,
        duration: dt.timedelta,
        *,
        purpose: TokenType = TokenType.ACCESS,
        extra_claims: Mapping[str, Any] | None = None,
    ) -> str:
        # iat/exp are whole seconds on the wire; keep the stored record identical.
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + duration

        payload: dict[str, Any] = {
            key: value for key, value in (extra_claims or {}).items() if key not in _RESERVED_CLAIMS
        }
        payload.update(
            {
                "sub": user_id,
                "iss": self._issuer,
                "iat": int(issued_at.timestamp()),
                "exp": int(expires_at.timestamp()),
                "jti": uuid.uuid4().hex,
                "user_id": user_id,
                "username": username,
                "email": email,
            }
        )
        if purpose is TokenType.REFRESH:
            payload[PURPOSE_CLAIM] = TokenType.REFRESH.value

        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        record = JwtToken(
            user_id=user_id,
            token_hash=self.hash_token(token),
            token_type=purpose,
            issued_at=issued_at,
            expires_at=expires_at,
        )
        await self._store.save(record)
        record_token_issued(purpose.value)
        logger.bind(user_id=user_id, token_type=purpose.value, token_id=record.id).debug("token_issued")
        return token

    def validate(self, token: str | None) -> TokenClaims:
        """Verify signature, issuer and expiry without consulting the store."""

        if not token:
            raise InvalidToken("Token is empty.")
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                issuer=self._issuer,
                options={"require_exp": True, "require_iat": True, "require_sub": True},
            )
        except ExpiredSignatureError as exc:
            raise TokenExpired() from exc
        except JOSEError as exc:
            raise InvalidToken() from exc
        return self._claims_from_payload(payload)

    async def validate_with_blacklist(self, token: str | None) -> TokenClaims:
        """Reject revoked tokens before running the stateless checks."""

        if await self._store.is_revoked(self.hash_token(token)):
            raise TokenRevoked()
        return self.validate(token)

    async def blacklist(self, token: str, reason: str) -> int:
        return await self._store.revoke_by_hash(self.hash_token(token), reason)

    async def refresh(self, old_token: str, new_duration: dt.timedelta) -> str:
        """Revoke ``old_token`` and issue a replacement with the same identity and claims.

        If issuance fails after the revocation the caller holds no usable token and
        must re-authenticate.
        """

        claims = self.validate(old_token)
        await self.blacklist(old_token, "Token refreshed")
        return await self.generate(
            claims.user_id,
            claims.username,
            claims.email,
            new_duration,
            purpose=claims.purpose,
            extra_claims=claims.custom_claims,
        )

    def extract_user_id(self, token: str) -> str:
        return self.validate(token).user_id

    def is_expired(self, token: str) -> bool:
        """True for a correctly signed token past its expiry; malformed tokens raise ``InvalidToken``."""

        try:
            self.validate(token)
        except TokenExpired:
            return True
        return False

    @staticmethod
    def _claims_from_payload(payload: Mapping[str, Any]) -> TokenClaims:
        subject = payload.get("sub")
        user_id = payload.get("user_id", subject)
        username = payload.get("username")
        email = payload.get("email")
        if not isinstance(user_id, str) or not isinstance(username, str) or not isinstance(email, str):
            raise InvalidToken("Token payload is missing identity claims.")
        try:
            issued_at = dt.datetime.fromtimestamp(int(payload["iat"]), tz=dt.timezone.utc)
            expires_at = dt.datetime.fromtimestamp(int(payload["exp"]), tz=dt.timezone.utc)
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidToken("Token timestamps are malformed.") from exc

        purpose = TokenType.REFRESH if payload.get(PURPOSE_CLAIM) == TokenType.REFRESH.value else TokenType.ACCESS
        custom_claims = {key: value for key, value in payload.items() if key not in _RESERVED_CLAIMS}
        return TokenClaims(
            user_id=user_id,
            username=username,
            email=email,
            issued_at=issued_at,
            expires_at=expires_at,
            purpose=purpose,
            custom_claims=custom_claims,
        )


__all__ = ["JwtTokenService", "PURPOSE_CLAIM", "TokenClaims", "TokenType"]
