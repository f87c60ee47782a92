from __future__ import annotations

import datetime as dt
import hashlib

import pytest
from jose import jwt  # type: ignore[import-untyped]
from sqlalchemy.ext.asyncio import AsyncSession

from movierating.core.database import get_session_factory
from movierating.core.errors import InvalidToken, StorageError, TokenExpired, TokenRevoked
from movierating.core.jwt import JwtTokenService
from movierating.models.token import JwtToken, TokenType
from movierating.services.token_store import TokenStore
from movierating.tests.utils import create_user

SECRET = "test_secret"
ISSUER = "movie-rating-system"
HOUR = dt.timedelta(hours=1)


def _service(clock: dt.datetime | None = None, *, secret: str = SECRET, issuer: str = ISSUER) -> JwtTokenService:
    store = TokenStore(get_session_factory())
    if clock is None:
        return JwtTokenService(store, secret=secret, issuer=issuer)
    return JwtTokenService(store, secret=secret, issuer=issuer, clock=lambda: clock)


def test_hash_token_is_sha256_hex_and_treats_none_as_empty() -> None:
    empty_digest = hashlib.sha256(b"").hexdigest()
    assert JwtTokenService.hash_token(None) == empty_digest
    assert JwtTokenService.hash_token("") == empty_digest
    assert JwtTokenService.hash_token("abc") == hashlib.sha256(b"abc").hexdigest()


@pytest.mark.asyncio
async def test_generate_persists_record_before_returning(session: AsyncSession) -> None:
    user = await create_user(session)
    service = _service()

    token = await service.generate(user.id, user.username, user.email, HOUR)

    payload = jwt.get_unverified_claims(token)
    assert payload["sub"] == user.id
    assert payload["iss"] == ISSUER
    assert payload["user_id"] == user.id
    assert payload["username"] == user.username
    assert payload["email"] == user.email
    assert payload["exp"] - payload["iat"] == 3600
    assert "token_type" not in payload

    record = await service.store.find_by_token_hash(service.hash_token(token))
    assert record is not None
    assert record.token_type is TokenType.ACCESS
    assert record.expires_at - record.issued_at == HOUR
    assert record.user_id == user.id


@pytest.mark.asyncio
async def test_refresh_purpose_is_tagged_and_stored(session: AsyncSession) -> None:
    user = await create_user(session)
    service = _service()

    token = await service.generate(
        user.id, user.username, user.email, dt.timedelta(days=7), purpose=TokenType.REFRESH
    )

    assert jwt.get_unverified_claims(token)["token_type"] == "refresh"
    claims = service.validate(token)
    assert claims.purpose is TokenType.REFRESH
    record = await service.store.find_by_token_hash(service.hash_token(token))
    assert record is not None and record.token_type is TokenType.REFRESH


@pytest.mark.asyncio
async def test_tokens_issued_in_the_same_second_are_distinct(session: AsyncSession) -> None:
    user = await create_user(session)
    frozen = dt.datetime(2030, 1, 1, tzinfo=dt.timezone.utc)
    service = _service(frozen)

    first = await service.generate(user.id, user.username, user.email, HOUR)
    second = await service.generate(user.id, user.username, user.email, HOUR)

    assert first != second


@pytest.mark.asyncio
async def test_validate_returns_identity_and_custom_claims(session: AsyncSession) -> None:
    user = await create_user(session)
    service = _service()

    token = await service.generate(
        user.id,
        user.username,
        user.email,
        HOUR,
        extra_claims={"role": "critic", "sub": "spoofed", "user_id": "spoofed"},
    )
    claims = service.validate(token)

    assert claims.user_id == user.id
    assert claims.username == user.username
    assert claims.email == user.email
    assert claims.purpose is TokenType.ACCESS
    assert dict(claims.custom_claims) == {"role": "critic"}
    assert claims.expires_at - claims.issued_at == HOUR
    assert service.extract_user_id(token) == user.id


@pytest.mark.asyncio
async def test_validate_rejects_bad_signature_issuer_and_garbage(session: AsyncSession) -> None:
    user = await create_user(session)
    token = await _service(secret="another-secret").generate(user.id, user.username, user.email, HOUR)
    foreign_issuer = await _service(issuer="someone-else").generate(user.id, user.username, user.email, HOUR)
    service = _service()

    with pytest.raises(InvalidToken):
        service.validate(token)
    with pytest.raises(InvalidToken):
        service.validate(foreign_issuer)
    with pytest.raises(InvalidToken):
        service.validate("not-a-jwt")
    with pytest.raises(InvalidToken):
        service.validate("")
    with pytest.raises(InvalidToken):
        service.extract_user_id("not-a-jwt")


def test_validate_rejects_payload_without_identity() -> None:
    now = int(dt.datetime.now(dt.timezone.utc).timestamp())
    token = jwt.encode({"sub": "abc", "iss": ISSUER, "iat": now, "exp": now + 60}, SECRET, algorithm="HS256")

    with pytest.raises(InvalidToken):
        _service().validate(token)


@pytest.mark.asyncio
async def test_expired_tokens(session: AsyncSession) -> None:
    user = await create_user(session)
    past = dt.datetime.now(dt.timezone.utc) - dt.timedelta(hours=2)
    expired = await _service(past).generate(user.id, user.username, user.email, HOUR)
    live = await _service().generate(user.id, user.username, user.email, HOUR)
    service = _service()

    with pytest.raises(TokenExpired):
        service.validate(expired)
    assert service.is_expired(expired) is True
    assert service.is_expired(live) is False
    with pytest.raises(InvalidToken):
        service.is_expired("garbage")


@pytest.mark.asyncio
async def test_is_expired_still_checks_signature(session: AsyncSession) -> None:
    user = await create_user(session)
    past = dt.datetime.now(dt.timezone.utc) - dt.timedelta(hours=2)
    forged = await _service(past, secret="forged").generate(user.id, user.username, user.email, HOUR)

    with pytest.raises(InvalidToken):
        _service().is_expired(forged)


@pytest.mark.asyncio
async def test_validate_with_blacklist_checks_revocation_first(session: AsyncSession) -> None:
    user = await create_user(session)
    past = dt.datetime.now(dt.timezone.utc) - dt.timedelta(hours=2)
    service = _service()
    live = await service.generate(user.id, user.username, user.email, HOUR)
    expired = await _service(past).generate(user.id, user.username, user.email, HOUR)

    assert (await service.validate_with_blacklist(live)).user_id == user.id

    assert await service.blacklist(live, "User logout") == 1
    assert await service.blacklist(expired, "User logout") == 1
    with pytest.raises(TokenRevoked):
        await service.validate_with_blacklist(live)
    with pytest.raises(TokenRevoked):
        await service.validate_with_blacklist(expired)
    # Stateless validation ignores the store.
    assert service.validate(live).user_id == user.id


@pytest.mark.asyncio
async def test_unrecorded_but_valid_token_is_not_treated_as_revoked(session: AsyncSession) -> None:
    user = await create_user(session)
    now = int(dt.datetime.now(dt.timezone.utc).timestamp())
    token = jwt.encode(
        {
            "sub": user.id,
            "iss": ISSUER,
            "iat": now,
            "exp": now + 60,
            "user_id": user.id,
            "username": user.username,
            "email": user.email,
        },
        SECRET,
        algorithm="HS256",
    )

    claims = await _service().validate_with_blacklist(token)
    assert claims.username == user.username


@pytest.mark.asyncio
async def test_refresh_revokes_old_token_and_keeps_claims(session: AsyncSession) -> None:
    user = await create_user(session)
    service = _service()
    old = await service.generate(
        user.id,
        user.username,
        user.email,
        dt.timedelta(days=7),
        purpose=TokenType.REFRESH,
        extra_claims={"device": "tv"},
    )

    new = await service.refresh(old, HOUR)

    assert new != old
    old_record = await service.store.find_by_token_hash(service.hash_token(old))
    assert old_record is not None
    assert old_record.is_revoked is True
    assert old_record.revoked_reason == "Token refreshed"

    claims = await service.validate_with_blacklist(new)
    assert claims.user_id == user.id
    assert claims.purpose is TokenType.REFRESH
    assert dict(claims.custom_claims) == {"device": "tv"}
    assert claims.expires_at - claims.issued_at == HOUR

    with pytest.raises(TokenRevoked):
        await service.validate_with_blacklist(old)


@pytest.mark.asyncio
async def test_refresh_rejects_invalid_token_without_revoking(session: AsyncSession) -> None:
    with pytest.raises(InvalidToken):
        await _service().refresh("garbage", HOUR)


@pytest.mark.asyncio
async def test_issuance_fails_when_record_cannot_be_saved(
    session: AsyncSession, monkeypatch: pytest.MonkeyPatch
) -> None:
    user = await create_user(session)
    service = _service()

    async def _fail(record: JwtToken) -> JwtToken:
        raise StorageError()

    monkeypatch.setattr(service.store, "save", _fail)
    with pytest.raises(StorageError):
        await service.generate(user.id, user.username, user.email, HOUR)


def test_service_requires_secret() -> None:
    with pytest.raises(ValueError):
        JwtTokenService(TokenStore(get_session_factory()), secret="", issuer=ISSUER)
