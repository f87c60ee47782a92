from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from movierating.tests.utils import bearer, create_user, login, unique_username


@pytest.mark.asyncio
async def test_username_availability(client: AsyncClient, session: AsyncSession) -> None:
    user = await create_user(session)
    fresh = unique_username("fresh")

    taken = await client.get("/api/v1/users/check/username", params={"username": user.username})
    available = await client.get("/api/v1/users/check/username", params={"username": fresh})
    invalid = await client.get("/api/v1/users/check/username", params={"username": "no spaces"})
    blank = await client.get("/api/v1/users/check/username", params={"username": "  "})

    assert taken.json()["available"] is False
    assert available.json() == {
        "available": True,
        "field": "username",
        "value": fresh,
        "message": "Username is available.",
    }
    assert invalid.json()["available"] is False
    assert blank.json()["available"] is False


@pytest.mark.asyncio
async def test_email_availability_ignores_case(client: AsyncClient, session: AsyncSession) -> None:
    user = await create_user(session)

    taken = await client.get("/api/v1/users/check/email", params={"email": user.email.upper()})
    available = await client.get("/api/v1/users/check/email", params={"email": "nobody-yet@example.com"})
    missing = await client.get("/api/v1/users/check/email")

    assert taken.status_code == 200
    assert taken.json()["available"] is False
    assert taken.json()["field"] == "email"
    assert available.json()["available"] is True
    assert missing.json()["available"] is False


@pytest.mark.asyncio
async def test_read_profile(client: AsyncClient, session: AsyncSession) -> None:
    user = await create_user(session)
    tokens = (await login(client, user.username)).json()

    response = await client.get("/api/v1/users/me", headers=bearer(tokens["access_token"]))

    assert response.status_code == 200
    payload = response.json()
    assert payload["email"] == user.email
    assert payload["first_name"] == "Test"
    assert payload["is_active"] is True


@pytest.mark.asyncio
async def test_list_sessions(client: AsyncClient, session: AsyncSession) -> None:
    user = await create_user(session)
    first = (await login(client, user.username)).json()
    await login(client, user.username)
    headers = bearer(first["access_token"])

    everything = await client.get("/api/v1/users/me/sessions", headers=headers)
    refresh_only = await client.get("/api/v1/users/me/sessions", headers=headers, params={"token_type": "refresh"})

    assert everything.status_code == 200
    assert everything.json()["active_count"] == 4
    assert len(everything.json()["tokens"]) == 4
    assert {token["token_type"] for token in refresh_only.json()["tokens"]} == {"refresh"}
    assert len(refresh_only.json()["tokens"]) == 2


@pytest.mark.asyncio
async def test_revoke_single_session(client: AsyncClient, session: AsyncSession) -> None:
    user = await create_user(session)
    tokens = (await login(client, user.username)).json()
    headers = bearer(tokens["access_token"])
    sessions = await client.get("/api/v1/users/me/sessions", headers=headers, params={"token_type": "refresh"})
    refresh_id = sessions.json()["tokens"][0]["id"]

    response = await client.delete(f"/api/v1/users/me/sessions/{refresh_id}", headers=headers)

    assert response.status_code == 200
    refresh = await client.post("/api/v1/auth/refresh", json={"refreshToken": tokens["refresh_token"]})
    assert refresh.status_code == 401
    assert (await client.get("/api/v1/users/me", headers=headers)).status_code == 200


@pytest.mark.asyncio
async def test_cannot_revoke_another_users_session(client: AsyncClient, session: AsyncSession) -> None:
    owner = await create_user(session)
    intruder = await create_user(session)
    owner_tokens = (await login(client, owner.username)).json()
    intruder_tokens = (await login(client, intruder.username)).json()
    sessions = await client.get("/api/v1/users/me/sessions", headers=bearer(owner_tokens["access_token"]))
    target = sessions.json()["tokens"][0]["id"]

    response = await client.delete(
        f"/api/v1/users/me/sessions/{target}", headers=bearer(intruder_tokens["access_token"])
    )

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_change_password_revokes_existing_tokens(client: AsyncClient, session: AsyncSession) -> None:
    user = await create_user(session)
    tokens = (await login(client, user.username)).json()
    headers = bearer(tokens["access_token"])

    wrong = await client.post(
        "/api/v1/users/me/change-password",
        headers=headers,
        json={"current_password": "NotMyPass1", "new_password": "BrandNewPass2"},
    )
    assert wrong.status_code == 401

    response = await client.post(
        "/api/v1/users/me/change-password",
        headers=headers,
        json={"current_password": "StrongPass1", "new_password": "BrandNewPass2"},
    )

    assert response.status_code == 200
    assert (await client.get("/api/v1/users/me", headers=headers)).status_code == 401
    assert (await login(client, user.username)).status_code == 401
    assert (await login(client, user.username, "BrandNewPass2")).status_code == 200


@pytest.mark.asyncio
async def test_deactivate_account(client: AsyncClient, session: AsyncSession) -> None:
    user = await create_user(session)
    tokens = (await login(client, user.username)).json()
    headers = bearer(tokens["access_token"])

    response = await client.delete("/api/v1/users/me", headers=headers)

    assert response.status_code == 200
    assert response.json()["message"] == "Account deactivated"
    assert (await client.get("/api/v1/users/me", headers=headers)).status_code == 401
    relogin = await login(client, user.username)
    assert relogin.status_code == 403

    await session.refresh(user)
    assert user.is_active is False
    assert user.deactivated_at is not None
