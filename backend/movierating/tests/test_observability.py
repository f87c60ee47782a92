from __future__ import annotations

import pytest
from freezegun import freeze_time
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from movierating.core.health import TOKEN_CLEANUP_JOB, record_scheduler_tick
from movierating.core.logging import mask_email, mask_identifier
from movierating.tests.utils import create_user, login


@pytest.mark.asyncio
async def test_health_reports_cleanup_probe_and_version(client: AsyncClient) -> None:
    with freeze_time("2024-05-01T12:00:00Z"):
        await record_scheduler_tick(TOKEN_CLEANUP_JOB, result=3)

    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert "uptime_seconds" in payload
    assert "version" in payload
    assert payload["db_status"]["state"] == "ok"
    probe = payload["scheduler_status"][TOKEN_CLEANUP_JOB]
    assert probe["last_tick"].startswith("2024-05-01")
    assert probe["last_result"] == 3
    assert probe["lag_seconds"] >= 0


@pytest.mark.asyncio
async def test_health_reports_database_failure(
    client: AsyncClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def _broken_connection() -> None:
        raise RuntimeError("db offline")

    monkeypatch.setattr("movierating.core.health.check_connection", _broken_connection)
    response = await client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["db_status"]["state"] == "down"
    assert "db offline" in payload["db_status"]["reason"]


@pytest.mark.asyncio
async def test_metrics_expose_auth_and_token_counters(client: AsyncClient, session: AsyncSession) -> None:
    user = await create_user(session)

    assert (await login(client, user.username)).status_code == 200
    assert (await login(client, user.username, "WrongPass1")).status_code == 401

    response = await client.get("/metrics")
    assert response.status_code == 200
    body = response.text
    assert 'auth_logins_total{outcome="success"}' in body
    assert 'auth_logins_total{outcome="failure"}' in body
    assert 'tokens_issued_total{token_type="access"}' in body
    assert 'tokens_issued_total{token_type="refresh"}' in body
    assert "http_requests_total" in body


def test_email_masking() -> None:
    assert mask_email("someone@example.com") == "s*****e@example.com"
    assert mask_email("ab@example.com") == "a*@example.com"
    assert mask_identifier("plainuser") == "plainuser"
    assert mask_identifier("someone@example.com") == "s*****e@example.com"
