"""Prometheus metrics collectors and helpers."""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

REGISTRY: CollectorRegistry
HTTP_REQUESTS_TOTAL: Counter
HTTP_REQUEST_DURATION: Histogram
AUTH_LOGINS_TOTAL: Counter
TOKENS_ISSUED_TOTAL: Counter
TOKEN_REVOCATIONS_TOTAL: Counter
TOKEN_CLEANUP_DELETED_TOTAL: Counter


def _initialise_registry() -> None:
    global REGISTRY, HTTP_REQUESTS_TOTAL, HTTP_REQUEST_DURATION, AUTH_LOGINS_TOTAL
    global TOKENS_ISSUED_TOTAL, TOKEN_REVOCATIONS_TOTAL, TOKEN_CLEANUP_DELETED_TOTAL

    registry = CollectorRegistry(auto_describe=True)
    ProcessCollector(registry=registry)
    PlatformCollector(registry=registry)

    HTTP_REQUESTS_TOTAL = Counter(
        "http_requests_total",
        "Count of HTTP requests received",
        labelnames=("path", "method", "status"),
        registry=registry,
    )

    HTTP_REQUEST_DURATION = Histogram(
        "http_request_duration_seconds",
        "Histogram of request latency",
        labelnames=("path", "method"),
        registry=registry,
    )

    AUTH_LOGINS_TOTAL = Counter(
        "auth_logins_total",
        "Login attempts by outcome",
        labelnames=("outcome",),
        registry=registry,
    )

    TOKENS_ISSUED_TOTAL = Counter(
        "tokens_issued_total",
        "JWTs issued and persisted",
        labelnames=("token_type",),
        registry=registry,
    )

    TOKEN_REVOCATIONS_TOTAL = Counter(
        "token_revocations_total",
        "Token revocation attempts by outcome",
        labelnames=("outcome",),
        registry=registry,
    )

    TOKEN_CLEANUP_DELETED_TOTAL = Counter(
        "token_cleanup_deleted_total",
        "Token records removed by the retention sweep",
        registry=registry,
    )

    REGISTRY = registry


_initialise_registry()


def render_metrics() -> bytes:
    """Return the current metrics snapshot in Prometheus format."""

    return generate_latest(REGISTRY)


def observe_request(path: str, method: str, status: int, latency_seconds: float) -> None:
    HTTP_REQUESTS_TOTAL.labels(path=path, method=method, status=str(status)).inc()
    HTTP_REQUEST_DURATION.labels(path=path, method=method).observe(latency_seconds)


def record_auth_login(outcome: str) -> None:
    AUTH_LOGINS_TOTAL.labels(outcome=outcome).inc()


def record_token_issued(token_type: str) -> None:
    TOKENS_ISSUED_TOTAL.labels(token_type=token_type).inc()


def record_token_revocation(outcome: str, count: int = 1) -> None:
    """Count revocations; ``count`` is the number of rows touched on success."""

    TOKEN_REVOCATIONS_TOTAL.labels(outcome=outcome).inc(max(count, 0))


def record_token_cleanup(deleted: int) -> None:
    TOKEN_CLEANUP_DELETED_TOTAL.inc(max(deleted, 0))


__all__ = [
    "CONTENT_TYPE_LATEST",
    "REGISTRY",
    "render_metrics",
    "observe_request",
    "record_auth_login",
    "record_token_issued",
    "record_token_revocation",
    "record_token_cleanup",
]
