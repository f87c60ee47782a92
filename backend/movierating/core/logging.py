"""Structured logging utilities."""
from __future__ import annotations

import sys
import time
import uuid
from collections.abc import MutableMapping
from typing import Any

from fastapi import Request
from loguru import logger
from starlette.types import ASGIApp, Receive, Scope, Send

from movierating.core.metrics import observe_request


def configure_logging(level: str = "INFO") -> None:
    """Configure loguru to emit JSON-formatted, single-line logs."""

    logger.remove()
    logger.add(
        sys.stdout,
        level=level.upper(),
        serialize=True,
        enqueue=True,
        backtrace=False,
        diagnose=False,
    )


class RequestLoggingMiddleware:
    """ASGI middleware that records one structured log line and metrics per request."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        scope_state = scope.setdefault("state", {})
        request_id = str(uuid.uuid4())
        scope_state["request_id"] = request_id
        method = scope.get("method", "UNKNOWN")
        path = scope.get("path", "")
        start = time.perf_counter()
        log = logger.bind(request_id=request_id, path=path, method=method)

        responded = False

        async def send_wrapper(message: MutableMapping[str, Any]) -> None:
            nonlocal responded
            if message["type"] == "http.response.start" and not responded:
                responded = True
                status_code = int(message.get("status", 500))
                elapsed_seconds = time.perf_counter() - start
                # Route is resolved by the router after this middleware runs.
                route = scope.get("route")
                path_template = str(getattr(route, "path", path)) if route is not None else path
                observe_request(path_template, method, status_code, elapsed_seconds)
                log_context: dict[str, Any] = {
                    "status_code": status_code,
                    "latency_ms": round(elapsed_seconds * 1000, 2),
                }
                if user_id := scope_state.get("user_id"):
                    log_context["user_id"] = user_id
                if auth_failure := scope_state.get("auth_failure"):
                    log_context["auth_failure"] = auth_failure
                if status_code >= 500 and (error_detail := scope_state.get("error_detail")):
                    log_context["error"] = error_detail
                log.bind(**log_context).info("request_completed")
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception as exc:
            latency_ms = round((time.perf_counter() - start) * 1000, 2)
            scope_state["error_detail"] = exc.__class__.__name__
            log.bind(latency_ms=latency_ms, error=exc.__class__.__name__).exception("request_failed")
            raise


def mask_email(email: str) -> str:
    """Return a partially masked email safe for logging."""

    if "@" not in email:
        return email
    name, domain = email.split("@", 1)
    if len(name) <= 2:
        masked = name[:1] + "*" * max(0, len(name) - 1)
    else:
        masked = name[0] + "*" * (len(name) - 2) + name[-1]
    return f"{masked}@{domain}"


def mask_identifier(identifier: str) -> str:
    """Mask a login identifier that may be either a username or an email."""

    return mask_email(identifier) if "@" in identifier else identifier


def record_validation_error(request: Request, error: str, details: Any | None = None) -> None:
    """Log validation issues without exposing PII."""

    context: dict[str, Any] = {
        "path": request.url.path,
        "method": request.method,
        "details": details,
    }
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        context["request_id"] = request_id
    logger.bind(**context).warning(error)
