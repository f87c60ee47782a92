"""FastAPI application entrypoint."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger
from starlette.exceptions import HTTPException

from movierating import __version__
from movierating.api.v1 import api_router
from movierating.core.auth_gate import BearerAuthenticationMiddleware
from movierating.core.config import get_settings
from movierating.core.errors import ConflictError, ServiceError, TokenError, error_envelope, unauthorized_envelope
from movierating.core.health import build_health_payload
from movierating.core.logging import RequestLoggingMiddleware, configure_logging, record_validation_error
from movierating.core.metrics import CONTENT_TYPE_LATEST, render_metrics
from movierating.tasks.scheduler import shutdown_scheduler, start_scheduler

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    start_scheduler()
    try:
        yield
    finally:
        await shutdown_scheduler()


app = FastAPI(title="Movie Rating Service", version=__version__, lifespan=lifespan)

# Added innermost first: logging wraps CORS, which wraps the auth gate.
app.add_middleware(BearerAuthenticationMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if isinstance(exc, TokenError):
        request.state.auth_failure = exc.code
        logger.bind(path=request.url.path, reason=exc.code).info("authentication_rejected")
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content=unauthorized_envelope(request.url.path),
            headers={"WWW-Authenticate": "Bearer"},
        )

    details = exc.details
    if isinstance(exc, ConflictError) and details is None:
        details = {"field": exc.field}
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        request.state.error_detail = exc.code
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(
            code=exc.code,
            message=exc.message,
            status_code=exc.status_code,
            path=request.url.path,
            details=details,
        ),
        headers=headers,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        request.state.error_detail = str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(
            code="http_error",
            message=str(exc.detail),
            status_code=exc.status_code,
            path=request.url.path,
        ),
        headers=exc.headers or None,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]
    record_validation_error(request, "validation_error", errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_envelope(
            code="validation_failed",
            message="Request validation failed.",
            status_code=status.HTTP_400_BAD_REQUEST,
            path=request.url.path,
            details=errors,
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    request.state.error_detail = exc.__class__.__name__
    logger.exception("Unhandled application error")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope(
            code="server_error",
            message="Internal server error.",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            path=request.url.path,
        ),
    )


app.include_router(api_router)


@app.get("/health", tags=["health"], response_model=dict)
async def health() -> dict[str, object]:
    """Return infrastructure-focused health telemetry."""

    return await build_health_payload(settings.git_sha)


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose Prometheus-formatted metrics."""

    return Response(content=render_metrics(), media_type=CONTENT_TYPE_LATEST)
