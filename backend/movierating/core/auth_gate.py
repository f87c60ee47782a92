"""Bearer-token authentication gate applied to every non-public HTTP request."""
from __future__ import annotations

from collections.abc import Callable
from typing import Final

from loguru import logger
from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

from movierating.core.dependencies import AuthenticatedPrincipal, get_token_service
from movierating.core.errors import StorageError, TokenError, error_envelope, unauthorized_envelope
from movierating.core.jwt import JwtTokenService

PUBLIC_PATHS: Final[frozenset[str]] = frozenset(
    {
        "/api/v1/auth/login",
        "/api/v1/auth/refresh",
        "/api/v1/auth/logout",
        "/api/v1/auth/register",
        "/health",
        "/metrics",
        "/docs",
        "/docs/oauth2-redirect",
        "/redoc",
        "/openapi.json",
    }
)
PUBLIC_PREFIXES: Final[tuple[str, ...]] = ("/api/v1/users/check/",)

_BEARER_PREFIX = "Bearer "


def is_public_path(path: str) -> bool:
    normalized = path.rstrip("/") or "/"
    return normalized in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES)


class BearerAuthenticationMiddleware:
    """Reject unauthenticated requests with a uniform 401 envelope.

    Accepted requests carry an :class:`AuthenticatedPrincipal` in
    ``scope["state"]["principal"]``. The reason a token was refused is logged
    but never disclosed to the client.
    """

    def __init__(
        self,
        app: ASGIApp,
        token_service_factory: Callable[[], JwtTokenService] = get_token_service,
    ) -> None:
        self.app = app
        self._token_service_factory = token_service_factory

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope.get("method") == "OPTIONS" or is_public_path(scope.get("path", "")):
            await self.app(scope, receive, send)
            return

        scope_state = scope.setdefault("state", {})
        authorization = Headers(scope=scope).get("authorization")
        if not authorization or not authorization.startswith(_BEARER_PREFIX):
            scope_state["auth_failure"] = "missing_credentials"
            await self._reject(scope, receive, send)
            return

        token = authorization[len(_BEARER_PREFIX) :].strip()
        if not token:
            scope_state["auth_failure"] = "missing_credentials"
            await self._reject(scope, receive, send)
            return

        try:
            claims = await self._token_service_factory().validate_with_blacklist(token)
        except TokenError as exc:
            scope_state["auth_failure"] = exc.code
            logger.bind(path=scope.get("path"), reason=exc.code).info("authentication_rejected")
            await self._reject(scope, receive, send)
            return
        except StorageError as exc:
            # Fail closed when revocation state cannot be read.
            scope_state["error_detail"] = exc.code
            body = error_envelope(
                code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                path=scope.get("path", ""),
            )
            await JSONResponse(body, status_code=exc.status_code)(scope, receive, send)
            return

        scope_state["principal"] = AuthenticatedPrincipal(
            user_id=claims.user_id,
            username=claims.username,
            email=claims.email,
            token=token,
        )
        scope_state["user_id"] = claims.user_id
        await self.app(scope, receive, send)

    @staticmethod
    async def _reject(scope: Scope, receive: Receive, send: Send) -> None:
        body = unauthorized_envelope(scope.get("path", ""))
        response = JSONResponse(body, status_code=401, headers={"WWW-Authenticate": "Bearer"})
        await response(scope, receive, send)
