"""Service error taxonomy and the JSON error envelope."""
from __future__ import annotations

import datetime as dt
from typing import Any

from fastapi import status

UNAUTHORIZED_CODE = "UNAUTHORIZED"
UNAUTHORIZED_MESSAGE = "Authentication required"


class ServiceError(Exception):
    """Base class for errors that map onto an HTTP error envelope."""

    code: str = "server_error"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error."

    def __init__(self, message: str | None = None, *, details: Any | None = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class TokenError(ServiceError):
    """Any failure to accept a bearer token."""

    code = "invalid_token"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid token."


class InvalidToken(TokenError):
    default_message = "Invalid token."


class TokenExpired(TokenError):
    code = "token_expired"
    default_message = "Token has expired."


class TokenRevoked(TokenError):
    code = "token_revoked"
    default_message = "Token has been revoked."


class AuthenticationFailed(ServiceError):
    code = "authentication_failed"
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Invalid username/email or password."


class AccountInactive(ServiceError):
    code = "account_inactive"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Account is deactivated."


class ValidationFailed(ServiceError):
    code = "validation_failed"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request validation failed."


class NotFound(ServiceError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found."


class ConflictError(ServiceError):
    code = "conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists."
    field: str = ""


class UsernameTaken(ConflictError):
    code = "username_taken"
    default_message = "Username is already taken."
    field = "username"


class EmailTaken(ConflictError):
    code = "email_taken"
    default_message = "Email is already registered."
    field = "email"


class StorageError(ServiceError):
    code = "storage_error"
    default_message = "Token storage is unavailable."


def error_envelope(
    *,
    code: str,
    message: str,
    status_code: int,
    path: str,
    details: Any | None = None,
) -> dict[str, Any]:
    """Build the error body shared by exception handlers and the auth gate."""

    body: dict[str, Any] = {
        "error": code,
        "message": message,
        "timestamp": dt.datetime.now(dt.timezone.utc).isoformat(),
        "path": path,
        "status": status_code,
    }
    if details is not None:
        body["details"] = details
    return body


def unauthorized_envelope(path: str) -> dict[str, Any]:
    """Uniform 401 body for every rejected token; the specific kind is only logged."""

    return error_envelope(
        code=UNAUTHORIZED_CODE,
        message=UNAUTHORIZED_MESSAGE,
        status_code=status.HTTP_401_UNAUTHORIZED,
        path=path,
    )


__all__ = [
    "AccountInactive",
    "AuthenticationFailed",
    "ConflictError",
    "EmailTaken",
    "InvalidToken",
    "NotFound",
    "ServiceError",
    "StorageError",
    "TokenError",
    "TokenExpired",
    "TokenRevoked",
    "UsernameTaken",
    "ValidationFailed",
    "error_envelope",
    "unauthorized_envelope",
]
