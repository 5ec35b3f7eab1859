"""Response envelopes and the HTTP translation of service errors."""
from __future__ import annotations

from typing import TypeVar

from fastapi import HTTPException, status

from fotocall.core.auth import (
    AuthAPIError,
    AuthNotConfiguredError,
    AuthProviderError,
    InvalidCredentialsError,
)
from fotocall.services.errors import ContactNotFound, PersistenceFailure

T = TypeVar("T")


def data_response(payload: T) -> dict[str, T]:
    """Wrap a payload in the ``{"data": ...}`` envelope."""

    return {"data": payload}


def http_error(status_code: int, code: str, message: str) -> HTTPException:
    """Build an ``HTTPException`` whose detail renders as the error envelope."""

    return HTTPException(status_code=status_code, detail={"code": code, "message": message})


def store_error(exc: ContactNotFound | PersistenceFailure) -> HTTPException:
    if isinstance(exc, ContactNotFound):
        return http_error(status.HTTP_404_NOT_FOUND, "RESOURCE_NOT_FOUND", "Contact not found")
    return http_error(status.HTTP_503_SERVICE_UNAVAILABLE, "PERSISTENCE_FAILURE", exc.message)


def auth_error(exc: AuthProviderError) -> HTTPException:
    if isinstance(exc, InvalidCredentialsError):
        return http_error(status.HTTP_401_UNAUTHORIZED, "INVALID_CREDENTIALS", str(exc))
    if isinstance(exc, AuthNotConfiguredError):
        return http_error(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "AUTH_NOT_CONFIGURED", str(exc)
        )
    if isinstance(exc, AuthAPIError):
        return http_error(status.HTTP_502_BAD_GATEWAY, "AUTH_PROVIDER_ERROR", str(exc))
    return http_error(status.HTTP_502_BAD_GATEWAY, "AUTH_PROVIDER_ERROR", "Identity provider error")
