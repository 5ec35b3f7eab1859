"""Client for the hosted identity provider (GoTrue-compatible REST API)."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from fotocall.core.config import Settings

SIGNUP_PATH = "/auth/v1/signup"
TOKEN_PATH = "/auth/v1/token"
USER_PATH = "/auth/v1/user"
LOGOUT_PATH = "/auth/v1/logout"
REQUEST_TIMEOUT = 10.0

logger = logging.getLogger(__name__)


class AuthProviderError(Exception):
    """Base error for identity provider operations."""


class AuthNotConfiguredError(AuthProviderError):
    """Raised when the provider URL or API key is missing."""


class InvalidCredentialsError(AuthProviderError):
    """Raised when the provider rejects an email/password pair."""


class AuthAPIError(AuthProviderError):
    """Raised when the provider returns an unexpected error response."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True)
class Identity:
    """The signed-in principal that scopes remote contact rows."""

    user_id: str
    email: str | None = None


@dataclass(frozen=True)
class AuthTokens:
    access_token: str
    identity: Identity
    refresh_token: str | None = None
    expires_in: int | None = None


class AuthProviderClient:
    """Sign users in and out and resolve access tokens to identities."""

    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self._transport = transport

    def _require_configured(self) -> None:
        if not (self.settings.auth_url and self.settings.auth_api_key):
            raise AuthNotConfiguredError("Identity provider is not configured")

    async def sign_up(self, email: str, password: str) -> AuthTokens | None:
        """Register an account; returns tokens when no email confirmation is pending."""

        self._require_configured()
        response = await self._request(
            "POST", SIGNUP_PATH, json={"email": email, "password": password}
        )
        if response.status_code in (400, 422):
            raise InvalidCredentialsError(_error_message(response) or "Registration rejected")
        data = self._json_or_raise(response, "Identity provider sign-up failed")
        if not data.get("access_token"):
            return None
        return _parse_tokens(data)

    async def sign_in(self, email: str, password: str) -> AuthTokens:
        """Exchange an email/password pair for a session."""

        self._require_configured()
        response = await self._request(
            "POST",
            TOKEN_PATH,
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if response.status_code in (400, 401):
            raise InvalidCredentialsError("Invalid email or password")
        data = self._json_or_raise(response, "Identity provider sign-in failed")
        return _parse_tokens(data)

    async def get_identity(self, access_token: str) -> Identity | None:
        """Return the identity behind ``access_token``, or None when it is no longer valid."""

        self._require_configured()
        response = await self._request("GET", USER_PATH, access_token=access_token)
        if response.status_code in (401, 403):
            return None
        data = self._json_or_raise(response, "Identity provider user lookup failed")
        return _parse_identity(data)

    async def sign_out(self, access_token: str) -> None:
        self._require_configured()
        response = await self._request("POST", LOGOUT_PATH, access_token=access_token)
        # An already expired token is as signed out as it gets.
        if response.status_code in (401, 403):
            return
        if response.status_code >= 400:
            raise self._api_error(response, "Identity provider sign-out failed")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: str | None = None,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        headers = {"apikey": self.settings.auth_api_key}
        if access_token is not None:
            headers["Authorization"] = f"Bearer {access_token}"
        url = f"{self.settings.auth_url.rstrip('/')}{path}"
        try:
            async with httpx.AsyncClient(
                timeout=REQUEST_TIMEOUT, transport=self._transport
            ) as client:
                return await client.request(method, url, headers=headers, params=params, json=json)
        except httpx.HTTPError as exc:
            logger.error("Failed to communicate with identity provider", exc_info=exc)
            raise AuthAPIError("Unable to reach identity provider") from exc

    def _json_or_raise(self, response: httpx.Response, message: str) -> dict[str, Any]:
        if response.status_code >= 400:
            raise self._api_error(response, message)
        try:
            data = response.json()
        except ValueError as exc:
            raise AuthAPIError(message, status_code=response.status_code, body=response.text) from exc
        if not isinstance(data, dict):
            raise AuthAPIError(message, status_code=response.status_code, body=response.text)
        return data

    @staticmethod
    def _api_error(response: httpx.Response, message: str) -> AuthAPIError:
        logger.error(message, extra={"status_code": response.status_code, "body": response.text})
        return AuthAPIError(message, status_code=response.status_code, body=response.text)


def _parse_identity(data: dict[str, Any]) -> Identity:
    user_id = data.get("id")
    if not user_id:
        raise AuthAPIError("Identity provider response missing user id")
    return Identity(user_id=str(user_id), email=data.get("email"))


def _parse_tokens(data: dict[str, Any]) -> AuthTokens:
    access_token = data.get("access_token")
    user = data.get("user")
    if not access_token or not isinstance(user, dict):
        raise AuthAPIError("Identity provider token response is incomplete")
    expires_in = data.get("expires_in")
    return AuthTokens(
        access_token=str(access_token),
        identity=_parse_identity(user),
        refresh_token=data.get("refresh_token"),
        expires_in=int(expires_in) if expires_in is not None else None,
    )


def _error_message(response: httpx.Response) -> str | None:
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    for key in ("msg", "error_description", "message"):
        if data.get(key):
            return str(data[key])
    return None
