"""Signed-in session tracking for the remote contact store."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from fotocall.core.auth import AuthTokens, Identity, InvalidCredentialsError

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class SessionLoadingError(Exception):
    """The session has not been resolved yet; the store must not be touched."""


class NotAuthenticatedError(Exception):
    """No signed-in user; the caller belongs on the sign-in page."""


class IdentityProvider(Protocol):
    async def sign_in(self, email: str, password: str) -> AuthTokens: ...

    async def get_identity(self, access_token: str) -> Identity | None: ...

    async def sign_out(self, access_token: str) -> None: ...


class UserSession:
    """Tracks ``loading -> authenticated | unauthenticated`` for one caller."""

    def __init__(self, provider: IdentityProvider) -> None:
        self._provider = provider
        self.state = SessionState.LOADING
        self.identity: Identity | None = None
        self.access_token: str | None = None
        self.refresh_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    async def restore(self, access_token: str | None) -> SessionState:
        """Resume a previously persisted session from its access token."""
        if not access_token:
            self._clear()
            return self.state

        identity = await self._provider.get_identity(access_token)
        if identity is None:
            logger.info("Stored session is no longer valid")
            self._clear()
            return self.state

        self._authenticate(identity, access_token)
        return self.state

    async def sign_in(self, email: str, password: str) -> AuthTokens:
        try:
            tokens = await self._provider.sign_in(email, password)
        except InvalidCredentialsError:
            self._clear()
            raise
        self._authenticate(tokens.identity, tokens.access_token, tokens.refresh_token)
        logger.info("User signed in", extra={"user_id": tokens.identity.user_id})
        return tokens

    async def sign_out(self) -> None:
        access_token = self.access_token
        user_id = self.identity.user_id if self.identity else None
        self._clear()
        if access_token:
            await self._provider.sign_out(access_token)
        logger.info("User signed out", extra={"user_id": user_id})

    def expire(self) -> None:
        self._clear()

    def require_identity(self) -> Identity:
        if self.state is SessionState.LOADING:
            raise SessionLoadingError("Session is still loading")
        if self.identity is None:
            raise NotAuthenticatedError("Sign in to continue")
        return self.identity

    def _authenticate(
        self, identity: Identity, access_token: str, refresh_token: str | None = None
    ) -> None:
        self.identity = identity
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.state = SessionState.AUTHENTICATED

    def _clear(self) -> None:
        self.identity = None
        self.access_token = None
        self.refresh_token = None
        self.state = SessionState.UNAUTHENTICATED
