"""FastAPI dependencies shared by the API and web routers."""
from __future__ import annotations

from fastapi import Depends, Request, status

from fotocall.api.responses import auth_error, http_error
from fotocall.core.auth import AuthProviderClient, AuthProviderError, Identity
from fotocall.core.config import Settings
from fotocall.services.extraction import ExtractionGateway
from fotocall.services.lifecycle import LifecycleController
from fotocall.services.session import (
    NotAuthenticatedError,
    SessionLoadingError,
    UserSession,
)
from fotocall.services.store import ContactStore, RemoteContactStore


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_provider(settings: Settings = Depends(get_app_settings)) -> AuthProviderClient:
    return AuthProviderClient(settings)


def read_access_token(request: Request, settings: Settings) -> str | None:
    """Bearer header first, then the session cookie set at sign-in."""

    authorization = request.headers.get("Authorization")
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
        if token:
            return token
    return request.cookies.get(settings.session_cookie_name) or None


async def get_user_session(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    provider: AuthProviderClient = Depends(get_auth_provider),
) -> UserSession:
    """Resolve the caller's session; stays ``loading`` when auth is disabled."""

    session = UserSession(provider)
    if not settings.requires_auth:
        return session

    try:
        await session.restore(read_access_token(request, settings))
    except AuthProviderError as exc:
        raise auth_error(exc) from exc
    return session


async def get_identity(
    settings: Settings = Depends(get_app_settings),
    session: UserSession = Depends(get_user_session),
) -> Identity | None:
    if not settings.requires_auth:
        return None
    try:
        return session.require_identity()
    except (SessionLoadingError, NotAuthenticatedError) as exc:
        raise http_error(status.HTTP_401_UNAUTHORIZED, "UNAUTHENTICATED", str(exc)) from exc


def build_contact_store(request: Request, identity: Identity | None) -> ContactStore:
    """The shared local store, or a remote store scoped to ``identity``."""

    if identity is None:
        return request.app.state.contact_store
    return RemoteContactStore(request.app.state.session_factory, identity.user_id)


def get_contact_store(
    request: Request, identity: Identity | None = Depends(get_identity)
) -> ContactStore:
    return build_contact_store(request, identity)


def get_extraction_gateway(request: Request) -> ExtractionGateway:
    return request.app.state.extraction_gateway


def get_controller(
    store: ContactStore = Depends(get_contact_store),
    gateway: ExtractionGateway = Depends(get_extraction_gateway),
) -> LifecycleController:
    return LifecycleController(store, gateway)
