"""Sign-up, sign-in and session endpoints for the remote variant."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from fotocall.api.deps import get_app_settings, get_auth_provider, get_user_session
from fotocall.api.responses import auth_error, data_response, http_error
from fotocall.core.auth import AuthProviderClient, AuthProviderError, AuthTokens
from fotocall.core.config import Settings
from fotocall.schemas.auth import Credentials, SessionRead, TokenRead
from fotocall.services.session import SessionState, UserSession

router = APIRouter(prefix="/auth", tags=["auth"])


def _require_auth_enabled(settings: Settings = Depends(get_app_settings)) -> Settings:
    if not settings.requires_auth:
        raise http_error(
            status.HTTP_404_NOT_FOUND,
            "AUTH_DISABLED",
            "Authentication is only available with the remote contact store",
        )
    return settings


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    payload: Credentials,
    response: Response,
    settings: Settings = Depends(_require_auth_enabled),
    provider: AuthProviderClient = Depends(get_auth_provider),
) -> dict[str, SessionRead]:
    """Create an account; signs the user in unless email confirmation is pending."""

    try:
        tokens = await provider.sign_up(payload.email, payload.password)
    except AuthProviderError as exc:
        raise auth_error(exc) from exc

    if tokens is None:
        return data_response(SessionRead(state=SessionState.UNAUTHENTICATED, email=payload.email))

    _set_session_cookie(response, settings, tokens)
    return data_response(
        SessionRead(
            state=SessionState.AUTHENTICATED,
            user_id=tokens.identity.user_id,
            email=tokens.identity.email,
        )
    )


@router.post("/login")
async def login(
    payload: Credentials,
    response: Response,
    settings: Settings = Depends(_require_auth_enabled),
    session: UserSession = Depends(get_user_session),
) -> dict[str, TokenRead]:
    """Sign in and persist the session in a cookie."""

    try:
        tokens = await session.sign_in(payload.email, payload.password)
    except AuthProviderError as exc:
        raise auth_error(exc) from exc

    _set_session_cookie(response, settings, tokens)
    return data_response(
        TokenRead(
            state=session.state,
            user_id=tokens.identity.user_id,
            email=tokens.identity.email,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_in=tokens.expires_in,
        )
    )


@router.post("/logout")
async def logout(
    response: Response,
    settings: Settings = Depends(_require_auth_enabled),
    session: UserSession = Depends(get_user_session),
) -> dict[str, SessionRead]:
    """Sign out and drop the session cookie."""

    response.delete_cookie(settings.session_cookie_name)
    try:
        await session.sign_out()
    except AuthProviderError as exc:
        raise auth_error(exc) from exc
    return data_response(SessionRead(state=session.state))


@router.get("/session")
async def current_session(
    settings: Settings = Depends(_require_auth_enabled),
    session: UserSession = Depends(get_user_session),
) -> dict[str, SessionRead]:
    """Report whether the caller is signed in."""

    identity = session.identity
    return data_response(
        SessionRead(
            state=session.state,
            user_id=identity.user_id if identity else None,
            email=identity.email if identity else None,
        )
    )


def _set_session_cookie(response: Response, settings: Settings, tokens: AuthTokens) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        tokens.access_token,
        max_age=tokens.expires_in,
        httponly=True,
        samesite="lax",
        secure=settings.app_env == "prod",
    )
