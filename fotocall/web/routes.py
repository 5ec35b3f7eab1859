"""Server-rendered views: the dashboard and the sign-in page."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, Form, Query, Request, status
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from fotocall.api.deps import (
    build_contact_store,
    get_app_settings,
    get_extraction_gateway,
    get_user_session,
)
from fotocall.core.auth import AuthProviderError, InvalidCredentialsError
from fotocall.core.config import Settings
from fotocall.models import CallStatus
from fotocall.services.contact_views import STATUS_LABELS
from fotocall.services.errors import PersistenceFailure
from fotocall.services.extraction import ExtractionGateway
from fotocall.services.lifecycle import LifecycleController
from fotocall.services.session import UserSession

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))

router = APIRouter()


@router.get("/", response_class=HTMLResponse, name="web_dashboard")
async def dashboard_page(
    request: Request,
    search: str | None = Query(None),
    settings: Settings = Depends(get_app_settings),
    session: UserSession = Depends(get_user_session),
    gateway: ExtractionGateway = Depends(get_extraction_gateway),
) -> Response:
    """Render the contact table, or send signed-out users to the sign-in page."""

    if settings.requires_auth and not session.is_authenticated:
        return RedirectResponse(request.url_for("web_login"), status_code=status.HTTP_303_SEE_OTHER)

    controller = LifecycleController(build_contact_store(request, session.identity), gateway)
    error = None
    try:
        await controller.refresh()
    except PersistenceFailure as exc:
        error = exc.message

    contacts: list[dict[str, Any]] = [
        {
            "id": contact.id,
            "name": contact.name,
            "phone": contact.phone,
            "company": contact.company or "",
            "notes": contact.notes,
            "status": contact.status.value,
            "status_label": STATUS_LABELS[contact.status],
            "imported_at": contact.imported_at,
            "last_contacted": contact.last_contacted,
        }
        for contact in controller.view(search)
    ]
    stats = controller.stats()

    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "contacts": contacts,
            "search": search or "",
            "stats": stats,
            "status_breakdown": [
                {"label": STATUS_LABELS[status_value], "count": count}
                for status_value, count in stats.by_status.items()
            ],
            "statuses": [
                {"value": status_value.value, "label": STATUS_LABELS[status_value]}
                for status_value in CallStatus
            ],
            "signed_in_as": session.identity.email if session.identity else None,
            "auth_enabled": settings.requires_auth,
            "error": error,
        },
    )


@router.get("/login", response_class=HTMLResponse, name="web_login")
async def login_page(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> Response:
    if not settings.requires_auth:
        return RedirectResponse(request.url_for("web_dashboard"), status_code=status.HTTP_303_SEE_OTHER)
    return templates.TemplateResponse(request, "login.html", {"error": None, "email": ""})


@router.post("/login", response_class=HTMLResponse)
async def login_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    settings: Settings = Depends(get_app_settings),
    session: UserSession = Depends(get_user_session),
) -> Response:
    if not settings.requires_auth:
        return RedirectResponse(request.url_for("web_dashboard"), status_code=status.HTTP_303_SEE_OTHER)

    try:
        tokens = await session.sign_in(email, password)
    except InvalidCredentialsError:
        return templates.TemplateResponse(
            request,
            "login.html",
            {"error": "Invalid email or password.", "email": email},
            status_code=status.HTTP_401_UNAUTHORIZED,
        )
    except AuthProviderError:
        return templates.TemplateResponse(
            request,
            "login.html",
            {"error": "Sign-in is unavailable right now. Please try again.", "email": email},
            status_code=status.HTTP_502_BAD_GATEWAY,
        )

    response = RedirectResponse(request.url_for("web_dashboard"), status_code=status.HTTP_303_SEE_OTHER)
    response.set_cookie(
        settings.session_cookie_name,
        tokens.access_token,
        max_age=tokens.expires_in,
        httponly=True,
        samesite="lax",
        secure=settings.app_env == "prod",
    )
    return response


@router.post("/logout", name="web_logout")
async def logout_submit(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    session: UserSession = Depends(get_user_session),
) -> Response:
    if settings.requires_auth:
        try:
            await session.sign_out()
        except AuthProviderError as exc:
            # The cookie is dropped below either way.
            logger.warning("Identity provider sign-out failed", exc_info=exc)
    response = RedirectResponse(request.url_for("web_login"), status_code=status.HTTP_303_SEE_OTHER)
    response.delete_cookie(settings.session_cookie_name)
    return response
