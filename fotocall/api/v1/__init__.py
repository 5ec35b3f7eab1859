"""Version 1 API routes for the FotoCall lead tracker."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from fotocall.api.deps import get_app_settings
from fotocall.api.v1.auth import router as auth_router
from fotocall.api.v1.contacts import router as contacts_router
from fotocall.api.v1.extractions import router as extractions_router
from fotocall.core.config import Settings

router = APIRouter()
router.include_router(auth_router)
router.include_router(contacts_router)
router.include_router(extractions_router)


@router.get("/health", tags=["health"])
async def health_check(
    settings: Settings = Depends(get_app_settings),
) -> dict[str, dict[str, str]]:
    """Report the service health information."""
    return {
        "data": {
            "status": "ok",
            "version": settings.version,
            "storage": settings.storage_backend,
        }
    }
