"""Application entrypoint for the FotoCall lead tracker."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fotocall.api.v1 import router as api_v1_router
from fotocall.core.config import Settings, get_settings
from fotocall.core.db import build_engine, build_session_factory
from fotocall.core.logging import configure_logging
from fotocall.models import Base
from fotocall.services.extraction import ExtractionGateway
from fotocall.services.store import LocalContactStore
from fotocall.web import router as web_router

logger = logging.getLogger(__name__)

ERROR_CODE_MAP: dict[int, str] = {
    401: "UNAUTHENTICATED",
    404: "RESOURCE_NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
}


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance."""
    settings = settings or get_settings()
    configure_logging(settings)

    application = FastAPI(
        title="FotoCall CRM", version=settings.version, lifespan=_lifespan
    )
    application.state.settings = settings

    _configure_cors(application, settings)
    _configure_exception_handlers(application)

    application.include_router(web_router)
    application.include_router(api_v1_router, prefix="/api/v1")

    return application


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    settings: Settings = application.state.settings
    application.state.extraction_gateway = ExtractionGateway(
        api_key=settings.gemini_api_key, model=settings.gemini_model
    )
    if not application.state.extraction_gateway.configured:
        logger.warning("GEMINI_API_KEY is not set; image extraction will fail")

    if settings.storage_backend == "local":
        store = LocalContactStore(settings.local_store_path)
        await store.load()
        application.state.contact_store = store
        logger.info("Using local contact store", extra={"path": settings.local_store_path})
        yield
        return

    engine = build_engine(settings)
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    application.state.session_factory = build_session_factory(engine)
    logger.info("Using remote contact store")
    try:
        yield
    finally:
        await engine.dispose()


def _configure_cors(application: FastAPI, settings: Settings) -> None:
    if not settings.cors_origins:
        return

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _configure_exception_handlers(application: FastAPI) -> None:
    application.add_exception_handler(HTTPException, _http_exception_handler)
    application.add_exception_handler(RequestValidationError, _validation_exception_handler)
    application.add_exception_handler(Exception, _unhandled_exception_handler)


async def _http_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, HTTPException)
    if isinstance(exc.detail, dict):
        message = str(exc.detail.get("message", "")) or str(exc.detail)
        code = exc.detail.get(
            "code", ERROR_CODE_MAP.get(exc.status_code, f"HTTP_{exc.status_code}")
        )
    else:
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        code = ERROR_CODE_MAP.get(exc.status_code, f"HTTP_{exc.status_code}")
    return _error_response(code, message, exc.status_code, headers=exc.headers)


async def _validation_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, RequestValidationError)
    logger.info("Validation error", extra={"errors": exc.errors()})
    return _error_response("VALIDATION_ERROR", "Validation error", status_code=422)


async def _unhandled_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled application error")
    return _error_response("INTERNAL_SERVER_ERROR", "Internal server error", status_code=500)


def _error_response(
    code: str, message: str, status_code: int, headers: dict[str, str] | None = None
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
        headers=headers,
    )


app = create_app()
