"""Configuration management for the FastAPI application."""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()


class Settings(BaseModel):
    """Application configuration loaded from environment variables."""

    app_env: str = "dev"
    version: str = "0.1.0"
    cors_origins: list[str] = Field(default_factory=list)
    storage_backend: Literal["local", "remote"] = "local"
    local_store_path: str = "./fotocall_contacts.json"
    database_url: str = "sqlite:///./fotocall.db"
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    auth_url: str = ""
    auth_api_key: str = ""
    session_cookie_name: str = "fotocall_session"
    log_level: str = "INFO"

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: Any) -> list[str]:
        if isinstance(value, str):
            if not value:
                return []
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        if isinstance(value, list):
            return value
        return []

    @field_validator("storage_backend", mode="before")
    @classmethod
    def normalize_storage_backend(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @property
    def requires_auth(self) -> bool:
        """Only the remote backing is scoped by a signed-in identity."""
        return self.storage_backend == "remote"

    @property
    def async_database_url(self) -> str:
        if self.database_url.startswith("sqlite+aiosqlite://"):
            return self.database_url
        if self.database_url.startswith("sqlite:///"):
            return self.database_url.replace("sqlite:///", "sqlite+aiosqlite:///")
        if self.database_url.startswith("sqlite://"):
            return self.database_url.replace("sqlite://", "sqlite+aiosqlite://")
        return self.database_url


def _build_settings() -> Settings:
    raw_values: dict[str, Any] = {
        "app_env": os.getenv("APP_ENV"),
        "version": os.getenv("APP_VERSION"),
        "cors_origins": os.getenv("CORS_ORIGINS"),
        "storage_backend": os.getenv("STORAGE_BACKEND"),
        "local_store_path": os.getenv("LOCAL_STORE_PATH"),
        "database_url": os.getenv("DATABASE_URL"),
        "gemini_api_key": os.getenv("GEMINI_API_KEY"),
        "gemini_model": os.getenv("GEMINI_MODEL"),
        "auth_url": os.getenv("AUTH_URL"),
        "auth_api_key": os.getenv("AUTH_API_KEY"),
        "session_cookie_name": os.getenv("SESSION_COOKIE_NAME"),
        "log_level": os.getenv("LOG_LEVEL"),
    }
    filtered_values = {key: value for key, value in raw_values.items() if value is not None}
    return Settings(**filtered_values)


@lru_cache()
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return _build_settings()
