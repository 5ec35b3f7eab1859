"""Pydantic schemas for sign-in and session state."""
from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, EmailStr, Field

from fotocall.services.session import SessionState


class Credentials(BaseModel):
    email: EmailStr
    password: Annotated[str, Field(min_length=6, max_length=128)]


class SessionRead(BaseModel):
    state: SessionState
    user_id: str | None = None
    email: str | None = None


class TokenRead(SessionRead):
    access_token: str
    refresh_token: str | None = None
    expires_in: int | None = None
