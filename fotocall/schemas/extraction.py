"""Pydantic schemas for image extraction requests and results."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from fotocall.schemas.contact import Contact

OutcomeStatus = Literal["created", "empty", "failed"]


class DataUrlBatch(BaseModel):
    images: list[str] = Field(min_length=1, max_length=20)


class ExtractionOutcome(BaseModel):
    """How one submitted image ended up."""

    index: int
    status: OutcomeStatus
    contacts: list[Contact] = Field(default_factory=list)
    message: str | None = None
