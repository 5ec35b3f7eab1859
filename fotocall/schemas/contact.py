"""Pydantic schemas for contact records."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

from fotocall.models.contact import CallStatus

UNKNOWN_NAME = "Unknown"

PhoneNumber = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]
SortField = Literal["importedAt", "name", "status"]
SortOrder = Literal["asc", "desc"]


def _default_name(value: Any) -> Any:
    if value is None:
        return UNKNOWN_NAME
    if isinstance(value, str) and not value.strip():
        return UNKNOWN_NAME
    return value


class CamelModel(BaseModel):
    """Base model that reads snake_case or camelCase and writes camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CandidateContact(BaseModel):
    """A contact-shaped record returned by the extraction service."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = None
    phone: PhoneNumber
    company: str | None = None
    notes: str | None = None


class Contact(CamelModel):
    """The in-memory shape of a lead, as the presentation layer sees it."""

    id: str
    name: str = UNKNOWN_NAME
    phone: PhoneNumber
    company: str | None = None
    notes: str = ""
    status: CallStatus = CallStatus.PENDING
    imported_at: datetime
    last_contacted: datetime | None = None

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, value: Any) -> Any:
        return _default_name(value)

    @field_validator("notes", mode="before")
    @classmethod
    def default_notes(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("imported_at", "last_contacted")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        # SQLite hands back naive datetimes.
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class ContactEdit(CamelModel):
    """Fields a user may change from the edit form."""

    name: str | None = None
    phone: PhoneNumber | None = None
    company: str | None = None
    notes: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def default_name(cls, value: Any) -> Any:
        return _default_name(value)

    @field_validator("phone", mode="before")
    @classmethod
    def phone_not_null(cls, value: Any) -> Any:
        if value is None:
            msg = "phone cannot be cleared"
            raise ValueError(msg)
        return value

    @field_validator("notes", mode="before")
    @classmethod
    def default_notes(cls, value: Any) -> Any:
        return "" if value is None else value


class StatusChange(BaseModel):
    status: CallStatus


class ContactStats(CamelModel):
    total: int
    pending: int
    completion_rate: int
    by_status: dict[CallStatus, int] = Field(default_factory=dict)
