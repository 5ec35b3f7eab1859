"""Contact table definition for the remote store."""
from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from fotocall.models.base import Base


class CallStatus(str, Enum):
    """Call-progress states; any state may be reassigned to any other."""

    PENDING = "PENDING"
    CALLED = "CALLED"
    NO_ANSWER = "NO_ANSWER"
    INTERESTED = "INTERESTED"
    NOT_INTERESTED = "NOT_INTERESTED"
    CLOSED = "CLOSED"


class ContactRow(Base):
    """A lead owned by one signed-in user."""

    __tablename__ = "contacts"
    __table_args__ = (Index("ix_contacts_user_imported", "user_id", "imported_at"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(64), nullable=False)
    company: Mapped[str | None] = mapped_column(String(255))
    notes: Mapped[str | None] = mapped_column(Text())
    status: Mapped[CallStatus] = mapped_column(
        SQLEnum(CallStatus, name="call_status", native_enum=False),
        nullable=False,
        default=CallStatus.PENDING,
    )
    imported_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_contacted: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
