"""Search, sort and summary helpers over a contact collection."""
from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

from fotocall.models import CallStatus
from fotocall.schemas.contact import Contact, ContactStats, SortField, SortOrder

STATUS_LABELS: dict[CallStatus, str] = {
    CallStatus.PENDING: "Pending",
    CallStatus.CALLED: "Called",
    CallStatus.NO_ANSWER: "No answer",
    CallStatus.INTERESTED: "Interested",
    CallStatus.NOT_INTERESTED: "Not interested",
    CallStatus.CLOSED: "Closed",
}

_STATUS_ORDER = {status: position for position, status in enumerate(CallStatus)}


def filter_contacts(contacts: Iterable[Contact], query: str | None) -> list[Contact]:
    """Case-insensitive substring match on name, phone or company."""

    needle = (query or "").strip().lower()
    if not needle:
        return list(contacts)
    return [
        contact
        for contact in contacts
        if needle in contact.name.lower()
        or needle in contact.phone.lower()
        or needle in (contact.company or "").lower()
    ]


def sort_contacts(
    contacts: Iterable[Contact],
    field: SortField = "importedAt",
    order: SortOrder = "desc",
) -> list[Contact]:
    reverse = order == "desc"
    if field == "name":
        return sorted(contacts, key=lambda contact: contact.name.lower(), reverse=reverse)
    if field == "status":
        return sorted(contacts, key=lambda contact: _STATUS_ORDER[contact.status], reverse=reverse)
    return sorted(contacts, key=lambda contact: contact.imported_at, reverse=reverse)


def summarize(contacts: Sequence[Contact]) -> ContactStats:
    total = len(contacts)
    by_status: dict[CallStatus, int] = {}
    for contact in contacts:
        by_status[contact.status] = by_status.get(contact.status, 0) + 1

    pending = by_status.get(CallStatus.PENDING, 0)
    completion_rate = math.floor((total - pending) * 100 / total + 0.5) if total else 0
    ordered = {status: by_status[status] for status in CallStatus if status in by_status}
    return ContactStats(
        total=total,
        pending=pending,
        completion_rate=completion_rate,
        by_status=ordered,
    )
