"""Errors raised by the contact lifecycle services."""
from __future__ import annotations

GENERIC_EXTRACTION_MESSAGE = "Failed to process image. Please try again."
GENERIC_PERSISTENCE_MESSAGE = "Failed to save contacts. Please try again."


class ExtractionFailure(Exception):
    """The image could not be turned into candidate contacts."""

    def __init__(self, message: str = GENERIC_EXTRACTION_MESSAGE) -> None:
        super().__init__(message)
        self.message = message


class PersistenceFailure(Exception):
    """A write or read against the backing store failed."""

    def __init__(self, message: str = GENERIC_PERSISTENCE_MESSAGE) -> None:
        super().__init__(message)
        self.message = message


class ContactNotFound(LookupError):
    """No contact with the given identifier exists for the current user."""

    def __init__(self, contact_id: str) -> None:
        super().__init__(f"Contact {contact_id!r} not found")
        self.contact_id = contact_id


class DeleteNotConfirmed(Exception):
    """A delete request arrived without explicit user confirmation."""
