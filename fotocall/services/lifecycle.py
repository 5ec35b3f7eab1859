"""Orchestrates extraction and contact store writes for one user."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Protocol, Union

from fotocall.models import CallStatus
from fotocall.schemas.contact import (
    CandidateContact,
    Contact,
    ContactEdit,
    ContactStats,
    SortField,
    SortOrder,
)
from fotocall.schemas.extraction import ExtractionOutcome
from fotocall.services.contact_views import filter_contacts, sort_contacts, summarize
from fotocall.services.errors import (
    ContactNotFound,
    DeleteNotConfirmed,
    ExtractionFailure,
    PersistenceFailure,
)
from fotocall.services.extraction import ImagePayload
from fotocall.services.store import Clock, ContactStore, merge_contact, newest_first, utcnow

NO_CONTACTS_MESSAGE = "No contacts found in this image."

logger = logging.getLogger(__name__)

ImageSource = Union[ImagePayload, str]


class Extractor(Protocol):
    async def extract(self, image: ImagePayload) -> list[CandidateContact]: ...


class LifecycleController:
    """The single writer in front of the contact store.

    ``collection`` is the visible snapshot. Writes are applied to it
    tentatively, then confirmed by the store; if the store rejects a write
    the snapshot is re-read from the store instead of trusting the tentative
    state.
    """

    def __init__(self, store: ContactStore, gateway: Extractor, *, clock: Clock = utcnow) -> None:
        self.store = store
        self.gateway = gateway
        self._clock = clock
        self._collection: list[Contact] = []

    @property
    def collection(self) -> list[Contact]:
        return list(self._collection)

    async def refresh(self) -> list[Contact]:
        self._collection = await self.store.list_contacts()
        return self.collection

    def view(
        self,
        search: str | None = None,
        sort: SortField = "importedAt",
        order: SortOrder = "desc",
    ) -> list[Contact]:
        return sort_contacts(filter_contacts(self._collection, search), sort, order)

    def stats(self) -> ContactStats:
        return summarize(self._collection)

    async def submit_images(self, images: Sequence[ImageSource]) -> list[ExtractionOutcome]:
        """Process every image concurrently; outcomes keep the input order.

        The collection is re-read once after every image has settled, so a
        slow read for one image cannot hide contacts stored for another.
        """
        results = await asyncio.gather(
            *(self._import(image, index) for index, image in enumerate(images))
        )
        if any(touched for _, touched in results):
            await self._reconcile()
        return [outcome for outcome, _ in results]

    async def submit_image(self, image: ImageSource, *, index: int = 0) -> ExtractionOutcome:
        outcome, touched = await self._import(image, index)
        if touched:
            await self._reconcile()
        return outcome

    async def _import(self, image: ImageSource, index: int) -> tuple[ExtractionOutcome, bool]:
        """Extract and store one image; the flag says whether the store was written to."""
        try:
            payload = ImagePayload.from_data_url(image) if isinstance(image, str) else image
            candidates = await self.gateway.extract(payload)
        except ExtractionFailure as exc:
            return ExtractionOutcome(index=index, status="failed", message=exc.message), False

        if not candidates:
            logger.info("No contacts found in image", extra={"index": index})
            return ExtractionOutcome(index=index, status="empty", message=NO_CONTACTS_MESSAGE), False

        try:
            created = await self.store.bulk_create(candidates)
        except PersistenceFailure as exc:
            return ExtractionOutcome(index=index, status="failed", message=exc.message), True

        logger.info("Imported contacts", extra={"index": index, "count": len(created)})
        return ExtractionOutcome(index=index, status="created", contacts=created), True

    async def change_status(self, contact_id: str, status: CallStatus) -> Contact:
        changes: dict[str, object] = {"status": status}
        if status is not CallStatus.PENDING:
            changes["last_contacted"] = self._clock()
        return await self._write(contact_id, changes)

    async def save_edit(self, contact_id: str, edit: ContactEdit) -> Contact:
        return await self._write(contact_id, edit.model_dump(exclude_unset=True))

    async def delete(self, contact_id: str, *, confirmed: bool) -> None:
        if not confirmed:
            raise DeleteNotConfirmed("Deleting a contact requires confirmation")

        removed = next((contact for contact in self._collection if contact.id == contact_id), None)
        self._collection = [contact for contact in self._collection if contact.id != contact_id]
        try:
            await self.store.delete(contact_id)
        except (ContactNotFound, PersistenceFailure):
            await self._reconcile(restore=removed)
            raise
        logger.info("Deleted contact", extra={"contact_id": contact_id})

    async def _current(self, contact_id: str) -> Contact:
        for contact in self._collection:
            if contact.id == contact_id:
                return contact
        for contact in await self.refresh():
            if contact.id == contact_id:
                return contact
        raise ContactNotFound(contact_id)

    async def _write(self, contact_id: str, changes: dict[str, Any]) -> Contact:
        """Show ``changes`` tentatively, then hand only those fields to the store.

        The store merges them onto its own current record, so fields this
        controller did not touch keep whatever another writer stored.
        """
        current = await self._current(contact_id)
        self._replace(merge_contact(current, changes))
        try:
            confirmed = await self.store.update(contact_id, changes)
        except (ContactNotFound, PersistenceFailure):
            await self._reconcile(restore=current)
            raise
        self._replace(confirmed)
        return confirmed

    def _replace(self, updated: Contact) -> None:
        self._collection = [
            updated if contact.id == updated.id else contact for contact in self._collection
        ]

    async def _reconcile(self, restore: Contact | None = None) -> None:
        try:
            await self.refresh()
        except PersistenceFailure:
            logger.warning("Could not re-read contacts, keeping the last confirmed record")
            if restore is None:
                return
            if any(contact.id == restore.id for contact in self._collection):
                self._replace(restore)
            else:
                self._collection = newest_first([*self._collection, restore])
