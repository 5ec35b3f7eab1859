"""Contact stores: a local JSON document or the remote ``contacts`` table."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fotocall.models import CallStatus, ContactRow
from fotocall.schemas.contact import CandidateContact, Contact
from fotocall.services.errors import ContactNotFound, PersistenceFailure

logger = logging.getLogger(__name__)

STORAGE_KEY = "fotocall.contacts"
WRITABLE_FIELDS = frozenset({"name", "phone", "company", "notes", "status", "last_contacted"})

Clock = Callable[[], datetime]

_contact_list = TypeAdapter(list[Contact])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_contact_id() -> str:
    return uuid.uuid4().hex


def merge_contact(contact: Contact, fields: Mapping[str, Any]) -> Contact:
    """Return ``contact`` with ``fields`` applied and re-validated."""
    unknown = set(fields) - WRITABLE_FIELDS
    if unknown:
        msg = f"Fields cannot be updated: {', '.join(sorted(unknown))}"
        raise ValueError(msg)
    return Contact.model_validate({**contact.model_dump(), **fields})


def newest_first(contacts: Iterable[Contact]) -> list[Contact]:
    return sorted(contacts, key=lambda contact: contact.imported_at, reverse=True)


class ContactStore(ABC):
    """The canonical collection of contacts for one user."""

    def __init__(self, *, clock: Clock = utcnow) -> None:
        self._clock = clock

    @abstractmethod
    async def list_contacts(self) -> list[Contact]:
        """Return every contact, newest import first."""

    @abstractmethod
    async def bulk_create(self, candidates: Iterable[CandidateContact]) -> list[Contact]:
        """Persist all candidates as new PENDING contacts, or none of them."""

    @abstractmethod
    async def update(self, contact_id: str, fields: Mapping[str, Any]) -> Contact:
        """Merge ``fields`` onto an existing contact."""

    @abstractmethod
    async def delete(self, contact_id: str) -> None:
        """Remove a contact; unknown ids raise ``ContactNotFound``."""

    def _build_contacts(self, candidates: Iterable[CandidateContact]) -> list[Contact]:
        # One timestamp per batch keeps extraction order under newest-first sorting.
        imported_at = self._clock()
        contacts = []
        for candidate in candidates:
            contacts.append(
                Contact(
                    id=new_contact_id(),
                    name=candidate.name,
                    phone=candidate.phone,
                    company=candidate.company,
                    notes=candidate.notes,
                    status=CallStatus.PENDING,
                    imported_at=imported_at,
                )
            )
        return contacts


class LocalContactStore(ContactStore):
    """Single-tenant store kept as one JSON block on disk.

    The block is read once by ``load`` and rewritten in full after every
    mutation. Mutations hold ``_lock`` across the read-modify-write, since
    the file write suspends and another mutation could otherwise interleave.
    """

    def __init__(self, path: Path | str, *, clock: Clock = utcnow) -> None:
        super().__init__(clock=clock)
        self.path = Path(path)
        self._contacts: list[Contact] = []
        self._loaded = False
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        document = await asyncio.to_thread(self._read_document)
        try:
            contacts = _contact_list.validate_python(document.get(STORAGE_KEY, []))
        except ValidationError as exc:
            logger.error("Stored contacts are unreadable", extra={"path": str(self.path)})
            raise PersistenceFailure("Stored contacts could not be read.") from exc
        self._contacts = newest_first(contacts)
        self._loaded = True
        logger.info(
            "Loaded local contacts",
            extra={"path": str(self.path), "count": len(self._contacts)},
        )

    async def list_contacts(self) -> list[Contact]:
        if not self._loaded:
            async with self._lock:
                await self._ensure_loaded()
        return list(self._contacts)

    async def bulk_create(self, candidates: Iterable[CandidateContact]) -> list[Contact]:
        created = self._build_contacts(candidates)
        if not created:
            return []
        async with self._lock:
            await self._ensure_loaded()
            await self._commit(newest_first([*created, *self._contacts]))
        return created

    async def update(self, contact_id: str, fields: Mapping[str, Any]) -> Contact:
        async with self._lock:
            await self._ensure_loaded()
            index = self._index_of(contact_id)
            updated = merge_contact(self._contacts[index], fields)
            contacts = list(self._contacts)
            contacts[index] = updated
            await self._commit(contacts)
        return updated

    async def delete(self, contact_id: str) -> None:
        async with self._lock:
            await self._ensure_loaded()
            index = self._index_of(contact_id)
            contacts = list(self._contacts)
            del contacts[index]
            await self._commit(contacts)

    async def _ensure_loaded(self) -> None:
        if not self._loaded:
            await self.load()

    def _index_of(self, contact_id: str) -> int:
        for index, contact in enumerate(self._contacts):
            if contact.id == contact_id:
                return index
        raise ContactNotFound(contact_id)

    async def _commit(self, contacts: list[Contact]) -> None:
        try:
            await asyncio.to_thread(self._write_document, contacts)
        except OSError as exc:
            logger.error(
                "Failed to write local contacts",
                exc_info=exc,
                extra={"path": str(self.path)},
            )
            raise PersistenceFailure() from exc
        self._contacts = contacts

    def _read_document(self) -> dict[str, Any]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise PersistenceFailure("Stored contacts could not be read.") from exc

        if not text.strip():
            return {}
        try:
            document = json.loads(text)
        except ValueError as exc:
            raise PersistenceFailure("Stored contacts could not be read.") from exc
        if not isinstance(document, dict):
            raise PersistenceFailure("Stored contacts could not be read.")
        return document

    def _write_document(self, contacts: list[Contact]) -> None:
        payload = {
            STORAGE_KEY: [
                contact.model_dump(mode="json", by_alias=True) for contact in contacts
            ]
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temporary = self.path.with_name(f"{self.path.name}.tmp")
        temporary.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(temporary, self.path)


class RemoteContactStore(ContactStore):
    """Contacts in the relational ``contacts`` table, scoped to one user."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        user_id: str,
        *,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(clock=clock)
        self._session_factory = session_factory
        self.user_id = user_id

    async def list_contacts(self) -> list[Contact]:
        stmt = (
            select(ContactRow)
            .where(ContactRow.user_id == self.user_id)
            .order_by(ContactRow.imported_at.desc())
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as exc:
            logger.error("Failed to load contacts", exc_info=exc, extra={"user_id": self.user_id})
            raise PersistenceFailure("Failed to load contacts.") from exc
        return [row_to_contact(row) for row in rows]

    async def bulk_create(self, candidates: Iterable[CandidateContact]) -> list[Contact]:
        created = self._build_contacts(candidates)
        if not created:
            return []

        async with self._session_factory() as session:
            session.add_all([contact_to_row(contact, self.user_id) for contact in created])
            try:
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error(
                    "Failed to insert contacts",
                    exc_info=exc,
                    extra={"user_id": self.user_id, "count": len(created)},
                )
                raise PersistenceFailure() from exc
        return created

    async def update(self, contact_id: str, fields: Mapping[str, Any]) -> Contact:
        async with self._session_factory() as session:
            try:
                row = await self._get_row(session, contact_id)
                updated = merge_contact(row_to_contact(row), fields)
                _apply_to_row(row, updated, fields)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error(
                    "Failed to update contact",
                    exc_info=exc,
                    extra={"user_id": self.user_id, "contact_id": contact_id},
                )
                raise PersistenceFailure("Failed to update contact.") from exc
        return updated

    async def delete(self, contact_id: str) -> None:
        stmt = delete(ContactRow).where(
            ContactRow.id == contact_id, ContactRow.user_id == self.user_id
        )
        async with self._session_factory() as session:
            try:
                result = await session.execute(stmt)
                if result.rowcount == 0:
                    await session.rollback()
                    raise ContactNotFound(contact_id)
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error(
                    "Failed to delete contact",
                    exc_info=exc,
                    extra={"user_id": self.user_id, "contact_id": contact_id},
                )
                raise PersistenceFailure("Failed to delete contact.") from exc

    async def _get_row(self, session: AsyncSession, contact_id: str) -> ContactRow:
        result = await session.execute(
            select(ContactRow).where(
                ContactRow.id == contact_id, ContactRow.user_id == self.user_id
            )
        )
        row = result.scalars().first()
        if row is None:
            raise ContactNotFound(contact_id)
        return row


def row_to_contact(row: ContactRow) -> Contact:
    """Translate a wire row into the in-memory shape; ``user_id`` stays behind."""
    return Contact(
        id=row.id,
        name=row.name,
        phone=row.phone,
        company=row.company,
        notes=row.notes,
        status=row.status,
        imported_at=row.imported_at,
        last_contacted=row.last_contacted,
    )


def contact_to_row(contact: Contact, user_id: str) -> ContactRow:
    return ContactRow(
        id=contact.id,
        user_id=user_id,
        name=contact.name,
        phone=contact.phone,
        company=contact.company,
        notes=contact.notes,
        status=contact.status,
        imported_at=contact.imported_at,
        last_contacted=contact.last_contacted,
    )


def _apply_to_row(row: ContactRow, contact: Contact, fields: Iterable[str]) -> None:
    # Only the requested columns; the rest keep what is stored.
    for field in fields:
        setattr(row, field, getattr(contact, field))
