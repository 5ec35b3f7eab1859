from __future__ import annotations

import asyncio
import base64
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from conftest import FakeExtractor
from fotocall.models import CallStatus
from fotocall.schemas import UNKNOWN_NAME, CandidateContact, ContactEdit
from fotocall.services.errors import (
    GENERIC_EXTRACTION_MESSAGE,
    ContactNotFound,
    DeleteNotConfirmed,
    ExtractionFailure,
    PersistenceFailure,
)
from fotocall.services.extraction import ImagePayload
from fotocall.services.lifecycle import NO_CONTACTS_MESSAGE, LifecycleController
from fotocall.services.store import LocalContactStore

pytestmark = pytest.mark.anyio("asyncio")


class FlakyStore(LocalContactStore):
    """Local store whose writes and reads can be switched off."""

    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.fail_writes = False
        self.fail_reads = False

    async def list_contacts(self):
        if self.fail_reads:
            raise PersistenceFailure("Failed to load contacts.")
        return await super().list_contacts()

    async def bulk_create(self, candidates):
        if self.fail_writes:
            raise PersistenceFailure()
        return await super().bulk_create(candidates)

    async def update(self, contact_id, fields):
        if self.fail_writes:
            raise PersistenceFailure()
        return await super().update(contact_id, fields)

    async def delete(self, contact_id):
        if self.fail_writes:
            raise PersistenceFailure()
        return await super().delete(contact_id)


class TickingClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture()
async def store(tmp_path: Path) -> FlakyStore:
    store = FlakyStore(tmp_path / "contacts.json")
    await store.load()
    return store


@pytest.fixture()
def controller(store: FlakyStore, extractor: FakeExtractor) -> LifecycleController:
    return LifecycleController(store, extractor)


async def _seed(controller: LifecycleController, *phones: str):
    created = await controller.store.bulk_create([CandidateContact(phone=phone) for phone in phones])
    await controller.refresh()
    return created


async def test_submit_image_adds_every_candidate_as_pending(controller, extractor) -> None:
    existing = await _seed(controller, "555-0000")
    extractor.results[b"card"] = [
        {"name": "Ana", "phone": "555-0101"},
        {"name": "Ben", "phone": "555-0102"},
        {"name": "Cy", "phone": "555-0103"},
    ]

    outcome = await controller.submit_image(ImagePayload(data=b"card"))

    assert outcome.status == "created"
    assert len(outcome.contacts) == 3
    assert len(controller.collection) == 4
    new_ids = {contact.id for contact in outcome.contacts}
    assert len(new_ids) == 3
    assert existing[0].id not in new_ids
    for contact in outcome.contacts:
        assert contact.status is CallStatus.PENDING
        assert contact.imported_at is not None


async def test_submit_image_scenario_defaults_missing_name(controller, extractor) -> None:
    extractor.results[b"flyer"] = [{"phone": "555-0100", "notes": "plumber, call after 5pm"}]

    outcome = await controller.submit_image(ImagePayload(data=b"flyer"))

    assert outcome.status == "created"
    [contact] = controller.collection
    assert contact.name == UNKNOWN_NAME
    assert contact.phone == "555-0100"
    assert contact.notes == "plumber, call after 5pm"
    assert contact.status is CallStatus.PENDING


async def test_submit_image_with_no_contacts_is_a_soft_result(controller, extractor) -> None:
    await _seed(controller, "555-0000")
    before = controller.collection
    extractor.results[b"landscape"] = []

    outcome = await controller.submit_image(ImagePayload(data=b"landscape"))

    assert outcome.status == "empty"
    assert outcome.message == NO_CONTACTS_MESSAGE
    assert controller.collection == before
    assert await controller.store.list_contacts() == before


async def test_submit_image_reports_extraction_failure(controller, extractor) -> None:
    extractor.results[b"blurry"] = ExtractionFailure()

    outcome = await controller.submit_image(ImagePayload(data=b"blurry"))

    assert outcome.status == "failed"
    assert outcome.message == GENERIC_EXTRACTION_MESSAGE
    assert await controller.store.list_contacts() == []


async def test_submit_image_rejects_undecodable_data_url(controller, extractor) -> None:
    outcome = await controller.submit_image("data:image/png;base64,%%%")

    assert outcome.status == "failed"
    assert extractor.calls == []


async def test_submit_image_reports_store_failure(controller, extractor, store) -> None:
    await _seed(controller, "555-0000")
    extractor.results[b"card"] = [{"phone": "555-0101"}]
    store.fail_writes = True

    outcome = await controller.submit_image(ImagePayload(data=b"card"))

    assert outcome.status == "failed"
    assert [contact.phone for contact in controller.collection] == ["555-0000"]


async def test_back_to_back_images_all_land(controller, extractor) -> None:
    await _seed(controller, "555-0000")

    class SlowFirst(FakeExtractor):
        async def extract(self, image):
            if image.data == b"two":
                await asyncio.sleep(0.05)
            return await super().extract(image)

    slow = SlowFirst({b"two": [{"phone": "1"}, {"phone": "2"}], b"one": [{"phone": "3"}]})
    controller.gateway = slow
    images = [
        "data:image/png;base64," + base64.b64encode(b"two").decode(),
        "data:image/png;base64," + base64.b64encode(b"one").decode(),
    ]

    outcomes = await controller.submit_images(images)

    assert [outcome.index for outcome in outcomes] == [0, 1]
    assert [len(outcome.contacts) for outcome in outcomes] == [2, 1]
    assert len(controller.collection) == 4
    assert len(await controller.store.list_contacts()) == 4


async def test_change_status_stamps_last_contacted(controller) -> None:
    [contact] = await _seed(controller, "555-0100")
    requested_at = datetime.now(timezone.utc)

    updated = await controller.change_status(contact.id, CallStatus.CALLED)

    assert updated.status is CallStatus.CALLED
    assert updated.last_contacted is not None
    assert updated.last_contacted >= requested_at
    [stored] = await controller.store.list_contacts()
    assert stored.last_contacted == updated.last_contacted


async def test_change_status_refreshes_and_pending_preserves_last_contacted(store, extractor) -> None:
    clock = TickingClock()
    controller = LifecycleController(store, extractor, clock=clock)
    [contact] = await _seed(controller, "555-0100")

    called = await controller.change_status(contact.id, CallStatus.CALLED)
    interested = await controller.change_status(contact.id, CallStatus.INTERESTED)
    assert interested.last_contacted > called.last_contacted

    pending = await controller.change_status(contact.id, CallStatus.PENDING)
    assert pending.status is CallStatus.PENDING
    assert pending.last_contacted == interested.last_contacted


async def test_save_edit_only_touches_the_target(controller) -> None:
    target, other = await _seed(controller, "555-0100", "555-0200")
    await controller.change_status(target.id, CallStatus.INTERESTED)
    before = {contact.id: contact for contact in controller.collection}

    edited = await controller.save_edit(
        target.id,
        ContactEdit(name="Dana", phone="555-0199", company="Dana Co", notes="call Tue"),
    )

    assert (edited.name, edited.phone, edited.company, edited.notes) == (
        "Dana",
        "555-0199",
        "Dana Co",
        "call Tue",
    )
    assert edited.id == target.id
    assert edited.status is CallStatus.INTERESTED
    assert edited.imported_at == before[target.id].imported_at
    assert edited.last_contacted == before[target.id].last_contacted
    after = {contact.id: contact for contact in await controller.store.list_contacts()}
    assert after[other.id] == before[other.id]


async def test_save_edit_leaves_unset_fields_alone(controller) -> None:
    [contact] = await _seed(controller, "555-0100")
    await controller.save_edit(contact.id, ContactEdit(company="Acme"))

    edited = await controller.save_edit(contact.id, ContactEdit(notes="left voicemail"))

    assert edited.company == "Acme"
    assert edited.notes == "left voicemail"
    assert edited.phone == "555-0100"


async def test_failed_write_reconciles_from_store(controller, store) -> None:
    [contact] = await _seed(controller, "555-0100")
    store.fail_writes = True

    with pytest.raises(PersistenceFailure):
        await controller.change_status(contact.id, CallStatus.CLOSED)

    [visible] = controller.collection
    assert visible.status is CallStatus.PENDING


async def test_failed_write_falls_back_when_store_is_unreadable(controller, store) -> None:
    [contact] = await _seed(controller, "555-0100")
    store.fail_writes = True
    store.fail_reads = True

    with pytest.raises(PersistenceFailure):
        await controller.save_edit(contact.id, ContactEdit(name="Tentative"))

    [visible] = controller.collection
    assert visible.name == UNKNOWN_NAME


async def test_delete_requires_confirmation(controller) -> None:
    [contact] = await _seed(controller, "555-0100")

    with pytest.raises(DeleteNotConfirmed):
        await controller.delete(contact.id, confirmed=False)

    assert [item.id for item in await controller.store.list_contacts()] == [contact.id]


async def test_delete_removes_exactly_the_target(controller) -> None:
    first, second, third = await _seed(controller, "1", "2", "3")

    await controller.delete(second.id, confirmed=True)

    remaining = {contact.id for contact in controller.collection}
    assert remaining == {first.id, third.id}

    with pytest.raises(ContactNotFound):
        await controller.delete(second.id, confirmed=True)
    assert {contact.id for contact in controller.collection} == remaining
    assert {contact.id for contact in await controller.store.list_contacts()} == remaining


async def test_failed_delete_restores_the_contact(controller, store) -> None:
    [contact] = await _seed(controller, "555-0100")
    store.fail_writes = True

    with pytest.raises(PersistenceFailure):
        await controller.delete(contact.id, confirmed=True)

    assert [item.id for item in controller.collection] == [contact.id]


async def test_status_change_on_unknown_contact(controller) -> None:
    with pytest.raises(ContactNotFound):
        await controller.change_status("missing", CallStatus.CALLED)


async def test_view_and_stats_follow_the_collection(controller) -> None:
    first, second = await _seed(controller, "555-0100", "555-0200")
    await controller.save_edit(first.id, ContactEdit(company="Northwind"))
    await controller.change_status(second.id, CallStatus.CALLED)

    assert [contact.id for contact in controller.view("north")] == [first.id]
    stats = controller.stats()
    assert stats.total == 2
    assert stats.pending == 1
    assert stats.completion_rate == 50


async def test_overlapping_status_change_and_edit_both_land(store, extractor) -> None:
    [contact] = await _seed(LifecycleController(store, extractor), "555-0100")
    caller = LifecycleController(store, extractor)
    editor = LifecycleController(store, extractor)
    await caller.refresh()
    await editor.refresh()

    await asyncio.gather(
        caller.change_status(contact.id, CallStatus.CALLED),
        editor.save_edit(contact.id, ContactEdit(notes="call after 5pm")),
    )

    [stored] = await store.list_contacts()
    assert stored.status is CallStatus.CALLED
    assert stored.last_contacted is not None
    assert stored.notes == "call after 5pm"


async def test_edit_does_not_resend_status(store, extractor) -> None:
    [contact] = await _seed(LifecycleController(store, extractor), "555-0100")
    stale = LifecycleController(store, extractor)
    await stale.refresh()
    await LifecycleController(store, extractor).change_status(contact.id, CallStatus.INTERESTED)

    edited = await stale.save_edit(contact.id, ContactEdit(name="Dana"))

    assert edited.name == "Dana"
    assert edited.status is CallStatus.INTERESTED
    assert edited.last_contacted is not None


async def test_overlapping_delete_and_status_change(store, extractor) -> None:
    [target, other] = await _seed(LifecycleController(store, extractor), "555-0100", "555-0200")
    remover = LifecycleController(store, extractor)
    caller = LifecycleController(store, extractor)
    await remover.refresh()
    await caller.refresh()

    deleted, changed = await asyncio.gather(
        remover.delete(target.id, confirmed=True),
        caller.change_status(target.id, CallStatus.CALLED),
        return_exceptions=True,
    )

    assert deleted is None
    assert isinstance(changed, ContactNotFound)
    assert [contact.id for contact in await store.list_contacts()] == [other.id]
    assert [contact.id for contact in caller.collection] == [other.id]


async def test_failed_delete_keeps_later_writes_when_store_is_unreadable(store, extractor) -> None:
    first, second = await _seed(LifecycleController(store, extractor), "555-0100", "555-0200")
    controller = LifecycleController(store, extractor)
    await controller.refresh()
    await controller.change_status(second.id, CallStatus.CLOSED)
    store.fail_writes = True
    store.fail_reads = True

    with pytest.raises(PersistenceFailure):
        await controller.delete(first.id, confirmed=True)

    visible = {contact.id: contact for contact in controller.collection}
    assert set(visible) == {first.id, second.id}
    assert visible[second.id].status is CallStatus.CLOSED
