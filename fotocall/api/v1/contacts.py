"""Contacts API routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from fotocall.api.deps import get_controller
from fotocall.api.responses import data_response, http_error, store_error
from fotocall.schemas import (
    Contact,
    ContactEdit,
    ContactStats,
    SortField,
    SortOrder,
    StatusChange,
)
from fotocall.services.errors import ContactNotFound, DeleteNotConfirmed, PersistenceFailure
from fotocall.services.lifecycle import LifecycleController

router = APIRouter(prefix="/contacts", tags=["contacts"])


@router.get("")
async def list_contacts(
    search: str | None = Query(None, max_length=200),
    sort: SortField = Query("importedAt"),
    order: SortOrder = Query("desc"),
    controller: LifecycleController = Depends(get_controller),
) -> dict[str, list[Contact]]:
    """List contacts, newest import first unless another sort is requested."""

    await _refresh(controller)
    return data_response(controller.view(search, sort, order))


@router.get("/stats")
async def contact_stats(
    controller: LifecycleController = Depends(get_controller),
) -> dict[str, ContactStats]:
    """Summarize call progress across all contacts."""

    await _refresh(controller)
    return data_response(controller.stats())


@router.patch("/{contact_id}")
async def edit_contact(
    contact_id: str,
    payload: ContactEdit,
    controller: LifecycleController = Depends(get_controller),
) -> dict[str, Contact]:
    """Save edits to name, phone, company or notes."""

    try:
        contact = await controller.save_edit(contact_id, payload)
    except (ContactNotFound, PersistenceFailure) as exc:
        raise store_error(exc) from exc
    return data_response(contact)


@router.put("/{contact_id}/status")
async def change_contact_status(
    contact_id: str,
    payload: StatusChange,
    controller: LifecycleController = Depends(get_controller),
) -> dict[str, Contact]:
    """Move a contact to another call-progress status."""

    try:
        contact = await controller.change_status(contact_id, payload.status)
    except (ContactNotFound, PersistenceFailure) as exc:
        raise store_error(exc) from exc
    return data_response(contact)


@router.delete("/{contact_id}")
async def delete_contact(
    contact_id: str,
    confirm: bool = Query(False),
    controller: LifecycleController = Depends(get_controller),
) -> dict[str, dict[str, bool]]:
    """Delete a contact once the user has confirmed it."""

    try:
        await controller.delete(contact_id, confirmed=confirm)
    except DeleteNotConfirmed as exc:
        raise http_error(status.HTTP_409_CONFLICT, "CONFIRMATION_REQUIRED", str(exc)) from exc
    except (ContactNotFound, PersistenceFailure) as exc:
        raise store_error(exc) from exc
    return data_response({"deleted": True})


async def _refresh(controller: LifecycleController) -> None:
    try:
        await controller.refresh()
    except PersistenceFailure as exc:
        raise store_error(exc) from exc
