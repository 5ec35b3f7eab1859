"""Image upload endpoints that turn pictures into contacts."""
from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile, status

from fotocall.api.deps import get_controller
from fotocall.api.responses import data_response, http_error
from fotocall.schemas import DataUrlBatch, ExtractionOutcome
from fotocall.services.extraction import ImagePayload
from fotocall.services.lifecycle import LifecycleController

MAX_IMAGES_PER_REQUEST = 20

router = APIRouter(prefix="/extractions", tags=["extractions"])


@router.post("")
async def extract_uploaded_images(
    files: list[UploadFile] = File(...),
    controller: LifecycleController = Depends(get_controller),
) -> dict[str, list[ExtractionOutcome]]:
    """Extract contacts from each uploaded image; one outcome per file."""

    if len(files) > MAX_IMAGES_PER_REQUEST:
        raise http_error(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "VALIDATION_ERROR",
            f"At most {MAX_IMAGES_PER_REQUEST} images per request",
        )

    images = []
    for upload in files:
        content = await upload.read()
        images.append(ImagePayload.from_upload(content, upload.content_type))

    outcomes = await controller.submit_images(images)
    return data_response(outcomes)


@router.post("/data-urls")
async def extract_data_url_images(
    payload: DataUrlBatch,
    controller: LifecycleController = Depends(get_controller),
) -> dict[str, list[ExtractionOutcome]]:
    """Same as the upload endpoint, for images already encoded as data URLs."""

    outcomes = await controller.submit_images(payload.images)
    return data_response(outcomes)
