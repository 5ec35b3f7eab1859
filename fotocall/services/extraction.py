"""
Gemini-backed extraction of contact details from images.

Sends one image plus a fixed instruction to Gemini and asks for a JSON
array of contact objects. Each call is independent, so any number of
images may be in flight at the same time.
"""
from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from google import genai
from google.genai import types
from pydantic import TypeAdapter, ValidationError

from fotocall.schemas.contact import CandidateContact
from fotocall.services.errors import ExtractionFailure

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_MIME_TYPE = "image/jpeg"
SUPPORTED_MIME_TYPES = {"image/png", "image/jpeg", "image/webp"}
_MIME_ALIASES = {"image/jpg": "image/jpeg"}

_DATA_URL_PREFIX = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w.+-]+=[\w.+-]+)*;base64,",
    re.IGNORECASE,
)

EXTRACTION_PROMPT = (
    "Analyze this image and extract any contact information found. "
    "Focus on names, phone numbers, and company names if available. "
    'If there is context (like "plumber", "client", hand-written notes), '
    "add it to the notes field. "
    "Return an empty array if no clear contacts are found."
)

RESPONSE_SCHEMA = types.Schema(
    type=types.Type.ARRAY,
    items=types.Schema(
        type=types.Type.OBJECT,
        properties={
            "name": types.Schema(
                type=types.Type.STRING, description="Name of the person or entity"
            ),
            "phone": types.Schema(type=types.Type.STRING, description="Phone number found"),
            "company": types.Schema(
                type=types.Type.STRING, description="Company name if applicable"
            ),
            "notes": types.Schema(
                type=types.Type.STRING,
                description="Any additional context or notes found near the number",
            ),
        },
        required=["phone"],
    ),
)

_candidate_list = TypeAdapter(list[CandidateContact])


def detect_mime_type(data_url: str) -> str:
    """
    Derive the media type from a ``data:`` URL prefix.

    Only PNG, JPEG and WEBP are passed through; everything else, including
    a missing prefix, falls back to JPEG.
    """
    match = _DATA_URL_PREFIX.match(data_url)
    if match is None or not match.group("mime"):
        return DEFAULT_MIME_TYPE
    return normalize_mime_type(match.group("mime"))


def normalize_mime_type(content_type: str | None) -> str:
    if not content_type:
        return DEFAULT_MIME_TYPE
    mime_type = content_type.split(";", 1)[0].strip().lower()
    mime_type = _MIME_ALIASES.get(mime_type, mime_type)
    if mime_type in SUPPORTED_MIME_TYPES:
        return mime_type
    return DEFAULT_MIME_TYPE


def strip_data_url_prefix(data_url: str) -> str:
    """Return the bare base64 body of ``data_url``."""
    return _DATA_URL_PREFIX.sub("", data_url, count=1)


@dataclass(frozen=True)
class ImagePayload:
    """Raw image bytes and the media type sent along with them."""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    @classmethod
    def from_data_url(cls, data_url: str) -> ImagePayload:
        cleaned = data_url.strip()
        body = "".join(strip_data_url_prefix(cleaned).split())
        try:
            data = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError) as exc:
            logger.warning("Image payload is not valid base64")
            raise ExtractionFailure() from exc
        if not data:
            raise ExtractionFailure()
        return cls(data=data, mime_type=detect_mime_type(cleaned))

    @classmethod
    def from_upload(cls, data: bytes, content_type: str | None) -> ImagePayload:
        return cls(data=data, mime_type=normalize_mime_type(content_type))


class ExtractionGateway:
    """
    Thin wrapper around the Gemini ``generate_content`` call.

    No retries: a failed call raises ``ExtractionFailure`` straight away
    and the user decides whether to upload again.
    """

    def __init__(
        self,
        *,
        api_key: str = "",
        model: str = DEFAULT_MODEL,
        client: Any | None = None,
    ) -> None:
        """
        Args:
            api_key: Gemini API key. Without one (and without ``client``)
                every extraction fails.
            model: Gemini model name.
            client: Pre-built client exposing ``models.generate_content``.
        """
        self.model = model
        if client is None and api_key:
            client = genai.Client(api_key=api_key)
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None

    async def extract(self, image: ImagePayload) -> list[CandidateContact]:
        """
        Extract candidate contacts from one image.

        Returns:
            The candidates, possibly empty when the image holds none.

        Raises:
            ExtractionFailure: on any transport, auth, or schema problem.
        """
        if self._client is None:
            logger.error("Gemini API key is not configured")
            raise ExtractionFailure()
        if not image.data:
            raise ExtractionFailure()

        contents = [
            types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
            EXTRACTION_PROMPT,
        ]
        config = types.GenerateContentConfig(
            response_mime_type="application/json",
            response_schema=RESPONSE_SCHEMA,
        )

        try:
            # The SDK call blocks, keep it off the event loop.
            response = await asyncio.to_thread(
                self._client.models.generate_content,
                model=self.model,
                contents=contents,
                config=config,
            )
            text = response.text
        except Exception as exc:
            logger.error(
                "Gemini extraction request failed",
                exc_info=exc,
                extra={"mime_type": image.mime_type, "size": len(image.data)},
            )
            raise ExtractionFailure() from exc

        candidates = self.parse_response(text)
        logger.info(
            "Extracted contacts from image",
            extra={"mime_type": image.mime_type, "count": len(candidates)},
        )
        return candidates

    @staticmethod
    def parse_response(text: str | None) -> list[CandidateContact]:
        """Validate the JSON body returned by Gemini."""
        if text is None or not text.strip():
            return []
        try:
            payload = json.loads(text)
            return _candidate_list.validate_python(payload)
        except (ValueError, ValidationError) as exc:
            logger.warning("Gemini returned an unusable extraction payload", exc_info=exc)
            raise ExtractionFailure() from exc
