"""Multi-strategy decoder for notification payload blobs.

The OS stores each notification as an undocumented blob whose encoding has
changed between releases.  Decoding is best effort: every strategy turns the
bytes into native Python values (dict / list / str / numbers / bytes /
datetime / None) and a single field extractor reads title, subtitle, body
and image from whatever dictionary comes out.  Strategies run in order:

1. keyed archive (``bplist`` magic), strict resolver then legacy resolver
2. property list (binary or XML)
3. raw UTF-8 text containing a JSON object

The first strategy whose extraction has a title or body wins.  When all of
them fail the result is :data:`EMPTY_CONTENT`; nothing is ever raised.
"""

from __future__ import annotations

import json
import plistlib
from collections.abc import Callable
from typing import Any

from notifydeck.capture.keyed_archive import ArchiveStructureError, unarchive
from notifydeck.capture.models import EMPTY_CONTENT, DecodedContent
from notifydeck.logging import get_logger

log = get_logger("notifydeck.capture.decoder")

BPLIST_MAGIC = b"bplist"
PNG_MAGIC = b"\x89PNG"
JPEG_MAGIC = b"\xff\xd8\xff"

# Candidate keys, highest priority first
TITLE_KEYS = ("titl", "title", "Title", "alertTitle", "header")
SUBTITLE_KEYS = ("subt", "subtitle", "Subtitle", "alertSubtitle")
BODY_KEYS = ("body", "Body", "alertBody", "message", "text", "content")
IMAGE_KEYS = (
    "atta",
    "attachments",
    "attachment",
    "imag",
    "image",
    "icon",
    "thumbnail",
    "artwork",
    "albumArt",
    "contentImage",
)
ATTACHMENT_DATA_KEYS = ("data", "imageData")

MIN_IMAGE_BYTES = 100
MIN_SCANNED_IMAGE_BYTES = 1000
MAX_NESTING = 1

Strategy = Callable[[bytes], Any]


def decode_keyed_archive(data: bytes) -> Any:
    if not data.startswith(BPLIST_MAGIC):
        return None
    try:
        return unarchive(data, strict=True)
    except ArchiveStructureError as exc:
        log.debug("keyed_archive_strict_failed", error=str(exc))
    try:
        return unarchive(data, strict=False)
    except ArchiveStructureError as exc:
        log.debug("keyed_archive_legacy_failed", error=str(exc))
        return None


def decode_property_list(data: bytes) -> Any:
    try:
        value = plistlib.loads(data)
    except Exception:
        return None
    return value if isinstance(value, dict) else None


def decode_raw_text(data: bytes) -> Any:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return None
    if "{" not in text:
        return None
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("keyed_archive", decode_keyed_archive),
    ("property_list", decode_property_list),
    ("raw_text", decode_raw_text),
)


def decode_payload(data: bytes | None) -> DecodedContent:
    """Decode a payload blob into notification fields."""
    if not data:
        return EMPTY_CONTENT

    for name, strategy in STRATEGIES:
        try:
            value = strategy(data)
        except Exception as exc:
            log.debug("payload_strategy_failed", strategy=name, error=repr(exc))
            continue
        if not isinstance(value, dict):
            continue
        content = extract_fields(value)
        if not content.is_empty:
            log.debug("payload_decoded", strategy=name, has_image=content.image_data is not None)
            return content

    return EMPTY_CONTENT


def extract_fields(values: dict[str, Any], _depth: int = 0) -> DecodedContent:
    """Pull notification fields out of a decoded dictionary."""
    title = _first_string(values, TITLE_KEYS)
    subtitle = _first_string(values, SUBTITLE_KEYS) or None
    body = _first_string(values, BODY_KEYS)
    image = _find_image(values)

    if _depth < MAX_NESTING and (not title or not body or image is None):
        for value in values.values():
            if not isinstance(value, dict):
                continue
            nested = extract_fields(value, _depth + 1)
            if not title and nested.title:
                title = nested.title
                subtitle = subtitle or nested.subtitle
                body = body or nested.body
            elif not body and nested.body:
                body = nested.body
            if image is None and nested.image_data is not None:
                image = nested.image_data

    return DecodedContent(title=title, body=body, subtitle=subtitle, image_data=image)


def _first_string(values: dict[str, Any], keys: tuple[str, ...]) -> str:
    for key in keys:
        value = values.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _find_image(values: dict[str, Any]) -> bytes | None:
    for key in IMAGE_KEYS:
        value = values.get(key)
        if isinstance(value, bytes) and len(value) > MIN_IMAGE_BYTES:
            return value
        if isinstance(value, list) and value and isinstance(value[0], dict):
            for data_key in ATTACHMENT_DATA_KEYS:
                data = value[0].get(data_key)
                if isinstance(data, bytes) and len(data) > MIN_IMAGE_BYTES:
                    return data

    for value in values.values():
        if (
            isinstance(value, bytes)
            and len(value) > MIN_SCANNED_IMAGE_BYTES
            and (value.startswith(PNG_MAGIC) or value.startswith(JPEG_MAGIC))
        ):
            return value
    return None
