"""Data models for captured notifications."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class DecodedContent:
    """Fields recovered from a notification payload blob."""

    title: str = ""
    body: str = ""
    subtitle: str | None = None
    image_data: bytes | None = None

    @property
    def is_empty(self) -> bool:
        """True when there is neither a title nor a body."""
        return not self.title and not self.body


EMPTY_CONTENT = DecodedContent()


@dataclass(frozen=True)
class CapturedNotification:
    """A notification read from the OS notification database.

    Built only by the database poller after a successful decode and never
    mutated afterwards; persistence must treat ``id`` as an upsert key.
    """

    id: str
    app_identifier: str
    app_name: str
    title: str
    body: str
    timestamp: datetime
    subtitle: str | None = None
    image_data: bytes | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (image bytes reported by size only)."""
        return {
            "id": self.id,
            "app_identifier": self.app_identifier,
            "app_name": self.app_name,
            "title": self.title,
            "subtitle": self.subtitle,
            "body": self.body,
            "timestamp": self.timestamp.isoformat(),
            "image_bytes": len(self.image_data) if self.image_data else 0,
        }


@dataclass(frozen=True)
class BannerSighting:
    """A banner seen on screen via the accessibility tree.

    The tree exposes no identifier or delivery time, so this is a lighter
    variant of :class:`CapturedNotification` used only for display.
    """

    title: str
    body: str
    app_name: str | None = None

    @property
    def dedup_key(self) -> tuple[str, str]:
        return (self.title, self.body)


@dataclass(frozen=True)
class RawRecord:
    """One full row from the notification database, before decoding."""

    id: str
    app_id: int | None
    app_identifier: str | None
    data: bytes
    delivered_date: float | None
