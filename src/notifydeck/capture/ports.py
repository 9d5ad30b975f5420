"""Collaborator interfaces used by the capture pipeline.

Everything the detectors talk to outside the process is injected through
one of these protocols, so tests can substitute plain fakes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Protocol

from notifydeck.capture.geometry import Rect, ScreenSize
from notifydeck.capture.models import BannerSighting, CapturedNotification


class PersistenceSink(Protocol):
    """Stores captured notifications; must upsert or ignore by ``id``."""

    def save_all(self, items: Sequence[CapturedNotification]) -> None: ...


class DisplaySink(Protocol):
    """Shows a notification to the user.  Fire and forget."""

    def show(self, item: CapturedNotification | BannerSighting) -> None: ...


class PermissionChecker(Protocol):
    def has_read_access(self) -> bool:
        """Whether the notification database is readable (Full Disk Access)."""
        ...

    def has_accessibility_access(self) -> bool: ...

    def request_accessibility_access(self) -> None:
        """Ask the OS to prompt the user for Accessibility access."""
        ...


class AccessibilityTree(Protocol):
    """Read-only view of another process's accessibility hierarchy.

    Elements are opaque handles.  Attribute readers return ``None`` when the
    attribute cannot be read.
    """

    def find_process(self, bundle_id: str) -> int | None: ...

    def windows(self, pid: int) -> list[Any] | None: ...

    def frame(self, element: Any) -> Rect | None: ...

    def texts(self, element: Any) -> list[str]:
        """Non-empty value and title strings of ``element`` itself."""
        ...

    def children(self, element: Any) -> list[Any] | None: ...

    def screen_size(self) -> ScreenSize: ...

    def observe(self, pid: int, callback: Callable[[], None]) -> bool:
        """Register for tree-change events; ``callback`` may run on any thread."""
        ...

    def unobserve(self) -> None: ...


# Bundle identifier -> display name, or None when the app is not installed
AppNameLookup = Callable[[str], str | None]
