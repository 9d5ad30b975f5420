"""Accessibility banner scanner.

Banners are visible for a few seconds before the notification daemon gets
round to writing its database row, so this scanner looks at the windows of
the notification UI process directly.  A banner is recognised purely by
geometry, its text is pulled out of the element tree and shown straight
away.  Each sighting also nudges the database poller into its fast rate so
the authoritative row is picked up soon after.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from notifydeck.capture.geometry import is_banner
from notifydeck.capture.models import BannerSighting
from notifydeck.capture.ports import AccessibilityTree, DisplaySink, PermissionChecker
from notifydeck.capture.scheduler import AdaptiveScheduler, PollingConfig
from notifydeck.constants import NOTIFICATION_CENTER_BUNDLE_ID, PANEL_LABELS
from notifydeck.logging import get_logger

if TYPE_CHECKING:
    from notifydeck.capture.coordinator import CaptureCoordinator

log = get_logger("notifydeck.capture.scanner")

DEFAULT_SEEN_TTL = 10.0
DEFAULT_TEXT_DEPTH = 10


class SeenBannerSet:
    """(title, body) keys reported recently.

    Every key is dropped ``ttl`` seconds after it was added, by a timer on
    the running loop.  Membership also checks the deadline, so a key is
    never reported as present past its expiry even if the timer is late.
    """

    def __init__(self, ttl: float = DEFAULT_SEEN_TTL) -> None:
        self._ttl = ttl
        self._deadlines: dict[tuple[str, str], float] = {}
        self._handles: dict[tuple[str, str], asyncio.TimerHandle] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple):
            return False
        deadline = self._deadlines.get(key)
        if deadline is None:
            return False
        return asyncio.get_running_loop().time() < deadline

    def __len__(self) -> int:
        return len(self._deadlines)

    def add(self, key: tuple[str, str]) -> None:
        loop = asyncio.get_running_loop()
        previous = self._handles.pop(key, None)
        if previous is not None:
            previous.cancel()
        self._deadlines[key] = loop.time() + self._ttl
        self._handles[key] = loop.call_later(self._ttl, self._expire, key)

    def clear(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
        self._deadlines.clear()

    def _expire(self, key: tuple[str, str]) -> None:
        self._handles.pop(key, None)
        self._deadlines.pop(key, None)


def parse_banner_texts(texts: Sequence[str]) -> BannerSighting | None:
    """Map the text strings of a banner onto title, body and app name.

    The panel's own label is discarded first.  One remaining string is the
    title; two are title and body; three or more start with the app name,
    then the title, and the rest is joined into the body.
    """
    strings = [text for text in texts if text and text not in PANEL_LABELS]
    if not strings:
        return None
    if len(strings) == 1:
        return BannerSighting(title=strings[0], body="")
    if len(strings) == 2:
        return BannerSighting(title=strings[0], body=strings[1])
    return BannerSighting(
        app_name=strings[0],
        title=strings[1],
        body=" ".join(strings[2:]),
    )


class BannerScanner:
    """Polls the notification UI process for on-screen banners."""

    def __init__(
        self,
        tree: AccessibilityTree,
        display: DisplaySink,
        permissions: PermissionChecker,
        *,
        polling: PollingConfig,
        coordinator: CaptureCoordinator | None = None,
        seen_ttl: float = DEFAULT_SEEN_TTL,
        text_depth: int = DEFAULT_TEXT_DEPTH,
        bundle_id: str = NOTIFICATION_CENTER_BUNDLE_ID,
    ) -> None:
        self._tree = tree
        self._display = display
        self._permissions = permissions
        self.coordinator = coordinator
        self._text_depth = text_depth
        self._bundle_id = bundle_id
        self._seen = SeenBannerSet(seen_ttl)
        self._scheduler = AdaptiveScheduler("banner_scanner", polling, self.scan_once)
        self._pid: int | None = None
        self._observing = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def scheduler(self) -> AdaptiveScheduler:
        return self._scheduler

    @property
    def seen(self) -> SeenBannerSet:
        return self._seen

    @property
    def monitoring(self) -> bool:
        return self._scheduler.running

    @property
    def observing(self) -> bool:
        """Whether push events from the tree are being received."""
        return self._observing

    async def start(self) -> bool:
        """Start scanning.

        Returns:
            False when Accessibility access is missing; the user is prompted
            for it and nothing is armed.
        """
        if self._scheduler.running:
            return True

        if not self._permissions.has_accessibility_access():
            log.warning("scanner_permission_denied", permission="accessibility")
            self._permissions.request_accessibility_access()
            return False

        self._loop = asyncio.get_running_loop()
        self._pid = await asyncio.to_thread(self._tree.find_process, self._bundle_id)
        if self._pid is None:
            log.warning("notification_process_not_found", bundle_id=self._bundle_id)
        else:
            self._observing = await asyncio.to_thread(
                self._tree.observe, self._pid, self.on_tree_event
            )
            if not self._observing:
                log.info("tree_events_unavailable", pid=self._pid)

        self._scheduler.start()
        log.info("scanner_started", pid=self._pid, observing=self._observing)
        return True

    async def stop(self) -> None:
        self._scheduler.stop()
        if self._observing:
            await asyncio.to_thread(self._tree.unobserve)
            self._observing = False
        self._seen.clear()
        log.info("scanner_stopped")

    def force_active(self) -> None:
        self._scheduler.force_active()

    def on_tree_event(self) -> None:
        """Push handler.  May be called from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(self.force_active)

    async def scan_once(self) -> bool:
        """One scan of the notification UI windows.

        Returns:
            True if a banner not seen within the TTL was reported.
        """
        if self._pid is None:
            self._pid = await asyncio.to_thread(self._tree.find_process, self._bundle_id)
            if self._pid is None:
                return False

        sightings = await asyncio.to_thread(self._collect_sightings, self._pid)
        if sightings is None:
            # Process went away; look it up again next time.
            self._pid = None
            return False

        reported = False
        for sighting in sightings:
            key = sighting.dedup_key
            if key in self._seen:
                continue
            self._seen.add(key)
            reported = True
            log.info("banner_detected", title=sighting.title, app_name=sighting.app_name)
            self._show(sighting)
            if self.coordinator is not None:
                self.coordinator.banner_detected()
        return reported

    def _collect_sightings(self, pid: int) -> list[BannerSighting] | None:
        """Read banner windows and their text (runs in a worker thread)."""
        windows = self._tree.windows(pid)
        if windows is None:
            return None

        screen = self._tree.screen_size()
        sightings: list[BannerSighting] = []
        for window in windows:
            frame = self._tree.frame(window)
            if frame is None or not is_banner(frame, screen):
                continue
            texts: list[str] = []
            self._collect_texts(window, texts, 0)
            sighting = parse_banner_texts(texts)
            if sighting is not None:
                sightings.append(sighting)
        return sightings

    def _collect_texts(self, element: Any, out: list[str], depth: int) -> None:
        if depth > self._text_depth:
            return
        out.extend(self._tree.texts(element))
        for child in self._tree.children(element) or ():
            self._collect_texts(child, out, depth + 1)

    def _show(self, sighting: BannerSighting) -> None:
        try:
            self._display.show(sighting)
        except Exception as exc:
            log.warning("display_failed", title=sighting.title, error=str(exc))
