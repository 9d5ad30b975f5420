"""Cross-source promotion between the two detectors."""

from __future__ import annotations

from typing import TYPE_CHECKING

from notifydeck.logging import get_logger

if TYPE_CHECKING:
    from notifydeck.capture.poller import DatabasePoller
    from notifydeck.capture.scanner import BannerScanner

log = get_logger("notifydeck.capture.coordinator")


class CaptureCoordinator:
    """Connects the banner scanner and the database poller.

    A banner on screen means a database row is about to be written, so a
    sighting switches the poller to its fast rate.  The reverse direction
    (a new row speeding up the scanner) is off unless enabled.
    """

    def __init__(self, *, promote_scanner_on_row: bool = False) -> None:
        self._promote_scanner_on_row = promote_scanner_on_row
        self._poller: DatabasePoller | None = None
        self._scanner: BannerScanner | None = None

    def attach(
        self,
        poller: DatabasePoller | None = None,
        scanner: BannerScanner | None = None,
    ) -> None:
        """Register the detectors and point them back at this coordinator."""
        if poller is not None:
            self._poller = poller
            poller.coordinator = self
        if scanner is not None:
            self._scanner = scanner
            scanner.coordinator = self

    def banner_detected(self) -> None:
        if self._poller is not None:
            log.debug("promote_poller")
            self._poller.force_active()

    def row_detected(self) -> None:
        if self._promote_scanner_on_row and self._scanner is not None:
            log.debug("promote_scanner")
            self._scanner.force_active()
