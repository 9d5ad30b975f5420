"""Display collaborator that reports notifications through the log."""

from __future__ import annotations

from notifydeck.capture.models import BannerSighting, CapturedNotification
from notifydeck.logging import get_logger

log = get_logger("notifydeck.adapters.display")


class LogDisplay:
    """Shows each notification as a structured log line.

    Stands in for an on-screen popup.  When ``enabled`` is False every call
    is a no-op.
    """

    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled
        self.shown = 0

    def show(self, item: CapturedNotification | BannerSighting) -> None:
        if not self.enabled:
            return
        self.shown += 1
        if isinstance(item, CapturedNotification):
            log.info(
                "notification",
                source="database",
                app=item.app_name,
                title=item.title,
                subtitle=item.subtitle,
                body=item.body,
                delivered=item.timestamp.isoformat(),
            )
        else:
            log.info(
                "notification",
                source="banner",
                app=item.app_name,
                title=item.title,
                body=item.body,
            )
