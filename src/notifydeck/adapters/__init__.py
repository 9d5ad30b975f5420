"""Collaborators the capture pipeline hands notifications to."""

from notifydeck.adapters.archive import ArchivedNotification, NotificationArchive
from notifydeck.adapters.display import LogDisplay

__all__ = ["ArchivedNotification", "LogDisplay", "NotificationArchive"]
