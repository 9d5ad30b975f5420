"""Centralized constants for NotifyDeck."""

from datetime import UTC, datetime

# Bundle identifier of the process that renders notification banners
NOTIFICATION_CENTER_BUNDLE_ID = "com.apple.notificationcenterui"

# Core Foundation absolute time starts here
MAC_EPOCH = datetime(2001, 1, 1, tzinfo=UTC)

# Banner geometry (points)
BANNER_MAX_HEIGHT = 200
BANNER_TOP_BAND = 200
BANNER_RIGHT_BAND = 600

# Labels rendered by the notification panel itself, never notification text
PANEL_LABELS = frozenset({"Notification Center", "通知センター"})

# Candidate locations of the OS notification database, newest macOS first.
# "~" is expanded against the current home directory; "*" is globbed.
NOTIFICATION_DB_CANDIDATES = (
    "~/Library/Group Containers/group.com.apple.usernoted/db2/db",
    "~/Library/Group Containers/group.com.apple.usernoted/db3/db",
    "~/Library/Group Containers/group.com.apple.usernoted/db/db",
    "/private/var/folders/*/*/T/com.apple.notificationcenterui/db/db",
)
