"""Banner geometry classifier.

Coordinates use a bottom-left origin, as reported for the main screen.
A transient banner is short, hugs the top edge and sits on the right-hand
side; the full notification panel is tall, and ordinary windows are
usually elsewhere.
"""

from __future__ import annotations

from typing import NamedTuple

from notifydeck.constants import BANNER_MAX_HEIGHT, BANNER_RIGHT_BAND, BANNER_TOP_BAND


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


class ScreenSize(NamedTuple):
    width: float
    height: float


def is_banner(window: Rect, screen: ScreenSize) -> bool:
    """Return True if ``window`` looks like a transient notification banner."""
    return (
        window.height < BANNER_MAX_HEIGHT
        and window.y > screen.height - BANNER_TOP_BAND
        and window.x > screen.width - BANNER_RIGHT_BAND
    )
