"""Error taxonomy for the capture pipeline.

Decode problems are deliberately absent: a payload that cannot be decoded
yields empty content and is dropped, it is never raised.
"""

from __future__ import annotations


class CaptureError(Exception):
    """Base class for capture pipeline errors."""


class PermissionDeniedError(CaptureError):
    """A required OS permission (Full Disk Access, Accessibility) is missing.

    Fatal to starting the affected detector; retried only when ``start()``
    is invoked again.
    """

    def __init__(self, permission: str) -> None:
        super().__init__(f"{permission} permission not granted")
        self.permission = permission


class StoreUnavailableError(CaptureError):
    """The notification database could not be found or opened."""


class QueryFailedError(CaptureError):
    """A query against the notification database failed."""
