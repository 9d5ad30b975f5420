"""Shared utilities for NotifyDeck."""

import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any

import structlog

from notifydeck.constants import MAC_EPOCH


@asynccontextmanager
async def timed_operation(
    name: str,
    log: structlog.stdlib.BoundLogger | None = None,
    **extra: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Context manager that measures elapsed time for an async operation.

    Usage::

        async with timed_operation("cold_read", log=log) as timing:
            await poller.reset()
        print(timing["elapsed_ms"])

    Args:
        name: A label for the operation (used in log messages).
        log: Optional structlog logger; if provided, an info-level message
             is emitted on exit.
        **extra: Additional key-value pairs forwarded to the log call.

    Yields:
        A mutable dict that will contain ``elapsed_ms`` after the block exits.
    """
    start = time.perf_counter()
    result: dict[str, Any] = {}
    try:
        yield result
    finally:
        result["elapsed_ms"] = round((time.perf_counter() - start) * 1000, 2)
        if log:
            log.info(name, duration_ms=result["elapsed_ms"], **extra)


def from_mac_absolute_time(seconds: float | None) -> datetime:
    """Convert Core Foundation absolute time (seconds since 2001-01-01 UTC)."""
    return MAC_EPOCH + timedelta(seconds=seconds or 0.0)


def to_mac_absolute_time(moment: datetime) -> float:
    """Inverse of :func:`from_mac_absolute_time`."""
    return (moment - MAC_EPOCH).total_seconds()


def app_name_from_identifier(
    identifier: str, lookup: Callable[[str], str | None] | None = None
) -> str:
    """Best-effort display name for a bundle identifier.

    ``lookup`` (typically the installed bundle's ``CFBundleName``) is tried
    first.  Otherwise ``com.tinyspeck.slackmacgap`` becomes ``slackmacgap``
    and identifiers without dots are returned unchanged.
    """
    if lookup is not None:
        name = lookup(identifier)
        if name:
            return name
    tail = identifier.rsplit(".", 1)[-1]
    return tail or identifier
