"""Database poller: detects new rows in the OS notification database.

Each cycle issues a cheap identifier-only query and diffs it against the set
of ids already seen.  Only when something new shows up are full rows (with
their payload blobs) fetched, decoded and handed on.  Fetching, decoding and
hand-off run as a background task; the known-id set is updated before that
task is spawned so the next tick never re-reports the same rows.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine, Iterable, Iterator, Sequence
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from notifydeck.capture.decoder import decode_payload
from notifydeck.capture.models import CapturedNotification, RawRecord
from notifydeck.capture.ports import (
    AppNameLookup,
    DisplaySink,
    PermissionChecker,
    PersistenceSink,
)
from notifydeck.capture.scheduler import AdaptiveScheduler, PollingConfig
from notifydeck.capture.store import NotificationStore
from notifydeck.errors import (
    CaptureError,
    PermissionDeniedError,
    StoreUnavailableError,
)
from notifydeck.logging import get_logger
from notifydeck.utils import app_name_from_identifier, from_mac_absolute_time, timed_operation

if TYPE_CHECKING:
    from notifydeck.capture.coordinator import CaptureCoordinator

log = get_logger("notifydeck.capture.poller")

DEFAULT_ROW_LIMIT = 500
DEFAULT_FETCH_BUFFER = 5
DEFAULT_KNOWN_IDS_CEILING = 5000


class StoreStatus(StrEnum):
    UNKNOWN = "unknown"
    NOT_FOUND = "not_found"
    NO_PERMISSION = "no_permission"
    READY = "ready"
    ERROR = "error"


class KnownIdSet:
    """Row ids already observed, bounded by ``ceiling``.

    Over the ceiling the set is cut down to ``ceiling // 2``.  Which ids
    survive is arbitrary: a plain set carries no age information.
    """

    def __init__(self, ceiling: int = DEFAULT_KNOWN_IDS_CEILING) -> None:
        if ceiling < 2:
            raise ValueError("ceiling must be >= 2")
        self._ceiling = ceiling
        self._ids: set[str] = set()

    @property
    def ceiling(self) -> int:
        return self._ceiling

    def __contains__(self, item: object) -> bool:
        return item in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def unknown(self, ids: Iterable[str]) -> list[str]:
        """Ids not yet in the set, de-duplicated, in their original order."""
        fresh: list[str] = []
        seen: set[str] = set()
        for record_id in ids:
            if record_id not in self._ids and record_id not in seen:
                seen.add(record_id)
                fresh.append(record_id)
        return fresh

    def add_all(self, ids: Iterable[str]) -> None:
        self._ids.update(ids)

    def replace(self, ids: Iterable[str]) -> None:
        self._ids = set(ids)

    def clear(self) -> None:
        self._ids.clear()

    def trim(self) -> int:
        """Shrink to half the ceiling if over it.  Returns the number removed."""
        if len(self._ids) <= self._ceiling:
            return 0
        excess = len(self._ids) - self._ceiling // 2
        for _ in range(excess):
            self._ids.pop()
        return excess


def build_notification(
    record: RawRecord, app_names: AppNameLookup | None = None
) -> CapturedNotification | None:
    """Decode one database row; None when it carries no title or body.

    Raises:
        OverflowError: If ``delivered_date`` is outside the datetime range.
    """
    content = decode_payload(record.data)
    if content.is_empty:
        return None

    identifier = record.app_identifier or f"unknown.{record.app_id}"
    return CapturedNotification(
        id=record.id,
        app_identifier=identifier,
        app_name=app_name_from_identifier(identifier, app_names),
        title=content.title,
        subtitle=content.subtitle,
        body=content.body,
        timestamp=from_mac_absolute_time(record.delivered_date),
        image_data=content.image_data,
    )


class DatabasePoller:
    """Adaptive poller over the notification database."""

    def __init__(
        self,
        store: NotificationStore,
        persistence: PersistenceSink,
        display: DisplaySink,
        permissions: PermissionChecker,
        *,
        polling: PollingConfig,
        coordinator: CaptureCoordinator | None = None,
        row_limit: int = DEFAULT_ROW_LIMIT,
        fetch_buffer: int = DEFAULT_FETCH_BUFFER,
        known_ids_ceiling: int = DEFAULT_KNOWN_IDS_CEILING,
        app_names: AppNameLookup | None = None,
    ) -> None:
        self._store = store
        self._persistence = persistence
        self._display = display
        self._permissions = permissions
        self.coordinator = coordinator
        self._row_limit = row_limit
        self._fetch_buffer = fetch_buffer
        self._app_names = app_names
        self._known = KnownIdSet(known_ids_ceiling)
        self._scheduler = AdaptiveScheduler("database_poller", polling, self.poll_once)
        self._pending: set[asyncio.Task[None]] = set()
        self._seeded = False

        self.status = StoreStatus.UNKNOWN
        self.last_error: str | None = None

    @property
    def scheduler(self) -> AdaptiveScheduler:
        return self._scheduler

    @property
    def known_ids(self) -> KnownIdSet:
        return self._known

    @property
    def seeded(self) -> bool:
        """Whether a cold read has completed since start or reset."""
        return self._seeded

    @property
    def monitoring(self) -> bool:
        return self._scheduler.running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> bool:
        """Seed the known ids from the store and start polling.

        Returns:
            False if read access is missing; the scheduler is not armed.
        """
        if self._scheduler.running:
            return True

        try:
            self._ensure_read_access()
        except PermissionDeniedError as exc:
            self.last_error = str(exc)
            log.warning("poller_permission_denied", status=self.status.value)
            return False

        await self._log_schema()

        async with timed_operation("poller_cold_read", log=log):
            await self._cold_read()

        self._scheduler.start()
        log.info(
            "poller_started",
            known_ids=len(self._known),
            seeded=self._seeded,
            row_limit=self._row_limit,
        )
        return True

    async def stop(self) -> None:
        """Disarm the scheduler.  In-flight deliveries are left to finish."""
        self._scheduler.stop()
        log.info("poller_stopped", pending=len(self._pending))

    def force_active(self) -> None:
        """Switch to fast polling now (another detector saw something)."""
        self._scheduler.force_active()

    async def reset(self) -> None:
        """Forget every known id and repeat the cold read."""
        self._known.clear()
        self._seeded = False
        await self._cold_read()
        log.info("poller_reset", known_ids=len(self._known))

    async def refresh(self) -> bool:
        """Run one diff-and-deliver pass now and wait for it to finish."""
        found = await self.poll_once()
        await self.wait_for_pending()
        return found

    async def wait_for_pending(self) -> None:
        """Wait until every background delivery has completed."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Poll cycle
    # ------------------------------------------------------------------

    async def poll_once(self) -> bool:
        """One polling cycle.

        Returns:
            True if new row ids appeared (activity), False otherwise,
            including when the store could not be queried.
        """
        if not self._seeded:
            # Until a cold read succeeds every row would look new
            await self._cold_read()
            return False

        try:
            ids = await asyncio.to_thread(self._store.fetch_recent_ids, self._row_limit)
        except CaptureError as exc:
            self._record_failure(exc)
            return False
        self._mark_ready()

        new_ids = self._known.unknown(ids)
        if not new_ids:
            return False

        # Record ids before any content is read so rows that decode to
        # nothing are never queried again.
        self._known.add_all(new_ids)
        removed = self._known.trim()
        if removed:
            log.info("known_ids_trimmed", removed=removed, remaining=len(self._known))

        self._spawn(self._deliver(new_ids))

        if self.coordinator is not None:
            self.coordinator.row_detected()
        return True

    async def _deliver(self, new_ids: Sequence[str]) -> None:
        limit = len(new_ids) + self._fetch_buffer
        try:
            notifications = await asyncio.to_thread(
                self._read_notifications, limit, frozenset(new_ids)
            )
        except CaptureError as exc:
            self._record_failure(exc)
            return
        except Exception as exc:
            log.error("delivery_failed", count=len(new_ids), error=repr(exc))
            return

        if not notifications:
            log.debug("new_rows_without_content", count=len(new_ids))
            return

        log.info("new_notifications", count=len(notifications))
        self._show(notifications[0])
        await self._save(notifications)

    async def _cold_read(self) -> None:
        try:
            ids = await asyncio.to_thread(self._store.fetch_recent_ids, self._row_limit)
            self._known.replace(ids)
            self._known.trim()
            notifications = await asyncio.to_thread(
                self._read_notifications, self._row_limit, None
            )
        except CaptureError as exc:
            self._record_failure(exc)
            return
        except Exception as exc:
            log.error("cold_read_failed", error=repr(exc))
            return

        self._mark_ready()
        self._seeded = True
        log.info("cold_read_complete", known_ids=len(self._known), decoded=len(notifications))
        if notifications:
            await self._save(notifications)

    def _read_notifications(
        self, limit: int, only: frozenset[str] | None
    ) -> list[CapturedNotification]:
        """Fetch and decode the newest rows (runs in a worker thread)."""
        records = self._store.fetch_recent_records(limit)
        notifications: list[CapturedNotification] = []
        for record in records:
            if only is not None and record.id not in only:
                continue
            try:
                notification = build_notification(record, self._app_names)
            except Exception as exc:
                log.warning("row_decode_failed", record_id=record.id, error=repr(exc))
                continue
            if notification is not None:
                notifications.append(notification)
        return notifications

    # ------------------------------------------------------------------
    # Hand-off
    # ------------------------------------------------------------------

    def _show(self, notification: CapturedNotification) -> None:
        try:
            self._display.show(notification)
        except Exception as exc:
            log.warning("display_failed", notification_id=notification.id, error=str(exc))

    async def _save(self, notifications: list[CapturedNotification]) -> None:
        try:
            await asyncio.to_thread(self._persistence.save_all, notifications)
        except Exception as exc:
            log.warning("persistence_failed", count=len(notifications), error=str(exc))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _ensure_read_access(self) -> None:
        if self._permissions.has_read_access():
            return
        self.status = StoreStatus.NO_PERMISSION if self._store.exists() else StoreStatus.NOT_FOUND
        raise PermissionDeniedError("full_disk_access")

    async def _log_schema(self) -> None:
        try:
            schema = await asyncio.to_thread(self._store.schema)
        except CaptureError as exc:
            log.debug("schema_unavailable", error=str(exc))
            return
        for table, columns in schema.items():
            log.debug("notification_db_table", table=table, columns=columns)

    def _record_failure(self, exc: CaptureError) -> None:
        self.status = (
            StoreStatus.NOT_FOUND if isinstance(exc, StoreUnavailableError) else StoreStatus.ERROR
        )
        self.last_error = str(exc)
        log.warning("poll_cycle_failed", error=str(exc), error_type=type(exc).__name__)

    def _mark_ready(self) -> None:
        if self.status is not StoreStatus.READY:
            log.info("notification_db_ready", previous=self.status.value)
        self.status = StoreStatus.READY
        self.last_error = None
