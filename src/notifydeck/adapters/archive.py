"""Local SQLite archive of captured notifications.

This is the persistence collaborator of the database poller.  Rows are
keyed on the notification id, so saving the same notification twice
updates it in place and never duplicates it; the user's read flag survives
such an update.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from notifydeck.capture.models import CapturedNotification
from notifydeck.logging import get_logger

log = get_logger("notifydeck.adapters.archive")


@dataclass
class ArchivedNotification:
    """A notification as stored in the archive."""

    id: str
    app_identifier: str
    app_name: str
    title: str
    body: str
    timestamp: datetime
    subtitle: str | None = None
    has_image: bool = False
    is_read: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "app_identifier": self.app_identifier,
            "app_name": self.app_name,
            "title": self.title,
            "subtitle": self.subtitle,
            "body": self.body,
            "timestamp": self.timestamp.isoformat(),
            "has_image": self.has_image,
            "is_read": self.is_read,
        }


# ------------------------------------------------------------------
# SQL schema
# ------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS notifications (
    id TEXT PRIMARY KEY,
    app_identifier TEXT NOT NULL,
    app_name TEXT NOT NULL,
    title TEXT NOT NULL,
    subtitle TEXT,
    body TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    image_data BLOB,
    is_read INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_notifications_ts
    ON notifications (timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_notifications_app
    ON notifications (app_identifier);
"""

_UPSERT = """
INSERT INTO notifications
    (id, app_identifier, app_name, title, subtitle, body, timestamp, image_data)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(id) DO UPDATE SET
    app_identifier = excluded.app_identifier,
    app_name = excluded.app_name,
    title = excluded.title,
    subtitle = excluded.subtitle,
    body = excluded.body,
    timestamp = excluded.timestamp,
    image_data = COALESCE(excluded.image_data, notifications.image_data)
"""


class NotificationArchive:
    """SQLite-backed archive implementing ``save_all``.

    Usage::

        archive = NotificationArchive("data/notifications.db")
        archive.initialize()
        archive.save_all(notifications)
    """

    def __init__(
        self,
        path: Path | str,
        *,
        excluded_apps: Iterable[str] = (),
    ) -> None:
        self._path = Path(path)
        self._excluded = frozenset(excluded_apps)
        # save_all arrives from worker threads
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def initialize(self) -> None:
        """Create the parent directory and tables."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.executescript(_SCHEMA)
        log.info("archive_initialized", path=str(self._path))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_all(self, items: Sequence[CapturedNotification]) -> None:
        """Upsert ``items`` by id, skipping excluded apps."""
        rows = [
            (
                item.id,
                item.app_identifier,
                item.app_name,
                item.title,
                item.subtitle,
                item.body,
                item.timestamp.isoformat(),
                item.image_data,
            )
            for item in items
            if item.app_identifier not in self._excluded
        ]
        skipped = len(items) - len(rows)
        if skipped:
            log.debug("archive_skipped_excluded", count=skipped)
        if not rows:
            return

        with self._connect() as conn:
            conn.executemany(_UPSERT, rows)
        log.debug("archive_saved", count=len(rows))

    def mark_read(self, notification_id: str, read: bool = True) -> bool:
        """Set the read flag.  Returns False if the id is unknown."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE notifications SET is_read = ? WHERE id = ?",
                (int(read), notification_id),
            )
        return cursor.rowcount > 0

    def delete_older_than(self, cutoff: datetime) -> int:
        """Delete notifications delivered before ``cutoff``.

        Returns:
            The number of rows deleted.
        """
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM notifications WHERE timestamp < ?",
                (cutoff.isoformat(),),
            )
        deleted = cursor.rowcount
        if deleted:
            log.info("archive_purged", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_recent(
        self,
        limit: int = 50,
        *,
        app_identifier: str | None = None,
        unread_only: bool = False,
    ) -> list[ArchivedNotification]:
        """Newest first."""
        clauses: list[str] = []
        params: list[Any] = []
        if app_identifier is not None:
            clauses.append("app_identifier = ?")
            params.append(app_identifier)
        if unread_only:
            clauses.append("is_read = 0")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)

        with self._connect() as conn:
            rows = conn.execute(
                f"""
                SELECT id, app_identifier, app_name, title, subtitle, body,
                       timestamp, image_data IS NOT NULL AS has_image, is_read
                FROM notifications
                {where}
                ORDER BY timestamp DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
        return [_row_to_notification(row) for row in rows]

    def count(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM notifications").fetchone()
        return int(row[0])

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            conn = sqlite3.connect(self._path, timeout=5.0)
            conn.row_factory = sqlite3.Row
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                conn.close()


def _row_to_notification(row: sqlite3.Row) -> ArchivedNotification:
    return ArchivedNotification(
        id=row["id"],
        app_identifier=row["app_identifier"],
        app_name=row["app_name"],
        title=row["title"],
        subtitle=row["subtitle"],
        body=row["body"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
        has_image=bool(row["has_image"]),
        is_read=bool(row["is_read"]),
    )
