"""Read-only access to the OS notification history database.

The database belongs to the notification daemon, so it is opened read-only
for every query and closed straight after; nothing is held open between
poll cycles.  Queries are always LIMIT-bounded.

Schema (the parts we read)::

    record(uuid, app_id, data BLOB, delivered_date REAL)
    app(app_id, identifier TEXT)
"""

from __future__ import annotations

import glob
import os
import sqlite3
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from notifydeck.capture.models import RawRecord
from notifydeck.constants import NOTIFICATION_DB_CANDIDATES
from notifydeck.errors import QueryFailedError, StoreUnavailableError
from notifydeck.logging import get_logger

log = get_logger("notifydeck.capture.store")

_IDS_QUERY = """
    SELECT uuid FROM record
    WHERE data IS NOT NULL
    ORDER BY delivered_date DESC
    LIMIT ?
"""

_ROWS_QUERY = """
    SELECT r.uuid, r.app_id, a.identifier, r.data, r.delivered_date
    FROM record r
    LEFT JOIN app a ON r.app_id = a.app_id
    WHERE r.data IS NOT NULL
    ORDER BY r.delivered_date DESC
    LIMIT ?
"""


class NotificationStore:
    """Locates and queries the notification database.

    The first valid candidate path is cached for the lifetime of the
    instance.  An explicit ``path`` skips discovery entirely.
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        candidates: Sequence[str] = NOTIFICATION_DB_CANDIDATES,
    ) -> None:
        self._explicit_path = Path(path) if path is not None else None
        self._candidates = tuple(candidates)
        self._cached_path: Path | None = None

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def locate(self) -> Path | None:
        """Return the database path, or None if no candidate is valid."""
        if self._explicit_path is not None:
            return self._explicit_path

        if self._cached_path is not None and self._cached_path.exists():
            return self._cached_path

        for pattern in self._candidates:
            expanded = os.path.expanduser(pattern)
            matches = sorted(glob.glob(expanded)) if "*" in expanded else [expanded]
            for match in matches:
                candidate = Path(match)
                if _is_notification_db(candidate):
                    self._cached_path = candidate
                    log.info("notification_db_located", path=str(candidate))
                    return candidate

        return None

    def exists(self) -> bool:
        path = self.locate()
        return path is not None and path.exists()

    def is_readable(self) -> bool:
        path = self.locate()
        return path is not None and path.is_file() and os.access(path, os.R_OK)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def fetch_recent_ids(self, limit: int) -> list[str]:
        """Identifiers of the newest ``limit`` rows that carry a payload.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
            QueryFailedError: If the query fails.
        """
        with self._connect() as conn:
            try:
                rows = conn.execute(_IDS_QUERY, (limit,)).fetchall()
            except sqlite3.Error as exc:
                raise QueryFailedError(str(exc)) from exc
        return [_record_id(row[0]) for row in rows]

    def fetch_recent_records(self, limit: int) -> list[RawRecord]:
        """Full rows (payload and app identifier) for the newest ``limit`` rows.

        Raises:
            StoreUnavailableError: If the database cannot be opened.
            QueryFailedError: If the query fails.
        """
        with self._connect() as conn:
            try:
                rows = conn.execute(_ROWS_QUERY, (limit,)).fetchall()
            except sqlite3.Error as exc:
                raise QueryFailedError(str(exc)) from exc

        records: list[RawRecord] = []
        for uuid, app_id, identifier, data, delivered in rows:
            if isinstance(data, str):
                data = data.encode("utf-8")
            records.append(
                RawRecord(
                    id=_record_id(uuid),
                    app_id=app_id,
                    app_identifier=identifier,
                    data=bytes(data or b""),
                    delivered_date=float(delivered) if delivered is not None else None,
                )
            )
        return records

    def schema(self) -> dict[str, list[str]]:
        """Table name -> column names, for diagnostics."""
        with self._connect() as conn:
            try:
                tables = [
                    row[0]
                    for row in conn.execute(
                        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
                    )
                ]
                return {
                    table: [
                        col[1] for col in conn.execute(f'PRAGMA table_info("{table}")')
                    ]
                    for table in tables
                }
            except sqlite3.Error as exc:
                raise QueryFailedError(str(exc)) from exc

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        path = self.locate()
        if path is None or not path.is_file():
            raise StoreUnavailableError("notification database not found")
        try:
            conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True, timeout=2.0)
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"cannot open {path}: {exc}") from exc
        try:
            yield conn
        finally:
            conn.close()


def _is_notification_db(path: Path) -> bool:
    """A readable SQLite file that has a ``record`` table."""
    if not path.is_file() or not os.access(path, os.R_OK):
        return False
    try:
        conn = sqlite3.connect(f"{path.resolve().as_uri()}?mode=ro", uri=True, timeout=2.0)
    except sqlite3.Error:
        return False
    try:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='record'"
        ).fetchone()
        return row is not None
    except sqlite3.Error:
        return False
    finally:
        conn.close()


def _record_id(value: object) -> str:
    """Row identifiers are text on some releases and 16-byte blobs on others."""
    if isinstance(value, bytes | bytearray | memoryview):
        return bytes(value).hex()
    return str(value)
