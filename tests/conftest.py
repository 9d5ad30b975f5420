"""Shared fixtures: keyed-archive payloads, a fake notification database,
and in-memory collaborators for the capture pipeline."""

from __future__ import annotations

import plistlib
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from notifydeck.capture.geometry import Rect, ScreenSize
from notifydeck.capture.scheduler import PollingConfig
from notifydeck.capture.store import NotificationStore


# ------------------------------------------------------------------
# Keyed archive payloads
# ------------------------------------------------------------------


class KeyedArchiveBuilder:
    """Builds NSKeyedArchiver binary plists from plain Python values."""

    def __init__(self) -> None:
        self.objects: list[Any] = ["$null"]
        self._classes: dict[str, plistlib.UID] = {}

    def class_ref(self, name: str, *parents: str) -> plistlib.UID:
        if name not in self._classes:
            self.objects.append({"$classname": name, "$classes": [name, *parents, "NSObject"]})
            self._classes[name] = plistlib.UID(len(self.objects) - 1)
        return self._classes[name]

    def add(self, value: Any) -> plistlib.UID:
        if value is None:
            return plistlib.UID(0)
        if isinstance(value, dict):
            index = self._reserve()
            keys = [self.add(k) for k in value]
            values = [self.add(v) for v in value.values()]
            self.objects[index] = {
                "$class": self.class_ref("NSDictionary"),
                "NS.keys": keys,
                "NS.objects": values,
            }
            return plistlib.UID(index)
        if isinstance(value, list):
            index = self._reserve()
            items = [self.add(v) for v in value]
            self.objects[index] = {"$class": self.class_ref("NSArray"), "NS.objects": items}
            return plistlib.UID(index)
        if isinstance(value, bytes):
            return self._append({"$class": self.class_ref("NSData"), "NS.data": value})
        return self._append(value)

    def add_instance(self, class_name: str, fields: dict[str, Any]) -> plistlib.UID:
        """Add an object of an arbitrary class with the given (encoded) fields."""
        index = self._reserve()
        encoded = {key: self.add(value) for key, value in fields.items()}
        self.objects[index] = {"$class": self.class_ref(class_name), **encoded}
        return plistlib.UID(index)

    def build(self, root: plistlib.UID) -> bytes:
        archive = {
            "$version": 100000,
            "$archiver": "NSKeyedArchiver",
            "$top": {"root": root},
            "$objects": self.objects,
        }
        return plistlib.dumps(archive, fmt=plistlib.FMT_BINARY)

    def _reserve(self) -> int:
        self.objects.append(None)
        return len(self.objects) - 1

    def _append(self, value: Any) -> plistlib.UID:
        self.objects.append(value)
        return plistlib.UID(len(self.objects) - 1)


def keyed_archive(value: dict[str, Any]) -> bytes:
    builder = KeyedArchiveBuilder()
    return builder.build(builder.add(value))


@pytest.fixture
def make_archive() -> Callable[[dict[str, Any]], bytes]:
    return keyed_archive


# ------------------------------------------------------------------
# Fake notification database
# ------------------------------------------------------------------


@dataclass
class FakeNotificationDb:
    """A SQLite file with the ``record`` / ``app`` tables the OS uses."""

    path: Path
    _next_date: float = 700_000_000.0

    def __post_init__(self) -> None:
        with sqlite3.connect(self.path) as conn:
            conn.executescript(
                """
                CREATE TABLE app (app_id INTEGER PRIMARY KEY, identifier TEXT);
                CREATE TABLE record (
                    rec_id INTEGER PRIMARY KEY,
                    uuid BLOB,
                    app_id INTEGER,
                    data BLOB,
                    delivered_date REAL
                );
                """
            )
        conn.close()

    def add_app(self, app_id: int, identifier: str) -> None:
        with sqlite3.connect(self.path) as conn:
            conn.execute("INSERT INTO app (app_id, identifier) VALUES (?, ?)", (app_id, identifier))
        conn.close()

    def add_record(
        self,
        uuid: str | bytes,
        data: bytes | None,
        *,
        app_id: int = 1,
        delivered_date: float | None = None,
    ) -> float:
        if delivered_date is None:
            self._next_date += 1.0
            delivered_date = self._next_date
        with sqlite3.connect(self.path) as conn:
            conn.execute(
                "INSERT INTO record (uuid, app_id, data, delivered_date) VALUES (?, ?, ?, ?)",
                (uuid, app_id, data, delivered_date),
            )
        conn.close()
        return delivered_date


@pytest.fixture
def fake_db(tmp_path) -> FakeNotificationDb:
    db = FakeNotificationDb(tmp_path / "usernoted.db")
    db.add_app(1, "com.tinyspeck.slackmacgap")
    return db


@pytest.fixture
def store(fake_db) -> NotificationStore:
    return NotificationStore(fake_db.path)


# ------------------------------------------------------------------
# Collaborators
# ------------------------------------------------------------------


@dataclass
class RecordingSink:
    """Persistence and display collaborator that records what it receives."""

    saved: list[Any] = field(default_factory=list)
    shown: list[Any] = field(default_factory=list)

    def save_all(self, items) -> None:
        self.saved.extend(items)

    def show(self, item) -> None:
        self.shown.append(item)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@dataclass
class FakePermissions:
    read_access: bool = True
    accessibility: bool = True
    requested: int = 0

    def has_read_access(self) -> bool:
        return self.read_access

    def has_accessibility_access(self) -> bool:
        return self.accessibility

    def request_accessibility_access(self) -> None:
        self.requested += 1


@pytest.fixture
def permissions() -> FakePermissions:
    return FakePermissions()


@dataclass
class FakeElement:
    """Accessibility element: optional frame, own texts and children."""

    frame: Rect | None = None
    texts: list[str] = field(default_factory=list)
    children: list[FakeElement] = field(default_factory=list)


def banner_window(*texts: str, screen: ScreenSize = ScreenSize(1920, 1080)) -> FakeElement:
    """A window placed where a banner appears, holding ``texts`` as leaves."""
    frame = Rect(x=screen.width - 400, y=screen.height - 100, width=350, height=80)
    return FakeElement(frame=frame, children=[FakeElement(texts=[text]) for text in texts])


@dataclass
class FakeTree:
    """In-memory accessibility tree for one process."""

    pid: int | None = 4242
    window_list: list[FakeElement] | None = field(default_factory=list)
    screen: ScreenSize = ScreenSize(1920, 1080)
    observe_result: bool = True
    callback: Callable[[], None] | None = None
    unobserved: int = 0

    def find_process(self, bundle_id: str) -> int | None:
        return self.pid

    def windows(self, pid: int) -> list[FakeElement] | None:
        return list(self.window_list) if self.window_list is not None else None

    def frame(self, element: FakeElement) -> Rect | None:
        return element.frame

    def texts(self, element: FakeElement) -> list[str]:
        return list(element.texts)

    def children(self, element: FakeElement) -> list[FakeElement] | None:
        return list(element.children)

    def screen_size(self) -> ScreenSize:
        return self.screen

    def observe(self, pid: int, callback: Callable[[], None]) -> bool:
        if self.observe_result:
            self.callback = callback
        return self.observe_result

    def unobserve(self) -> None:
        self.callback = None
        self.unobserved += 1


@pytest.fixture
def tree() -> FakeTree:
    return FakeTree()


@pytest.fixture
def fast_polling() -> PollingConfig:
    return PollingConfig(
        idle_interval=0.05,
        active_interval=0.01,
        cooldown_intervals=(0.02, 0.03),
        max_active_cycles=3,
    )


@pytest.fixture
def make_banner() -> Callable[..., FakeElement]:
    return banner_window


@pytest.fixture
def archive_builder() -> KeyedArchiveBuilder:
    return KeyedArchiveBuilder()
