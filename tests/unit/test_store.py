"""Unit tests for the notification database reader."""

import sqlite3
import uuid

import pytest

from notifydeck.capture.store import NotificationStore
from notifydeck.errors import QueryFailedError, StoreUnavailableError


class TestLocate:
    """Tests for database discovery."""

    def test_explicit_path_wins(self, tmp_path):
        path = tmp_path / "explicit.db"
        store = NotificationStore(path, candidates=[str(tmp_path / "other.db")])
        assert store.locate() == path

    def test_first_valid_candidate(self, fake_db, tmp_path):
        missing = str(tmp_path / "missing" / "db")
        store = NotificationStore(candidates=[missing, str(fake_db.path)])
        assert store.locate() == fake_db.path

    def test_candidate_without_record_table_skipped(self, fake_db, tmp_path):
        other = tmp_path / "other.db"
        with sqlite3.connect(other) as conn:
            conn.execute("CREATE TABLE unrelated (x INTEGER)")
        conn.close()

        store = NotificationStore(candidates=[str(other), str(fake_db.path)])
        assert store.locate() == fake_db.path

    def test_glob_candidate(self, fake_db, tmp_path):
        store = NotificationStore(candidates=[str(tmp_path / "*.db")])
        assert store.locate() == fake_db.path

    def test_home_is_expanded(self, fake_db, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        store = NotificationStore(candidates=["~/usernoted.db"])
        assert store.locate() == fake_db.path

    def test_nothing_found(self, tmp_path):
        store = NotificationStore(candidates=[str(tmp_path / "none")])
        assert store.locate() is None
        assert store.exists() is False
        assert store.is_readable() is False

    def test_located_path_is_cached(self, fake_db, tmp_path):
        store = NotificationStore(candidates=[str(fake_db.path)])
        assert store.locate() == fake_db.path
        store._candidates = (str(tmp_path / "none"),)
        assert store.locate() == fake_db.path


class TestQueries:
    """Tests for the read-only queries."""

    def test_recent_ids_newest_first(self, fake_db, store):
        fake_db.add_record("a", b"x", delivered_date=10.0)
        fake_db.add_record("b", b"x", delivered_date=30.0)
        fake_db.add_record("c", b"x", delivered_date=20.0)
        assert store.fetch_recent_ids(10) == ["b", "c", "a"]

    def test_recent_ids_respects_limit(self, fake_db, store):
        for i in range(5):
            fake_db.add_record(f"id-{i}", b"x")
        assert len(store.fetch_recent_ids(3)) == 3

    def test_rows_without_data_excluded(self, fake_db, store):
        fake_db.add_record("a", None)
        fake_db.add_record("b", b"x")
        assert store.fetch_recent_ids(10) == ["b"]

    def test_blob_uuid_hex_encoded(self, fake_db, store):
        raw = uuid.UUID("12345678-1234-5678-1234-567812345678").bytes
        fake_db.add_record(raw, b"x")
        assert store.fetch_recent_ids(10) == [raw.hex()]

    def test_records_join_app_identifier(self, fake_db, store):
        fake_db.add_record("a", b"payload", delivered_date=42.0)
        fake_db.add_record("b", b"payload", app_id=99, delivered_date=41.0)

        records = store.fetch_recent_records(10)

        assert [r.id for r in records] == ["a", "b"]
        assert records[0].app_identifier == "com.tinyspeck.slackmacgap"
        assert records[0].data == b"payload"
        assert records[0].delivered_date == 42.0
        assert records[1].app_identifier is None
        assert records[1].app_id == 99

    def test_schema(self, store):
        schema = store.schema()
        assert "record" in schema
        assert "uuid" in schema["record"]
        assert schema["app"] == ["app_id", "identifier"]

    def test_missing_database_raises_unavailable(self, tmp_path):
        store = NotificationStore(tmp_path / "missing.db")
        with pytest.raises(StoreUnavailableError):
            store.fetch_recent_ids(10)

    def test_broken_schema_raises_query_failed(self, tmp_path):
        path = tmp_path / "broken.db"
        with sqlite3.connect(path) as conn:
            conn.execute("CREATE TABLE unrelated (x INTEGER)")
        conn.close()

        store = NotificationStore(path)
        with pytest.raises(QueryFailedError):
            store.fetch_recent_ids(10)

    def test_database_is_not_modified(self, fake_db, store):
        fake_db.add_record("a", b"x")
        before = fake_db.path.read_bytes()
        store.fetch_recent_records(10)
        assert fake_db.path.read_bytes() == before
