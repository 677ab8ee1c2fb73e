"""Tests for persistence backends and the background writer."""

from __future__ import annotations

import threading

import pytest

from context_cache.cache.persistence import (
    BackgroundWriter,
    MemoryPersistence,
    SQLitePersistence,
    UndecodableValue,
)


def make_record(key: str, season: str | None = "autumn", accessed: float = 1.0) -> dict:
    return {
        "key": key,
        "vector": {"temporal": {"season": season}} if season else None,
        "payload": {"activities": ["Retiro Park"], "count": 1},
        "created_at": accessed,
        "last_accessed": accessed,
        "access_count": 0,
        "location": "Madrid, Spain",
        "date": "2025-09-20",
        "start_date": None,
        "end_date": None,
        "season": season,
    }


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    """Run each contract test against both backends."""
    if request.param == "memory":
        yield MemoryPersistence()
    else:
        sqlite = SQLitePersistence(tmp_path / "cache.db")
        yield sqlite
        sqlite.close()


# -----------------------------------------------------------------------------
# Backend contract
# -----------------------------------------------------------------------------


class TestPersistenceBackend:
    """Behavior every backend must share."""

    def test_put_and_get(self, backend):
        backend.put("primary", make_record("a"))

        record = backend.get("primary", "a")

        assert record["payload"] == {"activities": ["Retiro Park"], "count": 1}
        assert record["vector"] == {"temporal": {"season": "autumn"}}
        assert backend.get("primary", "missing") is None
        assert backend.get("weather", "a") is None

    def test_put_replaces(self, backend):
        backend.put("primary", make_record("a"))
        backend.put("primary", {**make_record("a"), "payload": "new"})

        assert backend.get("primary", "a")["payload"] == "new"
        assert len(backend.scan("primary")) == 1

    def test_scan_by_season_includes_unknown(self, backend):
        backend.put("primary", make_record("autumn"))
        backend.put("primary", make_record("spring", season="spring"))
        backend.put("primary", make_record("unknown", season=None))

        keys = {r["key"] for r in backend.scan("primary", season="autumn")}

        assert keys == {"autumn", "unknown"}

    def test_touch(self, backend):
        backend.put("primary", make_record("a"))
        backend.touch("primary", "a", 99.0, 4)

        record = backend.get("primary", "a")
        assert record["last_accessed"] == 99.0
        assert record["access_count"] == 4

    def test_touch_missing_is_noop(self, backend):
        backend.touch("primary", "missing", 1.0, 1)
        assert backend.get("primary", "missing") is None

    def test_delete(self, backend):
        backend.put("primary", make_record("a"))
        assert backend.delete("primary", "a") is True
        assert backend.delete("primary", "a") is False

    def test_clear_namespace(self, backend):
        backend.put("primary", make_record("a"))
        backend.put("weather", make_record("w"))

        assert backend.clear("weather") == 1
        assert backend.scan("weather") == []
        assert len(backend.scan("primary")) == 1

        assert backend.clear() == 1
        assert backend.scan("primary") == []


class TestMemoryPersistence:
    def test_records_are_copied(self):
        backend = MemoryPersistence()
        record = make_record("a")
        backend.put("primary", record)

        record["payload"]["count"] = 99
        backend.get("primary", "a")["payload"]["count"] = 42

        assert backend.get("primary", "a")["payload"]["count"] == 1


class TestSQLitePersistence:
    def test_survives_reopen(self, tmp_path):
        path = tmp_path / "cache.db"
        first = SQLitePersistence(path)
        first.put("primary", make_record("a"))
        first.close()

        second = SQLitePersistence(path)
        assert second.get("primary", "a")["location"] == "Madrid, Spain"
        second.close()

    def test_scan_ordered_by_last_accessed(self, sqlite_persistence):
        sqlite_persistence.put("primary", make_record("late", accessed=3.0))
        sqlite_persistence.put("primary", make_record("early", accessed=1.0))

        assert [r["key"] for r in sqlite_persistence.scan("primary")] == ["early", "late"]

    def test_undecodable_json_marked(self, sqlite_persistence):
        sqlite_persistence.put("primary", make_record("a"))
        with sqlite_persistence._conn:
            sqlite_persistence._conn.execute(
                "UPDATE cache_records SET vector = '{broken' WHERE key = 'a'"
            )

        vector = sqlite_persistence.get("primary", "a")["vector"]

        assert isinstance(vector, UndecodableValue)
        assert vector.column == "vector"
        assert vector.raw == "{broken"


# -----------------------------------------------------------------------------
# BackgroundWriter
# -----------------------------------------------------------------------------


class TestBackgroundWriter:
    """Off-request-path execution."""

    def test_runs_in_submission_order(self):
        writer = BackgroundWriter()
        seen = []

        for i in range(20):
            writer.submit("append", seen.append, i)

        assert writer.flush(timeout=5)
        assert seen == list(range(20))
        writer.close()

    def test_runs_off_calling_thread(self):
        writer = BackgroundWriter(thread_name_prefix="test-writer")
        names = []

        writer.submit("record thread", lambda: names.append(threading.current_thread().name))
        writer.flush(timeout=5)

        assert names[0].startswith("test-writer")
        writer.close()

    def test_failures_logged_and_counted(self, caplog):
        writer = BackgroundWriter()

        def fail():
            raise OSError("disk full")

        writer.submit("persist weather", fail)
        writer.flush(timeout=5)

        assert writer.failures == 1
        assert "Background persistence failed (persist weather)" in caplog.text
        writer.close()

    def test_submit_after_close_is_dropped(self):
        writer = BackgroundWriter()
        writer.close()

        assert writer.submit("late", print, "never") is None
        assert writer.pending == 0

    def test_flush_timeout(self):
        writer = BackgroundWriter()
        gate = threading.Event()

        writer.submit("blocked", gate.wait, 5)

        assert writer.flush(timeout=0.01) is False
        gate.set()
        assert writer.flush(timeout=5) is True
        writer.close()
