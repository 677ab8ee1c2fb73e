"""SQLite persistence backend.

Stores cache records in a local SQLite database file so caches survive
process restarts. Feature vectors and payloads are stored as JSON text,
so payloads must be JSON-serializable.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path

from context_cache.cache.persistence.base import (
    PersistedRecord,
    PersistenceBackend,
    UndecodableValue,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS cache_records (
    namespace     TEXT NOT NULL,
    key           TEXT NOT NULL,
    vector        TEXT,
    payload       TEXT,
    created_at    REAL,
    last_accessed REAL,
    access_count  INTEGER,
    location      TEXT,
    date          TEXT,
    start_date    TEXT,
    end_date      TEXT,
    season        TEXT,
    PRIMARY KEY (namespace, key)
);
CREATE INDEX IF NOT EXISTS cache_records_season ON cache_records (namespace, season);
CREATE INDEX IF NOT EXISTS cache_records_location ON cache_records (namespace, location);
"""

_COLUMNS = (
    "key",
    "vector",
    "payload",
    "created_at",
    "last_accessed",
    "access_count",
    "location",
    "date",
    "start_date",
    "end_date",
    "season",
)


class SQLitePersistence(PersistenceBackend):
    """SQLite-backed persistence.

    Raw column values are returned as stored. JSON columns that fail to
    decode come back as :class:`UndecodableValue` so the coordinator can
    reject the record instead of this backend raising mid-scan.

    Example:
        >>> backend = SQLitePersistence(path="./context-cache.db")
        >>> coordinator = CacheCoordinator(persistence=backend)
        >>> coordinator.load()
    """

    def __init__(self, path: str | Path = "./context-cache.db") -> None:
        """Open (and create if needed) the database.

        Args:
            path: Database file, or ``":memory:"``.
        """
        self.path = str(path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._conn:
            self._conn.executescript(_SCHEMA)
        logger.debug(f"Opened SQLite persistence at {self.path}")

    def put(self, namespace: str, record: PersistedRecord) -> None:
        row = dict(record)
        row["vector"] = None if row.get("vector") is None else json.dumps(row["vector"])
        row["payload"] = json.dumps(row.get("payload"))
        values = [namespace] + [row.get(column) for column in _COLUMNS]
        placeholders = ", ".join("?" for _ in values)
        with self._lock, self._conn:
            self._conn.execute(
                f"INSERT OR REPLACE INTO cache_records (namespace, {', '.join(_COLUMNS)}) "
                f"VALUES ({placeholders})",
                values,
            )

    def get(self, namespace: str, key: str) -> PersistedRecord | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM cache_records WHERE namespace = ? AND key = ?",
                (namespace, key),
            ).fetchone()
        return self._to_record(row) if row is not None else None

    def scan(self, namespace: str, season: str | None = None) -> list[PersistedRecord]:
        query = "SELECT * FROM cache_records WHERE namespace = ?"
        params: list[str] = [namespace]
        if season is not None:
            query += " AND (season = ? OR season IS NULL)"
            params.append(season)
        query += " ORDER BY last_accessed ASC"
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [self._to_record(row) for row in rows]

    def touch(self, namespace: str, key: str, last_accessed: float, access_count: int) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                "UPDATE cache_records SET last_accessed = ?, access_count = ? "
                "WHERE namespace = ? AND key = ?",
                (last_accessed, access_count, namespace, key),
            )

    def delete(self, namespace: str, key: str) -> bool:
        with self._lock, self._conn:
            cursor = self._conn.execute(
                "DELETE FROM cache_records WHERE namespace = ? AND key = ?", (namespace, key)
            )
        return cursor.rowcount > 0

    def clear(self, namespace: str | None = None) -> int:
        with self._lock, self._conn:
            if namespace is None:
                cursor = self._conn.execute("DELETE FROM cache_records")
            else:
                cursor = self._conn.execute(
                    "DELETE FROM cache_records WHERE namespace = ?", (namespace,)
                )
        return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _to_record(row: sqlite3.Row) -> PersistedRecord:
        record = {column: row[column] for column in _COLUMNS}
        for column in ("vector", "payload"):
            raw = record[column]
            if isinstance(raw, str):
                try:
                    record[column] = json.loads(raw)
                except json.JSONDecodeError as e:
                    logger.warning(f"Undecodable {column} for record {record['key']!r}")
                    record[column] = UndecodableValue(column, raw, str(e))
        return record

    def __repr__(self) -> str:
        return f"SQLitePersistence(path={self.path!r})"
