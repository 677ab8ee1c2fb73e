"""In-memory persistence backend.

Suitable for tests and single-process development. Data is lost when the
process exits.
"""

from __future__ import annotations

import copy
import threading

from context_cache.cache.persistence.base import PersistedRecord, PersistenceBackend


class MemoryPersistence(PersistenceBackend):
    """Thread-safe dict-backed persistence.

    Records are deep-copied on the way in and out, so callers cannot mutate
    stored state by accident.

    Example:
        >>> backend = MemoryPersistence()
        >>> backend.put("weather", {"key": "weather-london, uk-2025-09-21", ...})
        >>> backend.get("weather", "weather-london, uk-2025-09-21")
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, PersistedRecord]] = {}
        self._lock = threading.RLock()

    def put(self, namespace: str, record: PersistedRecord) -> None:
        with self._lock:
            self._data.setdefault(namespace, {})[record["key"]] = copy.deepcopy(record)

    def get(self, namespace: str, key: str) -> PersistedRecord | None:
        with self._lock:
            record = self._data.get(namespace, {}).get(key)
            return copy.deepcopy(record) if record is not None else None

    def scan(self, namespace: str, season: str | None = None) -> list[PersistedRecord]:
        with self._lock:
            records = self._data.get(namespace, {}).values()
            return [
                copy.deepcopy(r)
                for r in records
                if season is None or r.get("season") in (None, season)
            ]

    def touch(self, namespace: str, key: str, last_accessed: float, access_count: int) -> None:
        with self._lock:
            record = self._data.get(namespace, {}).get(key)
            if record is not None:
                record["last_accessed"] = last_accessed
                record["access_count"] = access_count

    def delete(self, namespace: str, key: str) -> bool:
        with self._lock:
            return self._data.get(namespace, {}).pop(key, None) is not None

    def clear(self, namespace: str | None = None) -> int:
        with self._lock:
            if namespace is None:
                count = sum(len(records) for records in self._data.values())
                self._data.clear()
                return count
            return len(self._data.pop(namespace, {}))

    def __len__(self) -> int:
        with self._lock:
            return sum(len(records) for records in self._data.values())
