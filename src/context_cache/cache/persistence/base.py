"""Persistence collaborator interface.

The engine keeps its working set in memory and mirrors it to a durable
key-value store so a restarted process can warm its caches. Backends only
need keyed access plus a bounded scan; the coordinator never waits on them
during a lookup.

A persisted record is a plain dict:

- ``key``: cache key
- ``vector``: ``FeatureVector.to_dict()`` output, or None
- ``payload``: the cached result
- ``created_at``, ``last_accessed``: Unix timestamps
- ``access_count``: number of hits
- ``location``, ``date``, ``start_date``, ``end_date``: ISO index columns
- ``season``: coarse time index used to narrow similarity scans

A column the backend could not decode comes back as :class:`UndecodableValue`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

PersistedRecord = dict[str, Any]

RECORD_FIELDS = (
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


@dataclass(frozen=True)
class UndecodableValue:
    """Placeholder for a stored column that could not be decoded.

    Backends return it in place of the value instead of raising, so one bad
    row does not abort a scan. Records carrying one are rejected on load.
    """

    column: str
    raw: Any
    error: str


class PersistenceBackend(ABC):
    """Abstract durable store for cache records.

    Records are grouped in namespaces (``"primary"``, ``"weather"``,
    ``"events"``). Implementations must be safe to call from the background
    writer thread and from the thread that warms the caches at startup.

    Example - Implementing a custom backend:
        >>> class DictBackend(PersistenceBackend):
        ...     def put(self, namespace, record):
        ...         self._data.setdefault(namespace, {})[record["key"]] = record
        ...     ...
    """

    @abstractmethod
    def put(self, namespace: str, record: PersistedRecord) -> None:
        """Insert or replace a record by its key."""

    @abstractmethod
    def get(self, namespace: str, key: str) -> PersistedRecord | None:
        """Fetch one record, or None."""

    @abstractmethod
    def scan(self, namespace: str, season: str | None = None) -> list[PersistedRecord]:
        """Return the records of a namespace.

        Args:
            namespace: Namespace to read.
            season: If given, backends with a season index may return only
                records of that season. Returning everything is acceptable.
        """

    @abstractmethod
    def touch(self, namespace: str, key: str, last_accessed: float, access_count: int) -> None:
        """Update the access bookkeeping of a record, if it exists."""

    @abstractmethod
    def delete(self, namespace: str, key: str) -> bool:
        """Delete a record. Returns True if it existed."""

    @abstractmethod
    def clear(self, namespace: str | None = None) -> int:
        """Delete every record of a namespace, or of all namespaces."""

    def close(self) -> None:
        """Release resources. Default does nothing."""
        return None
