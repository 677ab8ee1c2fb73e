"""Interval-containment store for date-range-bound data (events, festivals)."""

from __future__ import annotations

import logging
from datetime import date

from context_cache.cache.base import CacheEntry, CacheError, CacheStore, StoreName

logger = logging.getLogger(__name__)


class RangeStore(CacheStore):
    """Store keyed by (location, start date, end date).

    A lookup for a location and target date hits any entry for the same
    normalized location whose ``[start_date, end_date]`` contains the date.
    When several entries cover it, the most recently accessed one wins.

    Example:
        >>> store = RangeStore(capacity=50)
        >>> store.insert(CacheEntry(
        ...     key="events-madrid, spain-2025-09-19-2025-09-23",
        ...     payload=[...],
        ...     store=StoreName.RANGE,
        ...     summary=ContextSummary("madrid, spain", None),
        ...     start_date=date(2025, 9, 19),
        ...     end_date=date(2025, 9, 23),
        ... ))
        >>> store.lookup("madrid, spain", date(2025, 9, 21))
    """

    name = StoreName.RANGE

    def __init__(self, capacity: int = 50) -> None:
        super().__init__(capacity)
        self._by_location: dict[str, dict[str, CacheEntry]] = {}

    def insert(self, entry: CacheEntry) -> list[CacheEntry]:
        if entry.start_date is None or entry.end_date is None or entry.summary is None:
            raise CacheError(f"Range entry {entry.key!r} needs a location and a date interval")
        if entry.start_date > entry.end_date:
            raise CacheError(
                f"Range entry {entry.key!r} starts after it ends",
                details={"start_date": entry.start_date, "end_date": entry.end_date},
            )
        return super().insert(entry)

    def lookup(self, location: str, target: date) -> CacheEntry | None:
        """Return the most recently accessed entry covering ``target``.

        Args:
            location: Normalized location, as used when the entry was stored.
            target: Day that must fall inside the entry's interval.
        """
        candidates = self._by_location.get(location)
        best: CacheEntry | None = None
        if candidates:
            for entry in tuple(candidates.values()):
                if entry.covers(target) and (
                    best is None or entry.last_accessed > best.last_accessed
                ):
                    best = entry

        if best is None:
            self._record_miss()
            return None
        return self._record_hit(best)

    def _on_insert(self, entry: CacheEntry) -> None:
        location = entry.summary.location
        # copy-on-write so concurrent readers keep a stable view
        bucket = dict(self._by_location.get(location, {}))
        bucket[entry.key] = entry
        self._by_location = {**self._by_location, location: bucket}

    def _on_remove(self, entry: CacheEntry) -> None:
        location = entry.summary.location
        bucket = dict(self._by_location.get(location, {}))
        bucket.pop(entry.key, None)
        index = dict(self._by_location)
        if bucket:
            index[location] = bucket
        else:
            index.pop(location, None)
        self._by_location = index
