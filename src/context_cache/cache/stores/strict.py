"""Exact-key store.

Used as the fast path of the primary result cache and, on its own, for
weather data where only the same location and date is acceptable.
"""

from __future__ import annotations

import logging

from context_cache.cache.base import CacheEntry, CacheStore, StoreName

logger = logging.getLogger(__name__)


class StrictStore(CacheStore):
    """Store that matches on byte-equal keys only.

    Example:
        >>> store = StrictStore(capacity=100)
        >>> store.insert(CacheEntry(key="k", payload="v", store=StoreName.STRICT))
        >>> store.lookup("k").payload
        'v'
    """

    def __init__(self, capacity: int = 100, name: StoreName = StoreName.STRICT) -> None:
        super().__init__(capacity)
        self.name = name

    def lookup(self, key: str) -> CacheEntry | None:
        """Return the entry stored under ``key``, or None."""
        entry = self._entries.get(key)
        if entry is None:
            self._record_miss()
            return None
        return self._record_hit(entry)
