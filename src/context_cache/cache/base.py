"""Base classes for the cache stores.

This module provides the data structures shared by every store (entries,
lookup results, statistics) and the abstract :class:`CacheStore` with the
capacity and LRU discipline all stores follow.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Literal

from context_cache.cache.context import ContextSummary
from context_cache.cache.features import FeatureVector
from context_cache.errors import ContextCacheError

logger = logging.getLogger(__name__)


class CacheError(ContextCacheError):
    """Base exception for cache store errors."""


class StoreName(str, Enum):
    """Identifies a store in match info, events and statistics."""

    STRICT = "strict"
    SIMILARITY = "similarity"
    RANGE = "range"
    WEATHER = "weather"

    def __str__(self) -> str:
        return self.value


@dataclass
class CacheEntry:
    """A cached payload with metadata.

    Attributes:
        key: Deterministic key derived from the normalized context.
        payload: The cached result. Opaque to the engine.
        store: Name of the owning store.
        vector: Feature vector of the context that produced the payload.
        summary: Location/date of the original context, for match info.
        start_date: First covered day (range entries only).
        end_date: Last covered day (range entries only).
        created_at: Unix timestamp when the entry was created.
        last_accessed: Unix timestamp of the last hit (creation time until then).
        access_count: Number of hits served from this entry.

    Example:
        >>> entry = CacheEntry(
        ...     key="madrid, spain|2025-09-20|4|6,8|",
        ...     payload={"activities": [...]},
        ...     store=StoreName.STRICT,
        ... )
    """

    key: str
    payload: Any
    store: StoreName
    vector: FeatureVector | None = None
    summary: ContextSummary | None = None
    start_date: date | None = None
    end_date: date | None = None
    created_at: float = field(default_factory=time.time)
    last_accessed: float | None = None
    access_count: int = 0

    def __post_init__(self) -> None:
        if self.last_accessed is None:
            self.last_accessed = self.created_at

    def touch(self, now: float | None = None) -> None:
        """Record a hit."""
        self.last_accessed = time.time() if now is None else now
        self.access_count += 1

    def covers(self, day: date) -> bool:
        if self.start_date is None or self.end_date is None:
            return False
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class MatchInfo:
    """Explains which store served a hit and how close the match was.

    Attributes:
        store: Store that produced the hit.
        similarity: 1.0 for strict and range hits, the weighted score otherwise.
        original_context: Location/date of the context the payload was made for.
    """

    store: StoreName
    similarity: float
    original_context: ContextSummary | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "store": self.store.value,
            "similarity": self.similarity,
            "original_context": self.original_context.to_dict() if self.original_context else None,
        }


@dataclass
class CacheHit:
    """Result of a successful cache lookup.

    Attributes:
        entry: The matched cache entry.
        match_info: Which store served it and with which similarity.
        latency_ms: Time taken for the lookup in milliseconds.
    """

    entry: CacheEntry
    match_info: MatchInfo
    latency_ms: float = 0.0

    hit = True

    @property
    def payload(self) -> Any:
        """Get the cached payload."""
        return self.entry.payload

    @property
    def similarity(self) -> float:
        return self.match_info.similarity

    @property
    def store(self) -> StoreName:
        return self.match_info.store


@dataclass
class CacheMiss:
    """Result of a cache lookup that found no usable entry.

    Attributes:
        reason: Why the cache missed.
        best_similarity: Highest score seen below the threshold, if any.
        latency_ms: Time taken for the lookup in milliseconds.
    """

    reason: Literal["not_found", "below_threshold", "disqualified", "error"] = "not_found"
    best_similarity: float | None = None
    latency_ms: float = 0.0

    hit = False
    payload = None
    match_info = None


@dataclass
class CacheStats:
    """Statistics about one store.

    Attributes:
        name: Store name.
        capacity: Maximum number of entries.
        entries: Current number of entries.
        hits: Number of lookups that returned an entry.
        misses: Number of lookups that returned nothing.
        evictions: Entries removed by LRU eviction.
        dropped: Malformed entries dropped during lookups.
        avg_similarity: Average similarity of hits.
    """

    name: str
    capacity: int
    entries: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    dropped: int = 0
    avg_similarity: float = 0.0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate (0.0 to 1.0)."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total


class CacheStore(ABC):
    """Bounded, thread-safe collection of :class:`CacheEntry` objects.

    Writers (insert, delete, clear, eviction, hit bookkeeping) serialize on
    the store's own lock. Readers work on an immutable snapshot of the
    entries published after every write, so lookups never wait for each
    other.

    Subclasses implement ``lookup()`` with their own matching rule and may
    override ``_on_insert``/``_on_remove`` to maintain secondary indexes.
    """

    name: StoreName

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise CacheError(f"{type(self).__name__} capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}
        self._snapshot: tuple[CacheEntry, ...] = ()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._dropped = 0
        self._total_similarity = 0.0

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def insert(self, entry: CacheEntry) -> list[CacheEntry]:
        """Store an entry, replacing any entry with the same key.

        Returns:
            Entries evicted to make room.
        """
        with self._lock:
            entries = dict(self._entries)
            previous = entries.pop(entry.key, None)
            if previous is not None:
                self._on_remove(previous)
            entries[entry.key] = entry
            self._on_insert(entry)
            evicted = self._evict(entries)
            self._publish(entries)
        for old in evicted:
            logger.debug(f"Evicted {self.name} entry: {old.key[:50]}")
        return evicted

    def evict_if_over_capacity(self) -> list[CacheEntry]:
        """Evict least recently accessed entries until within capacity."""
        with self._lock:
            entries = dict(self._entries)
            evicted = self._evict(entries)
            if evicted:
                self._publish(entries)
        return evicted

    def delete(self, key: str) -> bool:
        """Delete an entry by key.

        Returns:
            True if entry was deleted, False if not found.
        """
        with self._lock:
            if key not in self._entries:
                return False
            entries = dict(self._entries)
            self._on_remove(entries.pop(key))
            self._publish(entries)
            return True

    def clear(self) -> int:
        """Remove all entries and reset statistics.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            count = len(self._entries)
            for entry in self._entries.values():
                self._on_remove(entry)
            self._publish({})
            self._hits = self._misses = self._evictions = self._dropped = 0
            self._total_similarity = 0.0
            return count

    def _evict(self, entries: dict[str, CacheEntry]) -> list[CacheEntry]:
        evicted = []
        while len(entries) > self.capacity:
            # oldest last_accessed; dict order breaks ties
            oldest = min(
                enumerate(entries.values()),
                key=lambda pair: (pair[1].last_accessed, pair[0]),
            )[1]
            del entries[oldest.key]
            self._on_remove(oldest)
            self._evictions += 1
            evicted.append(oldest)
        return evicted

    def _publish(self, entries: dict[str, CacheEntry]) -> None:
        self._entries = entries
        self._snapshot = tuple(entries.values())

    def _on_insert(self, entry: CacheEntry) -> None:
        """Hook for secondary indexes. Called under the store lock."""

    def _on_remove(self, entry: CacheEntry) -> None:
        """Hook for secondary indexes. Called under the store lock."""

    # -------------------------------------------------------------------------
    # Lookup bookkeeping
    # -------------------------------------------------------------------------

    def _record_hit(self, entry: CacheEntry, similarity: float = 1.0) -> CacheEntry:
        with self._lock:
            entry.touch()
            self._hits += 1
            self._total_similarity += similarity
        return entry

    def _record_miss(self) -> None:
        with self._lock:
            self._misses += 1

    def _drop(self, entry: CacheEntry) -> None:
        """Remove a malformed entry found during a lookup."""
        with self._lock:
            if self._entries.get(entry.key) is entry:
                entries = dict(self._entries)
                del entries[entry.key]
                self._on_remove(entry)
                self._publish(entries)
            self._dropped += 1

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def entries(self) -> tuple[CacheEntry, ...]:
        """Snapshot of the current entries."""
        return self._snapshot

    def get_entry(self, key: str) -> CacheEntry | None:
        """Fetch an entry by key without counting a hit."""
        return self._entries.get(key)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                name=self.name.value,
                capacity=self.capacity,
                entries=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                dropped=self._dropped,
                avg_similarity=self._total_similarity / self._hits if self._hits else 0.0,
            )

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __repr__(self) -> str:
        return f"{type(self).__name__}(entries={len(self)}, capacity={self.capacity})"
