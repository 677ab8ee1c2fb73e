"""Cache coordinator: the engine's entry point.

:class:`CacheCoordinator` owns the stores and decides, per request, which
of them to ask:

- Primary results (activity recommendations): the Strict Store first, then
  the Similarity Store. Both hold the same logical cache; the strict store
  is the fast path for exact repeats.
- Weather: a separate strict store keyed on location and exact date.
- Events/festivals: the Range Store, queried directly.

Lookups never touch the persistence backend. Writes update the in-memory
stores immediately and mirror them to persistence on a background thread.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date
from typing import Any

from context_cache.cache.base import (
    CacheEntry,
    CacheError,
    CacheHit,
    CacheMiss,
    CacheStats,
    MatchInfo,
    StoreName,
)
from context_cache.cache.context import ContextSummary, SearchContext, parse_date
from context_cache.cache.features import FeatureVector, FeatureVectorBuilder
from context_cache.cache.key import CacheKeyGenerator
from context_cache.cache.persistence import BackgroundWriter, PersistedRecord, PersistenceBackend
from context_cache.cache.sanitize import sanitize_record
from context_cache.cache.scorer import SimilarityScorer
from context_cache.cache.stores import RangeStore, SimilarityStore, StrictStore
from context_cache.config import CacheConfig
from context_cache.errors import IncompleteContextError, MalformedEntryError, log_exception
from context_cache.logging import get_logger

logger = logging.getLogger(__name__)
log = get_logger(__name__)

PRIMARY = "primary"
WEATHER = "weather"
EVENTS = "events"
NAMESPACES = (PRIMARY, WEATHER, EVENTS)


@dataclass(frozen=True)
class ResolveEvent:
    """Outcome of one lookup, delivered to observers.

    Attributes:
        kind: ``"primary"``, ``"weather"`` or ``"events"``.
        hit: Whether a payload was returned.
        store: Store that served the hit.
        similarity: Similarity of the hit, or best score seen on a miss.
        reason: Miss reason.
        key: Cache key of the request.
        latency_ms: Lookup time.
    """

    kind: str
    hit: bool
    store: StoreName | None
    similarity: float | None
    reason: str | None
    key: str | None
    latency_ms: float


Observer = Callable[[ResolveEvent], None]


class CacheCoordinator:
    """Multi-tier cache for activity results, weather and event listings.

    Build one per process at the composition root and share it between
    request handlers; every method is safe to call concurrently.

    Example - Primary results:
        >>> coordinator = CacheCoordinator(persistence=SQLitePersistence("./cache.db"))
        >>> coordinator.load()
        >>>
        >>> result = coordinator.resolve(context)
        >>> if result.hit:
        ...     print(result.match_info.store, result.similarity)
        ...     activities = result.payload
        >>> else:
        ...     activities = generate_activities(context)
        ...     coordinator.record(context, activities)

    Example - Weather and events:
        >>> coordinator.record_weather("London, UK", "2025-09-22", forecast)
        >>> coordinator.resolve_weather("London, UK", "2025-09-21").hit
        False
        >>> coordinator.record_events("Madrid, Spain", "2025-09-19", "2025-09-23", events)
        >>> coordinator.resolve_events("Madrid, Spain", "2025-09-21").hit
        True
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        persistence: PersistenceBackend | None = None,
        key_generator: CacheKeyGenerator | None = None,
        observers: Iterable[Observer] | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            config: Engine configuration. Defaults to ``CacheConfig()``.
            persistence: Durable backend mirrored in the background. None
                keeps the caches purely in memory.
            key_generator: Custom key generator.
            observers: Callables receiving a :class:`ResolveEvent` per lookup.
        """
        self.config = config or CacheConfig()
        self.builder = FeatureVectorBuilder(self.config)
        self.scorer = SimilarityScorer(self.config)
        self.key_generator = key_generator or CacheKeyGenerator()

        self.strict = StrictStore(self.config.strict_capacity)
        self.similarity = SimilarityStore(
            scorer=self.scorer,
            capacity=self.config.similarity_capacity,
            threshold=self.config.similarity_threshold,
        )
        self.weather = StrictStore(self.config.weather_capacity, name=StoreName.WEATHER)
        self.events = RangeStore(self.config.range_capacity)

        self._persistence = persistence
        self._writer = BackgroundWriter() if persistence is not None else None
        self._observers: list[Observer] = list(observers or [])

        logger.debug(
            f"Initialized CacheCoordinator with threshold={self.config.similarity_threshold}, "
            f"persistence={type(persistence).__name__ if persistence else None}"
        )

    # -------------------------------------------------------------------------
    # Primary results
    # -------------------------------------------------------------------------

    def resolve(self, context: SearchContext) -> CacheHit | CacheMiss:
        """Look up a primary result: strict store first, then similarity.

        Raises:
            IncompleteContextError: If the context has no location or date.
        """
        start = time.perf_counter()
        context.require_identity()

        key: str | None = None
        try:
            key = self.key_generator.generate(context)
            entry = self.strict.lookup(key)
            if entry is not None:
                self._persist_touch(PRIMARY, entry)
                result: CacheHit | CacheMiss = CacheHit(
                    entry=entry,
                    match_info=MatchInfo(StoreName.STRICT, 1.0, entry.summary),
                    latency_ms=_elapsed_ms(start),
                )
            else:
                lookup = self.similarity.lookup(self.builder.build(context))
                if lookup.hit:
                    self._persist_touch(PRIMARY, lookup.entry)
                    result = CacheHit(
                        entry=lookup.entry,
                        match_info=MatchInfo(StoreName.SIMILARITY, lookup.score, lookup.entry.summary),
                        latency_ms=_elapsed_ms(start),
                    )
                else:
                    if lookup.score is not None:
                        reason = "below_threshold"
                    elif lookup.candidates and lookup.disqualified == lookup.candidates:
                        reason = "disqualified"
                    else:
                        reason = "not_found"
                    result = CacheMiss(
                        reason=reason,
                        best_similarity=lookup.score,
                        latency_ms=_elapsed_ms(start),
                    )
        except Exception as e:
            log_exception(logger, "Cache lookup failed", e)
            result = CacheMiss(reason="error", latency_ms=_elapsed_ms(start))

        self._emit(PRIMARY, key, result)
        return result

    def record(self, context: SearchContext, payload: Any) -> str | None:
        """Cache a freshly computed primary result.

        Builds the feature vector once and writes the entry into both the
        strict and the similarity store. Persistence happens in the
        background.

        Returns:
            The cache key, or None if the write failed.

        Raises:
            IncompleteContextError: If the context has no location or date.
        """
        context.require_identity()
        try:
            key = self.key_generator.generate(context)
            vector = self.builder.build(context)
            summary = context.summary()
            now = time.time()

            strict_entry = CacheEntry(
                key=key, payload=payload, store=StoreName.STRICT,
                vector=vector, summary=summary, created_at=now,
            )
            similarity_entry = CacheEntry(
                key=key, payload=payload, store=StoreName.SIMILARITY,
                vector=vector, summary=summary, created_at=now,
            )
            evicted = self._insert_primary(strict_entry, similarity_entry)
            self._persist_put(PRIMARY, strict_entry)
            self._forget_evicted(PRIMARY, evicted)
            logger.debug(f"Cached primary result for '{key[:50]}'")
            return key
        except Exception as e:
            log_exception(logger, "Failed to cache primary result", e)
            return None

    def delete(self, context: SearchContext) -> bool:
        """Remove a primary result from both stores and persistence."""
        context.require_identity()
        key = self.key_generator.generate(context)
        removed = self.strict.delete(key)
        removed = self.similarity.delete(key) or removed
        if removed:
            self._persist_delete(PRIMARY, key)
        return removed

    # -------------------------------------------------------------------------
    # Weather (strict date-only)
    # -------------------------------------------------------------------------

    def resolve_weather(self, location: str, day: date | str) -> CacheHit | CacheMiss:
        """Look up weather for exactly this location and date.

        Raises:
            IncompleteContextError: If location or date is missing.
        """
        start = time.perf_counter()
        day = _require_location_and_date(location, day)

        key = None
        try:
            key = self.key_generator.weather_key(location, day)
            entry = self.weather.lookup(key)
            if entry is None:
                result: CacheHit | CacheMiss = CacheMiss(latency_ms=_elapsed_ms(start))
            else:
                self._persist_touch(WEATHER, entry)
                result = CacheHit(
                    entry=entry,
                    match_info=MatchInfo(StoreName.WEATHER, 1.0, entry.summary),
                    latency_ms=_elapsed_ms(start),
                )
        except Exception as e:
            log_exception(logger, "Weather lookup failed", e)
            result = CacheMiss(reason="error", latency_ms=_elapsed_ms(start))

        self._emit(WEATHER, key, result)
        return result

    def record_weather(self, location: str, day: date | str, payload: Any) -> str | None:
        """Cache weather data for one location and date.

        Returns:
            The cache key, or None if the write failed.

        Raises:
            IncompleteContextError: If location or date is missing.
        """
        day = _require_location_and_date(location, day)
        try:
            key = self.key_generator.weather_key(location, day)
            entry = CacheEntry(
                key=key,
                payload=payload,
                store=StoreName.WEATHER,
                summary=ContextSummary(location=location, date=day),
            )
            evicted = self.weather.insert(entry)
            self._persist_put(WEATHER, entry)
            self._forget_evicted(WEATHER, evicted)
            return key
        except Exception as e:
            log_exception(logger, "Failed to cache weather", e)
            return None

    # -------------------------------------------------------------------------
    # Events (range containment)
    # -------------------------------------------------------------------------

    def resolve_events(self, location: str, day: date | str) -> CacheHit | CacheMiss:
        """Look up event listings whose cached date range covers ``day``.

        Raises:
            IncompleteContextError: If location or date is missing.
        """
        start = time.perf_counter()
        day = _require_location_and_date(location, day)

        entry = None
        try:
            entry = self.events.lookup(self.key_generator.normalize_location(location), day)
            if entry is None:
                result: CacheHit | CacheMiss = CacheMiss(latency_ms=_elapsed_ms(start))
            else:
                self._persist_touch(EVENTS, entry)
                result = CacheHit(
                    entry=entry,
                    match_info=MatchInfo(StoreName.RANGE, 1.0, entry.summary),
                    latency_ms=_elapsed_ms(start),
                )
        except Exception as e:
            log_exception(logger, "Event lookup failed", e)
            result = CacheMiss(reason="error", latency_ms=_elapsed_ms(start))

        self._emit(EVENTS, entry.key if entry else None, result)
        return result

    def record_events(
        self,
        location: str,
        start_date: date | str,
        end_date: date | str,
        payload: Any,
    ) -> str | None:
        """Cache event listings covering ``[start_date, end_date]``.

        An inverted interval is logged and not cached.

        Returns:
            The cache key, or None if the write failed.

        Raises:
            IncompleteContextError: If location or either date is missing.
        """
        start_day = _require_location_and_date(location, start_date)
        end_day = _require_location_and_date(location, end_date)
        try:
            normalized = self.key_generator.normalize_location(location)
            key = self.key_generator.range_key(location, start_day, end_day)

            entry = CacheEntry(
                key=key,
                payload=payload,
                store=StoreName.RANGE,
                summary=ContextSummary(location=normalized, date=start_day),
                start_date=start_day,
                end_date=end_day,
            )
            evicted = self.events.insert(entry)
            self._persist_put(EVENTS, entry)
            self._forget_evicted(EVENTS, evicted)
            return key
        except Exception as e:
            log_exception(logger, "Failed to cache events", e)
            return None

    # -------------------------------------------------------------------------
    # Async API
    # -------------------------------------------------------------------------

    async def aresolve(self, context: SearchContext) -> CacheHit | CacheMiss:
        """Async version of resolve(). Lookups are in-memory and never block."""
        return self.resolve(context)

    async def arecord(self, context: SearchContext, payload: Any) -> str | None:
        """Async version of record().

        The write runs in a worker thread shielded from cancellation, so a
        caller that times out after a miss still populates the cache.
        """
        return await asyncio.shield(asyncio.to_thread(self.record, context, payload))

    async def aresolve_weather(self, location: str, day: date | str) -> CacheHit | CacheMiss:
        return self.resolve_weather(location, day)

    async def arecord_weather(self, location: str, day: date | str, payload: Any) -> str | None:
        return await asyncio.shield(asyncio.to_thread(self.record_weather, location, day, payload))

    async def aresolve_events(self, location: str, day: date | str) -> CacheHit | CacheMiss:
        return self.resolve_events(location, day)

    async def arecord_events(
        self,
        location: str,
        start_date: date | str,
        end_date: date | str,
        payload: Any,
    ) -> str | None:
        return await asyncio.shield(
            asyncio.to_thread(self.record_events, location, start_date, end_date, payload)
        )

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load(self) -> dict[str, int]:
        """Warm the in-memory stores from the persistence backend.

        Intended for startup. Malformed records are logged and skipped.

        Returns:
            Number of records loaded per namespace.
        """
        if self._persistence is None:
            return {namespace: 0 for namespace in NAMESPACES}

        loaded = {}
        for namespace in NAMESPACES:
            entries = []
            for record in self._persistence.scan(namespace):
                try:
                    entries.append(self._entry_from_record(namespace, record))
                except MalformedEntryError as e:
                    log_exception(
                        logger,
                        f"Skipping malformed {namespace} record",
                        e,
                        include_traceback=False,
                    )
            # oldest first so LRU order survives a restart
            entries.sort(key=lambda e: e.last_accessed)
            for entry in entries:
                self._restore(namespace, entry)
            loaded[namespace] = len(entries)

        log.info("Warmed caches from persistence", **loaded)
        return loaded

    async def aload(self) -> dict[str, int]:
        """Async version of load(); runs the backend scan in a thread."""
        return await asyncio.to_thread(self.load)

    def _restore(self, namespace: str, entry: CacheEntry) -> None:
        if namespace == PRIMARY:
            twin = CacheEntry(
                key=entry.key, payload=entry.payload, store=StoreName.SIMILARITY,
                vector=entry.vector, summary=entry.summary, created_at=entry.created_at,
                last_accessed=entry.last_accessed, access_count=entry.access_count,
            )
            evicted = self._insert_primary(entry, twin)
        elif namespace == WEATHER:
            evicted = self.weather.insert(entry)
        else:
            evicted = self.events.insert(entry)
        self._forget_evicted(namespace, evicted)

    def _entry_from_record(self, namespace: str, record: PersistedRecord) -> CacheEntry:
        clean = sanitize_record(record)
        key = clean["key"]

        vector = None
        if namespace == PRIMARY:
            vector = FeatureVector.from_dict(clean.get("vector"), key=key)

        day = parse_date(clean.get("date"))
        start_day = parse_date(clean.get("start_date"))
        end_day = parse_date(clean.get("end_date"))
        location = clean.get("location")
        if not isinstance(location, str) or day is None:
            raise MalformedEntryError("Record lacks location or date", key=key, field="location")
        if namespace == EVENTS and (start_day is None or end_day is None or start_day > end_day):
            raise MalformedEntryError("Record has no valid date range", key=key, field="start_date")

        store = {PRIMARY: StoreName.STRICT, WEATHER: StoreName.WEATHER, EVENTS: StoreName.RANGE}
        return CacheEntry(
            key=key,
            payload=clean.get("payload"),
            store=store[namespace],
            vector=vector,
            summary=ContextSummary(location=location, date=day),
            start_date=start_day,
            end_date=end_day,
            created_at=clean["created_at"],
            last_accessed=clean["last_accessed"],
            access_count=clean["access_count"],
        )

    @staticmethod
    def _to_record(entry: CacheEntry) -> PersistedRecord:
        summary = entry.summary
        return {
            "key": entry.key,
            "vector": entry.vector.to_dict() if entry.vector is not None else None,
            "payload": entry.payload,
            "created_at": entry.created_at,
            "last_accessed": entry.last_accessed,
            "access_count": entry.access_count,
            "location": summary.location if summary else None,
            "date": summary.date.isoformat() if summary and summary.date else None,
            "start_date": entry.start_date.isoformat() if entry.start_date else None,
            "end_date": entry.end_date.isoformat() if entry.end_date else None,
            "season": entry.vector.temporal.season if entry.vector is not None else None,
        }

    def _persist_put(self, namespace: str, entry: CacheEntry) -> None:
        if self._writer is None:
            return
        record = self._to_record(entry)
        self._writer.submit(f"put {namespace}", self._persistence.put, namespace, record)

    def _persist_touch(self, namespace: str, entry: CacheEntry) -> None:
        if self._writer is None:
            return
        self._writer.submit(
            f"touch {namespace}",
            self._persistence.touch,
            namespace,
            entry.key,
            entry.last_accessed,
            entry.access_count,
        )

    def _persist_delete(self, namespace: str, key: str) -> None:
        if self._writer is None:
            return
        self._writer.submit(f"delete {namespace}", self._persistence.delete, namespace, key)

    def _insert_primary(self, strict_entry: CacheEntry, similarity_entry: CacheEntry) -> list[str]:
        evicted = [e.key for e in self.strict.insert(strict_entry)]
        evicted += [e.key for e in self.similarity.insert(similarity_entry)]
        # a record stays durable while either store still holds it
        return [k for k in dict.fromkeys(evicted) if k not in self.strict and k not in self.similarity]

    def _forget_evicted(self, namespace: str, evicted: Iterable[CacheEntry | str]) -> None:
        for item in evicted:
            self._persist_delete(namespace, item if isinstance(item, str) else item.key)

    # -------------------------------------------------------------------------
    # Observability and lifecycle
    # -------------------------------------------------------------------------

    def add_observer(self, observer: Observer) -> None:
        """Register a callable receiving a :class:`ResolveEvent` per lookup."""
        self._observers.append(observer)

    def _emit(self, kind: str, key: str | None, result: CacheHit | CacheMiss) -> None:
        if isinstance(result, CacheHit):
            event = ResolveEvent(
                kind=kind, hit=True, store=result.store, similarity=result.similarity,
                reason=None, key=key, latency_ms=result.latency_ms,
            )
            log.debug(
                "Cache hit", kind=kind, store=str(result.store),
                similarity=round(result.similarity, 4), key=(key or "")[:50],
            )
        else:
            event = ResolveEvent(
                kind=kind, hit=False, store=None, similarity=result.best_similarity,
                reason=result.reason, key=key, latency_ms=result.latency_ms,
            )
            log.debug("Cache miss", kind=kind, reason=result.reason, key=(key or "")[:50])

        for observer in tuple(self._observers):
            try:
                observer(event)
            except Exception as e:
                log_exception(logger, "Cache observer failed", e, include_traceback=False)

    def stats(self) -> dict[str, CacheStats]:
        """Per-store statistics keyed by store name."""
        return {
            store.name.value: store.stats()
            for store in (self.strict, self.similarity, self.weather, self.events)
        }

    def clear(self, store: StoreName | str | None = None) -> int:
        """Clear one store, or all stores, and the matching persisted records.

        Returns:
            Number of in-memory entries removed.
        """
        stores = {
            StoreName.STRICT: (self.strict, PRIMARY),
            StoreName.SIMILARITY: (self.similarity, PRIMARY),
            StoreName.WEATHER: (self.weather, WEATHER),
            StoreName.RANGE: (self.events, EVENTS),
        }
        if store is None:
            selected = list(stores.values())
        else:
            try:
                selected = [stores[StoreName(store)]]
            except ValueError as e:
                raise CacheError(f"Unknown store: {store!r}") from e

        count = 0
        namespaces = set()
        for target, namespace in selected:
            count += target.clear()
            namespaces.add(namespace)

        for namespace in namespaces:
            if namespace == PRIMARY and (len(self.strict) or len(self.similarity)):
                continue
            if self._writer is not None:
                self._writer.submit(f"clear {namespace}", self._persistence.clear, namespace)

        logger.info(f"Cleared {count} entries from cache")
        return count

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for background persistence to catch up."""
        if self._writer is None:
            return True
        return self._writer.flush(timeout)

    def close(self) -> None:
        """Flush pending writes and close the persistence backend."""
        if self._writer is not None:
            self._writer.close()
        if self._persistence is not None:
            self._persistence.close()

    def __enter__(self) -> CacheCoordinator:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        sizes = ", ".join(f"{name}={s.entries}" for name, s in self.stats().items())
        return f"CacheCoordinator({sizes})"


def _require_location_and_date(location: str, day: date | str | None) -> date:
    missing = []
    if not location or not str(location).strip():
        missing.append("location")
    parsed = parse_date(day)
    if parsed is None:
        missing.append("date")
    if missing:
        raise IncompleteContextError(f"Cache request is missing {', '.join(missing)}", missing=missing)
    return parsed


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
