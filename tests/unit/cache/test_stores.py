"""Tests for the strict, range and similarity stores."""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date

import pytest

from context_cache.cache import (
    CacheEntry,
    CacheError,
    ContextSummary,
    FeatureVectorBuilder,
    RangeStore,
    SimilarityScorer,
    SimilarityStore,
    StoreName,
    StrictStore,
)
from context_cache.cache.features import TemporalFeatures

# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def strict_entry(key: str, accessed: float, payload="value") -> CacheEntry:
    return CacheEntry(key=key, payload=payload, store=StoreName.STRICT, created_at=accessed)


def range_entry(key: str, start: date, end: date, location="madrid, spain", accessed=1.0):
    return CacheEntry(
        key=key,
        payload=[key],
        store=StoreName.RANGE,
        summary=ContextSummary(location, start),
        start_date=start,
        end_date=end,
        created_at=accessed,
    )


@pytest.fixture
def builder():
    return FeatureVectorBuilder()


def similarity_entry(key, context, builder, created_at=1.0):
    return CacheEntry(
        key=key,
        payload=key,
        store=StoreName.SIMILARITY,
        vector=builder.build(context),
        summary=context.summary(),
        created_at=created_at,
    )


# -----------------------------------------------------------------------------
# Common store discipline
# -----------------------------------------------------------------------------


class TestCacheStore:
    """Capacity, LRU eviction and statistics shared by all stores."""

    def test_capacity_must_be_positive(self):
        with pytest.raises(CacheError):
            StrictStore(capacity=0)

    def test_evicts_least_recently_accessed(self):
        store = StrictStore(capacity=2)
        store.insert(strict_entry("a", 1.0))
        store.insert(strict_entry("b", 2.0))

        evicted = store.insert(strict_entry("c", 3.0))

        assert [e.key for e in evicted] == ["a"]
        assert "a" not in store
        assert len(store) == 2
        assert store.stats().evictions == 1

    def test_hit_refreshes_recency(self):
        store = StrictStore(capacity=2)
        store.insert(strict_entry("a", 1.0))
        store.insert(strict_entry("b", 2.0))

        store.lookup("a")  # touched now, far later than b
        evicted = store.insert(strict_entry("c", 3.0))

        assert [e.key for e in evicted] == ["b"]
        assert store.get_entry("a").access_count == 1

    def test_ties_broken_by_insertion_order(self):
        store = StrictStore(capacity=2)
        store.insert(strict_entry("first", 5.0))
        store.insert(strict_entry("second", 5.0))

        evicted = store.insert(strict_entry("third", 5.0))

        assert [e.key for e in evicted] == ["first"]

    def test_reinsert_replaces_entry(self):
        store = StrictStore(capacity=2)
        store.insert(strict_entry("a", 1.0, payload="old"))
        store.insert(strict_entry("a", 2.0, payload="new"))

        assert len(store) == 1
        assert store.lookup("a").payload == "new"

    def test_delete_and_clear(self):
        store = StrictStore(capacity=5)
        store.insert(strict_entry("a", 1.0))
        store.insert(strict_entry("b", 2.0))

        assert store.delete("a") is True
        assert store.delete("a") is False
        assert store.clear() == 1
        assert len(store) == 0

    def test_stats(self):
        store = StrictStore(capacity=5)
        store.insert(strict_entry("a", 1.0))
        store.lookup("a")
        store.lookup("missing")

        stats = store.stats()

        assert stats.name == "strict"
        assert stats.hits == 1
        assert stats.misses == 1
        assert stats.hit_rate == 0.5

    def test_snapshot_is_stable_during_writes(self):
        store = StrictStore(capacity=5)
        store.insert(strict_entry("a", 1.0))
        snapshot = store.entries()

        store.insert(strict_entry("b", 2.0))
        store.delete("a")

        assert [e.key for e in snapshot] == ["a"]

    def test_concurrent_inserts_respect_capacity(self):
        store = StrictStore(capacity=10)

        def writer(offset: int) -> None:
            for i in range(50):
                store.insert(strict_entry(f"{offset}-{i}", float(offset * 100 + i)))
                store.lookup(f"{offset}-{i}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 10
        assert store.stats().evictions == 190


# -----------------------------------------------------------------------------
# RangeStore
# -----------------------------------------------------------------------------


class TestRangeStore:
    """Interval containment lookups."""

    def test_containment(self):
        store = RangeStore()
        store.insert(range_entry("festivals", date(2025, 9, 19), date(2025, 9, 23)))

        assert store.lookup("madrid, spain", date(2025, 9, 21)).key == "festivals"
        assert store.lookup("madrid, spain", date(2025, 9, 19)) is not None
        assert store.lookup("madrid, spain", date(2025, 9, 23)) is not None
        assert store.lookup("madrid, spain", date(2025, 9, 25)) is None

    def test_location_must_match(self):
        store = RangeStore()
        store.insert(range_entry("festivals", date(2025, 9, 19), date(2025, 9, 23)))
        assert store.lookup("barcelona, spain", date(2025, 9, 21)) is None

    def test_most_recently_accessed_wins(self):
        store = RangeStore()
        store.insert(range_entry("older", date(2025, 9, 1), date(2025, 9, 30), accessed=1.0))
        store.insert(range_entry("newer", date(2025, 9, 15), date(2025, 9, 25), accessed=2.0))

        assert store.lookup("madrid, spain", date(2025, 9, 20)).key == "newer"

    def test_inverted_interval_rejected(self):
        store = RangeStore()
        with pytest.raises(CacheError):
            store.insert(range_entry("bad", date(2025, 9, 23), date(2025, 9, 19)))

    def test_eviction_updates_location_index(self):
        store = RangeStore(capacity=1)
        store.insert(range_entry("first", date(2025, 9, 1), date(2025, 9, 5), accessed=1.0))
        store.insert(
            range_entry("second", date(2025, 9, 1), date(2025, 9, 5), location="paris", accessed=2.0)
        )

        assert store.lookup("madrid, spain", date(2025, 9, 3)) is None
        assert store.lookup("paris", date(2025, 9, 3)).key == "second"


# -----------------------------------------------------------------------------
# SimilarityStore
# -----------------------------------------------------------------------------


class TestSimilarityStore:
    """Best-score lookups with threshold and disqualification."""

    def test_requires_vector(self):
        store = SimilarityStore()
        with pytest.raises(CacheError):
            store.insert(strict_entry("a", 1.0))

    def test_invalid_threshold(self):
        with pytest.raises(ValueError):
            SimilarityStore(threshold=1.5)

    def test_hit_above_threshold(self, builder, madrid_context, madrid_next_day):
        store = SimilarityStore(scorer=SimilarityScorer())
        store.insert(similarity_entry("madrid", madrid_context, builder))

        result = store.lookup(builder.build(madrid_next_day))

        assert result.hit
        assert result.entry.key == "madrid"
        assert result.score >= 0.90

    def test_best_score_wins(self, builder, context_factory):
        store = SimilarityStore()
        store.insert(similarity_entry("near", context_factory(date(2025, 9, 21)), builder))
        store.insert(similarity_entry("far", context_factory(date(2025, 9, 24)), builder))

        result = store.lookup(builder.build(context_factory(date(2025, 9, 20))))

        assert result.entry.key == "near"

    def test_tie_goes_to_most_recently_created(self, builder, madrid_context):
        store = SimilarityStore()
        store.insert(similarity_entry("old", madrid_context, builder, created_at=1.0))
        store.insert(similarity_entry("new", madrid_context, builder, created_at=2.0))

        assert store.lookup(builder.build(madrid_context)).entry.key == "new"

    def test_below_threshold_reports_best_score(self, builder, context_factory):
        store = SimilarityStore()
        store.insert(similarity_entry("rainy", context_factory(precipitation=90), builder))

        result = store.lookup(builder.build(context_factory(date(2025, 9, 24), ages=(15,))))

        assert not result.hit
        assert result.score is not None
        assert result.score < 0.90
        assert store.stats().misses == 1

    def test_disqualified_candidates_counted(self, builder, context_factory):
        store = SimilarityStore()
        store.insert(similarity_entry("spring", context_factory(date(2025, 3, 20)), builder))

        result = store.lookup(builder.build(context_factory()))

        assert not result.hit
        assert result.score is None
        assert result.candidates == 1
        assert result.disqualified == 1

    def test_unscorable_entry_dropped(self, builder, madrid_context):
        store = SimilarityStore()
        good = similarity_entry("good", madrid_context, builder)
        bad = similarity_entry("bad", madrid_context, builder)
        bad.vector = replace(bad.vector, temporal=TemporalFeatures(day_of_year="263"))
        store.insert(good)
        store.insert(bad)

        result = store.lookup(builder.build(madrid_context))

        assert result.entry.key == "good"
        assert "bad" not in store
        assert store.stats().dropped == 1
