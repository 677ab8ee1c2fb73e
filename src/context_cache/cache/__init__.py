"""Multi-tier contextual cache.

Caches the results of expensive context-dependent searches and serves them
again for identical or sufficiently similar requests.

Key Components:
- CacheCoordinator: Entry point routing lookups and writes to the stores
- SearchContext: The request description being cached
- FeatureVectorBuilder / SimilarityScorer: Context abstraction and scoring
- StrictStore / SimilarityStore / RangeStore: The three store kinds
- CacheKeyGenerator: Deterministic key derivation

Example - Basic usage:
    >>> from context_cache.cache import CacheCoordinator, SearchContext
    >>>
    >>> coordinator = CacheCoordinator()
    >>> context = SearchContext(location="Madrid, Spain", date=date(2025, 9, 20), ages=(6, 8))
    >>>
    >>> result = coordinator.resolve(context)
    >>> if not result.hit:
    ...     coordinator.record(context, find_activities(context))

Example - SQLite persistence:
    >>> from context_cache.cache.persistence import SQLitePersistence
    >>>
    >>> coordinator = CacheCoordinator(persistence=SQLitePersistence("./context-cache.db"))
    >>> coordinator.load()
"""

from __future__ import annotations

from context_cache.cache.base import (
    CacheEntry,
    CacheError,
    CacheHit,
    CacheMiss,
    CacheStats,
    CacheStore,
    MatchInfo,
    StoreName,
)
from context_cache.cache.context import (
    ContextSummary,
    Holiday,
    SearchContext,
    WeatherSummary,
)
from context_cache.cache.coordinator import CacheCoordinator, ResolveEvent
from context_cache.cache.features import FeatureVector, FeatureVectorBuilder
from context_cache.cache.key import CacheKeyGenerator
from context_cache.cache.scorer import SimilarityScore, SimilarityScorer
from context_cache.cache.stores import RangeStore, SimilarityStore, StrictStore

__all__ = [
    # Main class
    "CacheCoordinator",
    "ResolveEvent",
    # Context
    "SearchContext",
    "WeatherSummary",
    "Holiday",
    "ContextSummary",
    # Features and scoring
    "FeatureVector",
    "FeatureVectorBuilder",
    "SimilarityScore",
    "SimilarityScorer",
    # Stores
    "CacheStore",
    "StrictStore",
    "SimilarityStore",
    "RangeStore",
    # Results
    "CacheEntry",
    "CacheHit",
    "CacheMiss",
    "CacheStats",
    "MatchInfo",
    "StoreName",
    "CacheError",
    # Key generation
    "CacheKeyGenerator",
]
