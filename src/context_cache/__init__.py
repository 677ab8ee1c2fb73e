import os

from dotenv import find_dotenv, load_dotenv

if not os.environ.get("CONTEXT_CACHE_ENV_LOADED"):
    load_dotenv(find_dotenv(usecwd=True))
    os.environ["CONTEXT_CACHE_ENV_LOADED"] = "1"

from context_cache.cache import (
    CacheCoordinator,
    CacheHit,
    CacheKeyGenerator,
    CacheMiss,
    CacheStats,
    ContextSummary,
    FeatureVector,
    FeatureVectorBuilder,
    Holiday,
    MatchInfo,
    ResolveEvent,
    SearchContext,
    SimilarityScorer,
    StoreName,
    WeatherSummary,
)
from context_cache.cache.persistence import MemoryPersistence, PersistenceBackend, SQLitePersistence
from context_cache.config import CacheConfig

# Cross-cutting concerns
from context_cache.errors import (
    ConfigurationError,
    ContextCacheError,
    IncompleteContextError,
    MalformedEntryError,
)
from context_cache.logging import configure_logging, get_logger
from context_cache.resolvers import (
    CacheResolver,
    ChainExhausted,
    FunctionResolver,
    Resolved,
    ResolverChain,
    Unavailable,
)

__all__ = [
    # Core
    "CacheCoordinator",
    "CacheConfig",
    "SearchContext",
    "WeatherSummary",
    "Holiday",
    # Results
    "CacheHit",
    "CacheMiss",
    "CacheStats",
    "MatchInfo",
    "ContextSummary",
    "ResolveEvent",
    "StoreName",
    # Building blocks
    "CacheKeyGenerator",
    "FeatureVector",
    "FeatureVectorBuilder",
    "SimilarityScorer",
    # Persistence
    "PersistenceBackend",
    "MemoryPersistence",
    "SQLitePersistence",
    # Resolvers
    "CacheResolver",
    "FunctionResolver",
    "ResolverChain",
    "Resolved",
    "Unavailable",
    "ChainExhausted",
    # Errors
    "ContextCacheError",
    "ConfigurationError",
    "IncompleteContextError",
    "MalformedEntryError",
    # Logging
    "configure_logging",
    "get_logger",
]
