"""Cache store implementations.

Three stores share the :class:`~context_cache.cache.base.CacheStore`
capacity and LRU discipline and differ only in how they match:

- StrictStore: exact key only
- RangeStore: location plus date-interval containment
- SimilarityStore: best feature-vector score above a threshold

Example:
    >>> from context_cache.cache.stores import StrictStore
    >>>
    >>> store = StrictStore(capacity=100)
"""

from context_cache.cache.stores.range import RangeStore
from context_cache.cache.stores.similarity import SimilarityLookup, SimilarityStore
from context_cache.cache.stores.strict import StrictStore

__all__ = [
    "RangeStore",
    "SimilarityLookup",
    "SimilarityStore",
    "StrictStore",
]
