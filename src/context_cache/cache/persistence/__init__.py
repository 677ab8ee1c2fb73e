"""Persistence collaborators for the cache engine.

- PersistenceBackend: abstract durable key-value store
- MemoryPersistence: dict-backed, for tests and development
- SQLitePersistence: local SQLite file
- BackgroundWriter: runs persistence calls off the request path

Example:
    >>> from context_cache.cache.persistence import SQLitePersistence
    >>>
    >>> backend = SQLitePersistence(path="./context-cache.db")
"""

from context_cache.cache.persistence.base import (
    PersistedRecord,
    PersistenceBackend,
    UndecodableValue,
)
from context_cache.cache.persistence.memory import MemoryPersistence
from context_cache.cache.persistence.sqlite import SQLitePersistence
from context_cache.cache.persistence.writer import BackgroundWriter

__all__ = [
    "BackgroundWriter",
    "MemoryPersistence",
    "PersistedRecord",
    "PersistenceBackend",
    "SQLitePersistence",
    "UndecodableValue",
]
