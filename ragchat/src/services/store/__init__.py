"""Storage services package.

This package provides storage-related services including:
- ConversationStore: keyed, expiring conversation history with atomic appends
- Cache backends: in-memory and JSON-file key-value stores with expiration
- KeyedLock: per-key locking shared by the store and the chat service

The services handle data persistence and retrieval with thread-safe
concurrent access.
"""

from .cache_backend import BaseCacheBackend, InMemoryCacheBackend, JsonFileCacheBackend
from .conversation_store import ConversationStore, ExpirationMode
from .keyed_lock import KeyedLock

__all__ = [
    "BaseCacheBackend",
    "InMemoryCacheBackend",
    "JsonFileCacheBackend",
    "ConversationStore",
    "ExpirationMode",
    "KeyedLock",
]
