"""
Cache package for the Garage service.

Read-through caching over Redis, an Upstash REST store or an in-process
store, with deterministic keys and explicit invalidation on writes.
"""

from .facade import CacheFacade
from .keys import CacheKeys, CacheTTL
from .store import (
    DisabledStore,
    KeyValueStore,
    MemoryStore,
    RedisStore,
    StoreStatus,
    UpstashStore,
    create_store,
    is_cache_configured,
)

__all__ = [
    "CacheFacade",
    "CacheKeys",
    "CacheTTL",
    "DisabledStore",
    "KeyValueStore",
    "MemoryStore",
    "RedisStore",
    "StoreStatus",
    "UpstashStore",
    "create_store",
    "is_cache_configured",
]
