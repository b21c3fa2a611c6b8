"""
In-memory tiered cache for upstream payloads.
Bounded LRU tiers with TTLs fixed at write time from observed liveness.
"""
from cache.entry import CacheEntry, TTLPolicy
from cache.keys import CacheKey
from cache.store import LRUTTLCache
from cache.tiers import CacheStore

__all__ = [
    "CacheEntry",
    "CacheKey",
    "CacheStore",
    "LRUTTLCache",
    "TTLPolicy",
]
