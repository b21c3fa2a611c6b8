"""
Bounded LRU cache tier with per-entry, liveness-derived TTL.

Every operation is synchronous and guarded by a plain lock, so no caller can
hold it across an await. Entries are replaced whole; readers never see a
partially written value. The tier never raises on lookups: a missing or
expired key is simply None.
"""
from __future__ import annotations

import dataclasses
import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar

from shared.utils.logging import get_logger
from shared.utils.metrics import CACHE_EVICTIONS, CACHE_LOOKUPS, CACHE_SIZE

from cache.entry import CacheEntry, TTLPolicy

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRUTTLCache(Generic[K, V]):
    """
    One cache tier.

    Recency is updated by `get` hits and by `put`. `peek` and `last_known`
    read without touching recency. On insert beyond capacity exactly one
    entry, the least recently used, is evicted.
    """

    def __init__(
        self,
        name: str,
        capacity: int,
        ttl: TTLPolicy | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.name = name
        self._capacity = capacity
        self._ttl = ttl or TTLPolicy()
        self._clock = clock
        self._entries: OrderedDict[K, CacheEntry[V]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._expired_reads = 0
        self._evictions = 0

    @property
    def ttl_policy(self) -> TTLPolicy:
        return self._ttl

    def capacity(self) -> int:
        return self._capacity

    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: K) -> Optional[V]:
        """Fresh value for `key`, marking it most recently used; None on miss or expiry."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                result = "miss"
            elif not entry.is_fresh(now):
                self._misses += 1
                self._expired_reads += 1
                result = "expired"
                entry = None
            else:
                self._hits += 1
                self._entries.move_to_end(key)
                result = "hit"
        CACHE_LOOKUPS.labels(tier=self.name, result=result).inc()
        return entry.value if entry is not None else None

    def peek(self, key: K) -> Optional[V]:
        """Fresh value for `key` without affecting recency."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(now):
            return None
        return entry.value

    def last_known(self, key: K) -> Optional[CacheEntry[V]]:
        """The stored entry whether fresh or not, without affecting recency."""
        with self._lock:
            return self._entries.get(key)

    def put(self, key: K, value: V, live: bool, max_ttl_s: Optional[float] = None) -> CacheEntry[V]:
        """
        Store `value`; its TTL is fixed here from `live`.

        `max_ttl_s` shortens the TTL for values known to go out of date at a
        given moment, such as an index whose next game is about to start.
        """
        ttl_s = self._ttl.ttl_for(live)
        if max_ttl_s is not None:
            ttl_s = min(ttl_s, max_ttl_s)
        entry = CacheEntry(value=value, captured_at=self._clock(), live=live, ttl_s=ttl_s)
        evicted: Optional[K] = None
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = entry
            if len(self._entries) > self._capacity:
                evicted, _ = self._entries.popitem(last=False)
                self._evictions += 1
            size = len(self._entries)
        if evicted is not None:
            CACHE_EVICTIONS.labels(tier=self.name).inc()
            logger.debug("cache_evicted", tier=self.name, key=str(evicted))
        CACHE_SIZE.labels(tier=self.name).set(size)
        return entry

    def invalidate(self, key: K) -> bool:
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            size = len(self._entries)
        CACHE_SIZE.labels(tier=self.name).set(size)
        return removed

    def expire(self, key: K) -> bool:
        """Force the next `get` for `key` to miss; the entry stays available to `last_known`."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            self._entries[key] = dataclasses.replace(entry, ttl_s=0.0)
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        CACHE_SIZE.labels(tier=self.name).set(0)

    def purge_expired(self, grace_s: float = 0.0) -> int:
        """Drop entries expired for at least `grace_s`. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.age(now) >= e.ttl_s + grace_s]
            for k in expired:
                del self._entries[k]
            size = len(self._entries)
        CACHE_SIZE.labels(tier=self.name).set(size)
        return len(expired)

    def keys(self) -> list[K]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries.keys())

    def has_live_entries(self) -> bool:
        now = self._clock()
        with self._lock:
            return any(e.live and e.is_fresh(now) for e in self._entries.values())

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "name": self.name,
                "size": len(self._entries),
                "capacity": self._capacity,
                "hits": self._hits,
                "misses": self._misses,
                "expired_reads": self._expired_reads,
                "evictions": self._evictions,
                "live_ttl_s": self._ttl.live_ttl_s,
                "static_ttl_s": self._ttl.static_ttl_s,
            }
