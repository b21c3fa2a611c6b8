"""
Cache entries and TTL policy.

The TTL of an entry is resolved once, from the liveness flag observed when
the value was written. Later changes in global state never move it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

DEFAULT_LIVE_TTL_S = 30.0
DEFAULT_STATIC_TTL_S = 3600.0


@dataclass(frozen=True)
class TTLPolicy:
    """Short TTL for in-progress resources, long TTL for everything else."""
    live_ttl_s: float = DEFAULT_LIVE_TTL_S
    static_ttl_s: float = DEFAULT_STATIC_TTL_S

    def __post_init__(self) -> None:
        if self.live_ttl_s <= 0 or self.static_ttl_s <= 0:
            raise ValueError("TTL values must be positive")

    def ttl_for(self, live: bool) -> float:
        return self.live_ttl_s if live else self.static_ttl_s

    @classmethod
    def fixed(cls, ttl_s: float) -> "TTLPolicy":
        return cls(live_ttl_s=ttl_s, static_ttl_s=ttl_s)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    captured_at: float
    live: bool
    ttl_s: float

    def age(self, now: float) -> float:
        return max(0.0, now - self.captured_at)

    def is_fresh(self, now: float) -> bool:
        """Fresh strictly before the TTL elapses; stale at age >= ttl."""
        return self.age(now) < self.ttl_s
