"""
Unit tests for the LRU/TTL cache tiers and the tiered store.

Run: pytest backend/tests/test_cache.py -v
"""
from __future__ import annotations

from datetime import date

import pytest

from cache import CacheKey, CacheStore, LRUTTLCache, TTLPolicy
from shared.models.enums import CacheKind

from conftest import FakeClock


@pytest.fixture
def tier(clock: FakeClock) -> LRUTTLCache[str, int]:
    return LRUTTLCache("test", capacity=3, ttl=TTLPolicy(live_ttl_s=30, static_ttl_s=3600), clock=clock)


# ── LRU ordering ────────────────────────────────────────────────────────

def test_put_beyond_capacity_evicts_least_recently_used(tier: LRUTTLCache[str, int]) -> None:
    for key in ("a", "b", "c"):
        tier.put(key, 1, live=False)
    tier.put("d", 4, live=False)
    assert tier.keys() == ["b", "c", "d"]
    assert tier.size() == 3
    assert tier.get("a") is None


def test_get_hit_marks_most_recently_used(tier: LRUTTLCache[str, int]) -> None:
    for key in ("a", "b", "c"):
        tier.put(key, 1, live=False)
    assert tier.get("a") == 1
    tier.put("d", 4, live=False)
    assert tier.peek("b") is None
    assert tier.keys() == ["c", "a", "d"]


def test_peek_does_not_touch_recency(tier: LRUTTLCache[str, int]) -> None:
    for key in ("a", "b", "c"):
        tier.put(key, 1, live=False)
    assert tier.peek("a") == 1
    tier.put("d", 4, live=False)
    assert tier.peek("a") is None
    assert tier.keys() == ["b", "c", "d"]


def test_put_existing_key_replaces_value_without_eviction(tier: LRUTTLCache[str, int]) -> None:
    for key in ("a", "b", "c"):
        tier.put(key, 1, live=False)
    tier.put("a", 2, live=False)
    assert tier.size() == 3
    assert tier.keys() == ["b", "c", "a"]
    assert tier.get("a") == 2
    assert tier.stats()["evictions"] == 0


def test_capacity_is_never_exceeded(clock: FakeClock) -> None:
    tier: LRUTTLCache[int, int] = LRUTTLCache("bounded", capacity=5, clock=clock)
    for i in range(50):
        tier.put(i, i, live=i % 2 == 0)
        assert tier.size() <= tier.capacity()
    assert tier.keys() == [45, 46, 47, 48, 49]
    assert tier.stats()["evictions"] == 45


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        LRUTTLCache("broken", capacity=0)


# ── TTL ─────────────────────────────────────────────────────────────────

def test_live_entry_is_fresh_before_ttl_and_stale_at_ttl(tier: LRUTTLCache[str, int], clock: FakeClock) -> None:
    tier.put("live", 1, live=True)
    clock.advance(29.999)
    assert tier.get("live") == 1
    clock.advance(0.001)
    assert tier.get("live") is None
    assert tier.stats()["expired_reads"] == 1


def test_static_entry_uses_long_ttl(tier: LRUTTLCache[str, int], clock: FakeClock) -> None:
    tier.put("final", 1, live=False)
    clock.advance(3599)
    assert tier.get("final") == 1
    clock.advance(1)
    assert tier.get("final") is None


def test_ttl_class_is_fixed_at_write_time(tier: LRUTTLCache[str, int], clock: FakeClock) -> None:
    entry = tier.put("k", 1, live=True)
    assert entry.ttl_s == 30
    clock.advance(10)
    # A later static write elsewhere does not move the live entry's expiry
    tier.put("other", 2, live=False)
    clock.advance(20)
    assert tier.get("k") is None
    assert tier.get("other") == 2


def test_last_known_survives_expiry_until_evicted(tier: LRUTTLCache[str, int], clock: FakeClock) -> None:
    tier.put("k", 42, live=True)
    clock.advance(120)
    assert tier.get("k") is None
    entry = tier.last_known("k")
    assert entry is not None
    assert entry.value == 42
    assert entry.live is True
    assert not entry.is_fresh(clock())


def test_purge_expired_removes_only_expired(tier: LRUTTLCache[str, int], clock: FakeClock) -> None:
    tier.put("live", 1, live=True)
    tier.put("static", 2, live=False)
    clock.advance(31)
    assert tier.purge_expired() == 1
    assert tier.keys() == ["static"]


def test_has_live_entries_ignores_expired(tier: LRUTTLCache[str, int], clock: FakeClock) -> None:
    tier.put("live", 1, live=True)
    assert tier.has_live_entries()
    clock.advance(30)
    assert not tier.has_live_entries()


def test_stats_counts_hits_and_misses(tier: LRUTTLCache[str, int]) -> None:
    tier.put("a", 1, live=False)
    tier.get("a")
    tier.get("a")
    tier.get("missing")
    stats = tier.stats()
    assert stats["hits"] == 2
    assert stats["misses"] == 1
    assert stats["size"] == 1
    assert stats["capacity"] == 3


def test_ttl_policy_rejects_non_positive_values() -> None:
    with pytest.raises(ValueError):
        TTLPolicy(live_ttl_s=0)


# ── Keys ────────────────────────────────────────────────────────────────

def test_cache_keys_are_stable_across_requests() -> None:
    assert CacheKey.index("runkosarja", date(2025, 10, 18)) == CacheKey.index("runkosarja", "2025-10-18")
    assert hash(CacheKey.game(2025, 7)) == hash(CacheKey.game(2025, 7))
    assert CacheKey.game(2025, 7) != CacheKey.goal_events(2025, 7)
    assert str(CacheKey.index("playoffs", "2025-04-01")) == "index:playoffs-2025-04-01"
    assert str(CacheKey.game(2025, 7)) == "game:2025/7"
    assert str(CacheKey.players(7)) == "players:7"


# ── CacheStore ──────────────────────────────────────────────────────────

def test_store_builds_default_tiers(clock: FakeClock) -> None:
    store = CacheStore(clock=clock)
    assert store.index.capacity() == 50
    assert store.game.capacity() == 200
    assert store.goal_events.capacity() == 300
    assert store.players.capacity() == 100
    assert store.tier_for(CacheKind.GAME) is store.game


def test_store_players_tier_uses_fixed_ttl(clock: FakeClock) -> None:
    store = CacheStore(players_ttl_s=86400, clock=clock)
    store.players.put(CacheKey.players(7), {1: "Koivu"}, live=True)
    clock.advance(3600)
    assert store.players.get(CacheKey.players(7)) == {1: "Koivu"}


def test_store_invalidate_date_expires_all_tournaments_for_that_day(clock: FakeClock) -> None:
    store = CacheStore(clock=clock)
    store.index.put(CacheKey.index("runkosarja", "2025-04-01"), object(), live=False)  # type: ignore[arg-type]
    store.index.put(CacheKey.index("playoffs", "2025-04-01"), object(), live=False)  # type: ignore[arg-type]
    store.index.put(CacheKey.index("playoffs", "2025-04-02"), object(), live=False)  # type: ignore[arg-type]
    assert store.invalidate_date("2025-04-01") == 2
    assert store.index.get(CacheKey.index("runkosarja", "2025-04-01")) is None
    assert store.index.get(CacheKey.index("playoffs", "2025-04-02")) is not None
    # Still there as fallbacks
    assert store.index.last_known(CacheKey.index("playoffs", "2025-04-01")) is not None
    assert store.index.size() == 3


def test_store_from_settings_applies_configured_values(clock: FakeClock) -> None:
    from shared.config import Settings

    settings = Settings(cache_index_capacity=5, cache_live_ttl_s=10)
    store = CacheStore.from_settings(settings, clock=clock)
    assert store.index.capacity() == 5
    assert store.game.ttl_policy.live_ttl_s == 10


def test_store_stats_and_clear(clock: FakeClock) -> None:
    store = CacheStore(clock=clock)
    store.game.put(CacheKey.game(2025, 1), object(), live=True)  # type: ignore[arg-type]
    assert store.has_live_entries()
    assert store.stats()["game"]["size"] == 1
    store.clear()
    assert store.stats()["game"]["size"] == 0
    assert not store.has_live_entries()


def test_store_purge_keeps_recently_expired_entries_within_grace(clock: FakeClock) -> None:
    store = CacheStore(clock=clock)
    store.game.put(CacheKey.game(2025, 1), object(), live=True)  # type: ignore[arg-type]
    store.goal_events.put(CacheKey.goal_events(2025, 1), (), live=False)
    clock.advance(30)
    assert store.purge_expired(grace_s=60) == 0
    clock.advance(60)
    assert store.purge_expired(grace_s=60) == 1
    assert store.game.size() == 0
    assert store.goal_events.size() == 1


def test_invalidate_reports_whether_key_existed(tier: LRUTTLCache[str, int]) -> None:
    tier.put("a", 1, live=False)
    assert tier.invalidate("a") is True
    assert tier.invalidate("a") is False
    assert tier.last_known("a") is None


def test_expire_forces_a_miss_but_keeps_last_known(tier: LRUTTLCache[str, int]) -> None:
    tier.put("a", 1, live=False)
    assert tier.expire("a") is True
    assert tier.get("a") is None
    entry = tier.last_known("a")
    assert entry is not None and entry.value == 1
    assert tier.expire("missing") is False


def test_max_ttl_shortens_but_never_extends_the_ttl_class(tier: LRUTTLCache[str, int], clock: FakeClock) -> None:
    assert tier.put("soon", 1, live=False, max_ttl_s=300).ttl_s == 300
    assert tier.put("live", 2, live=True, max_ttl_s=300).ttl_s == 30
    clock.advance(300)
    assert tier.get("soon") is None

