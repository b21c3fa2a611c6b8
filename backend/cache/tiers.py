"""
The tiered Cache Store.

One instance is built at application start and handed to the orchestrator;
its lifetime is the application's. Nothing here is module-global.
"""
from __future__ import annotations

import time
from datetime import date
from typing import Any, Callable, Union

from shared.config import Settings
from shared.models.domain import GoalEvent
from shared.models.enums import CacheKind
from shared.models.upstream import DetailedGameResponse, ScheduleResponse
from shared.utils.logging import get_logger

from cache.entry import TTLPolicy
from cache.keys import CacheKey
from cache.store import LRUTTLCache

logger = get_logger(__name__)

DEFAULT_CAPACITIES: dict[CacheKind, int] = {
    CacheKind.INDEX: 50,
    CacheKind.GAME: 200,
    CacheKind.GOAL_EVENTS: 300,
    CacheKind.PLAYERS: 100,
}


class CacheStore:
    """Holds one LRU/TTL tier per resource kind."""

    def __init__(
        self,
        capacities: dict[CacheKind, int] | None = None,
        ttl: TTLPolicy | None = None,
        players_ttl_s: float = 86400.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        caps = {**DEFAULT_CAPACITIES, **(capacities or {})}
        ttl = ttl or TTLPolicy()
        self.index: LRUTTLCache[CacheKey, ScheduleResponse] = LRUTTLCache(
            CacheKind.INDEX.value, caps[CacheKind.INDEX], ttl, clock
        )
        self.game: LRUTTLCache[CacheKey, DetailedGameResponse] = LRUTTLCache(
            CacheKind.GAME.value, caps[CacheKind.GAME], ttl, clock
        )
        self.goal_events: LRUTTLCache[CacheKey, tuple[GoalEvent, ...]] = LRUTTLCache(
            CacheKind.GOAL_EVENTS.value, caps[CacheKind.GOAL_EVENTS], ttl, clock
        )
        # Rosters do not change during a game
        self.players: LRUTTLCache[CacheKey, dict[int, str]] = LRUTTLCache(
            CacheKind.PLAYERS.value, caps[CacheKind.PLAYERS], TTLPolicy.fixed(players_ttl_s), clock
        )

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.monotonic) -> "CacheStore":
        return cls(
            capacities={
                CacheKind.INDEX: settings.cache_index_capacity,
                CacheKind.GAME: settings.cache_game_capacity,
                CacheKind.GOAL_EVENTS: settings.cache_goal_events_capacity,
                CacheKind.PLAYERS: settings.cache_players_capacity,
            },
            ttl=TTLPolicy(live_ttl_s=settings.cache_live_ttl_s, static_ttl_s=settings.cache_static_ttl_s),
            players_ttl_s=settings.cache_players_ttl_s,
            clock=clock,
        )

    def tiers(self) -> list[LRUTTLCache[Any, Any]]:
        return [self.index, self.game, self.goal_events, self.players]

    def tier_for(self, kind: CacheKind) -> LRUTTLCache[Any, Any]:
        return {
            CacheKind.INDEX: self.index,
            CacheKind.GAME: self.game,
            CacheKind.GOAL_EVENTS: self.goal_events,
            CacheKind.PLAYERS: self.players,
        }[kind]

    def invalidate_date(self, day: Union[date, str]) -> int:
        """
        Expire every index entry for `day`, whatever the tournament.

        The entries are kept as last-known values, so a failing refetch can
        still fall back to them.
        """
        expired = sum(self.index.expire(key) for key in self.index.keys() if key.matches_date(day))
        logger.debug("cache_date_invalidated", date=str(day), expired=expired)
        return expired

    def has_live_entries(self) -> bool:
        return self.index.has_live_entries() or self.game.has_live_entries()

    def purge_expired(self, grace_s: float = 0.0) -> int:
        return sum(tier.purge_expired(grace_s) for tier in self.tiers())

    def clear(self) -> None:
        for tier in self.tiers():
            tier.clear()
        logger.info("cache_cleared")

    def stats(self) -> dict[str, dict[str, Any]]:
        return {tier.name: tier.stats() for tier in self.tiers()}
