"""
Fetch orchestrator.

Resolves a FetchScope into merged GameSnapshots:
  index (per tournament) -> enrichment (per game, through the limiter)
  -> merge -> write-back with observed liveness.

Every upstream read goes through `get_or_fetch`, which serves fresh cache
hits, coalesces concurrent misses per CacheKey and falls back to the
last-known value when the upstream fails.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from cache import CacheKey, CacheStore, LRUTTLCache
from shared.errors import ScopeUnavailable, SyncError
from shared.models.domain import FetchFailure, FetchOutcome, FetchScope, GameSnapshot, GoalEvent
from shared.models.upstream import DetailedGameResponse, ScheduleGame, ScheduleResponse
from shared.utils.logging import get_logger
from shared.utils.metrics import FALLBACKS

from ingest.calendar import active_tournaments, is_near_start, parse_date, seconds_until_start_window
from ingest.coalescer import RequestCoalescer
from ingest.limiter import EnrichmentLimiter
from ingest.normalization import (
    RosterNameResolver,
    ScorerNameResolver,
    build_goal_events,
    merge_snapshot,
    needs_enrichment,
    snapshot_from_detail,
    snapshot_from_index,
)
from ingest.upstream import ScheduleAPI

logger = get_logger(__name__)

T = TypeVar("T")


class Source(str, Enum):
    CACHE = "cache"
    UPSTREAM = "upstream"
    STALE = "stale"


@dataclass(frozen=True)
class Resolved(Generic[T]):
    """A value plus where it came from."""
    value: T
    source: Source = Source.UPSTREAM

    @property
    def stale(self) -> bool:
        return self.source == Source.STALE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _failure(resource: str, exc: BaseException) -> FetchFailure:
    return FetchFailure(resource=resource, error_type=type(exc).__name__, message=str(exc))


class FetchOrchestrator:
    """
    Owns no state of its own beyond its collaborators: the cache store,
    limiter and coalescer are constructed by the caller and injected.
    """

    def __init__(
        self,
        api: ScheduleAPI,
        store: CacheStore,
        limiter: EnrichmentLimiter,
        coalescer: Optional[RequestCoalescer[CacheKey]] = None,
        name_resolver: Optional[ScorerNameResolver] = None,
        now: Callable[[], datetime] = _utcnow,
        follow_next_game_date: bool = True,
        stale_grace_s: float = 3600.0,
    ) -> None:
        self._api = api
        self._store = store
        self._limiter = limiter
        self._coalescer: RequestCoalescer[CacheKey] = coalescer or RequestCoalescer()
        self._resolver: ScorerNameResolver = name_resolver or RosterNameResolver()
        self._now = now
        self._follow_next = follow_next_game_date
        self._stale_grace_s = stale_grace_s

    @property
    def api(self) -> ScheduleAPI:
        return self._api

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def limiter(self) -> EnrichmentLimiter:
        return self._limiter

    # ── Cache-or-fetch primitive ────────────────────────────────────────

    async def get_or_fetch(
        self,
        tier: LRUTTLCache[CacheKey, T],
        key: CacheKey,
        fetcher: Callable[[], Awaitable[T]],
        liveness: Callable[[T], bool],
        ttl_cap: Optional[Callable[[T], Optional[float]]] = None,
    ) -> Resolved[T]:
        """
        Fresh cached value, else one shared upstream fetch for `key`.

        The fetched value is written with the liveness it shows; `ttl_cap`
        may shorten its TTL further.

        On upstream failure the last-known entry is served as stale; with
        nothing cached the error propagates.
        """
        cached = tier.get(key)
        if cached is not None:
            return Resolved(cached, Source.CACHE)

        async def fetch_and_store() -> T:
            value = await fetcher()
            live = liveness(value)
            entry = tier.put(key, value, live=live, max_ttl_s=ttl_cap(value) if ttl_cap else None)
            logger.debug("cache_written", key=str(key), live=live, ttl_s=entry.ttl_s)
            return value

        try:
            value = await self._coalescer.run(key, fetch_and_store)
        except SyncError as exc:
            entry = tier.last_known(key)
            if entry is None:
                raise
            FALLBACKS.labels(kind="stale").inc()
            logger.warning("serving_stale", key=str(key), error=str(exc), error_type=type(exc).__name__)
            return Resolved(entry.value, Source.STALE)
        return Resolved(value, Source.UPSTREAM)

    # ── Resource resolution ─────────────────────────────────────────────

    async def resolve_index(self, tournament: str, day: date) -> Resolved[ScheduleResponse]:
        key = CacheKey.index(tournament, day)
        return await self.get_or_fetch(
            self._store.index,
            key,
            lambda: self._api.fetch_index(tournament, day),
            self._index_is_live,
            self._index_ttl_cap,
        )

    async def resolve_detail(self, season: int, game_id: int) -> Resolved[DetailedGameResponse]:
        key = CacheKey.game(season, game_id)

        async def fetch() -> DetailedGameResponse:
            async with self._limiter.slot(label=str(key)):
                return await self._api.fetch_detail(season, game_id)

        return await self.get_or_fetch(self._store.game, key, fetch, lambda d: d.game.is_live)

    def _index_is_live(self, response: ScheduleResponse) -> bool:
        now = self._now()
        return any(g.is_live or is_near_start(g.start, now) for g in response.games)

    def _index_ttl_cap(self, response: ScheduleResponse) -> Optional[float]:
        """Seconds until the earliest upcoming start window opens; the index must be re-read then."""
        now = self._now()
        waits = (seconds_until_start_window(g.start, now) for g in response.games if not g.started and not g.ended)
        return min((w for w in waits if w is not None), default=None)

    def _roster_for(self, detail: DetailedGameResponse) -> dict[int, str]:
        key = CacheKey.players(detail.game.id)
        roster = self._store.players.get(key)
        if roster is not None:
            return roster
        roster = self._resolver.build_roster(detail.home_team_players + detail.away_team_players)
        # An empty roster usually means a throttled payload; try again next time
        if roster:
            self._store.players.put(key, roster, live=False)
        return roster

    def _goal_events_for(self, resolved: Resolved[DetailedGameResponse]) -> tuple[GoalEvent, ...]:
        detail = resolved.value
        key = CacheKey.goal_events(detail.game.season, detail.game.id)
        if resolved.source != Source.UPSTREAM:
            cached = self._store.goal_events.get(key)
            if cached is not None:
                return cached
        events = build_goal_events(detail.game, self._roster_for(detail), self._resolver)
        self._store.goal_events.put(key, events, live=detail.game.is_live)
        return events

    # ── Scopes ──────────────────────────────────────────────────────────

    async def fetch_scope(self, scope: FetchScope, refresh_index: bool = False) -> FetchOutcome:
        """
        Resolve `scope` into snapshots. Raises ScopeUnavailable when nothing
        at all can be produced.

        `refresh_index` skips cached indexes for the scope date, for when
        games are known to be about to start.
        """
        if refresh_index and scope.is_date_scope:
            self._store.invalidate_date(scope.day)
        calls_before = self._api.http.request_count
        failures: list[FetchFailure] = []
        effective_date: Optional[date] = None
        if scope.is_date_scope:
            snapshots, effective_date = await self._fetch_date(scope, scope.day, failures)
        else:
            snapshots = await self._fetch_games(scope, failures)
        outcome = FetchOutcome(
            scope=scope,
            snapshots=tuple(snapshots),
            effective_date=effective_date,
            failures=tuple(failures),
            upstream_calls=self._api.http.request_count - calls_before,
        )
        purged = self._store.purge_expired(self._stale_grace_s)
        logger.info(
            "scope_fetched",
            scope=scope.describe(),
            effective_date=effective_date.isoformat() if effective_date else None,
            games=len(outcome.snapshots),
            stale=outcome.stale_count,
            degraded=outcome.degraded_count,
            failures=len(outcome.failures),
            upstream_calls=outcome.upstream_calls,
            purged=purged,
        )
        return outcome

    async def _fetch_date(
        self, scope: FetchScope, day: date, failures: list[FetchFailure]
    ) -> tuple[list[GameSnapshot], date]:
        games, next_hint = await self._collect_index_games(scope, day, failures)
        if not games and self._follow_next:
            next_day = parse_date(next_hint)
            if next_day is not None and next_day != day:
                logger.info("following_next_game_date", requested=day.isoformat(), next_date=next_day.isoformat())
                games, _ = await self._collect_index_games(scope, next_day, failures)
                day = next_day

        snapshots = await asyncio.gather(
            *(self._snapshot_for(game, index_stale, failures) for game, index_stale in games)
        )
        return list(snapshots), day

    async def _collect_index_games(
        self, scope: FetchScope, day: date, failures: list[FetchFailure]
    ) -> tuple[list[tuple[ScheduleGame, bool]], Optional[str]]:
        tournaments = active_tournaments(day)
        results = await asyncio.gather(
            *(self.resolve_index(t, day) for t in tournaments),
            return_exceptions=True,
        )
        games: list[tuple[ScheduleGame, bool]] = []
        next_hint: Optional[str] = None
        causes: list[Exception] = []
        for tournament, result in zip(tournaments, results):
            if isinstance(result, SyncError):
                causes.append(result)
                failures.append(_failure(str(CacheKey.index(tournament, day)), result))
                logger.warning(
                    "index_unavailable",
                    tournament=tournament,
                    date=day.isoformat(),
                    error=str(result),
                )
                continue
            if isinstance(result, BaseException):
                raise result
            games.extend((g, result.stale) for g in result.value.games)
            next_hint = next_hint or result.value.next_game_date
        if len(causes) == len(tournaments):
            raise ScopeUnavailable(scope.describe(), causes)
        return games, next_hint

    async def _snapshot_for(
        self, game: ScheduleGame, index_stale: bool, failures: list[FetchFailure]
    ) -> GameSnapshot:
        if not needs_enrichment(game):
            return snapshot_from_index(game, self._resolver, stale=index_stale)
        try:
            resolved = await self.resolve_detail(game.season, game.id)
        except SyncError as exc:
            failures.append(_failure(str(CacheKey.game(game.season, game.id)), exc))
            FALLBACKS.labels(kind="degraded").inc()
            logger.warning("enrichment_degraded", game_id=game.id, season=game.season, error=str(exc))
            return snapshot_from_index(game, self._resolver, degraded=True, stale=index_stale)
        events = self._goal_events_for(resolved)
        return merge_snapshot(
            game, resolved.value, events, self._resolver, stale=resolved.stale or index_stale
        )

    async def _fetch_games(self, scope: FetchScope, failures: list[FetchFailure]) -> list[GameSnapshot]:
        async def one(season: int, game_id: int) -> Optional[GameSnapshot]:
            try:
                resolved = await self.resolve_detail(season, game_id)
            except SyncError as exc:
                failures.append(_failure(str(CacheKey.game(season, game_id)), exc))
                logger.warning("game_unavailable", game_id=game_id, season=season, error=str(exc))
                return None
            return snapshot_from_detail(resolved.value, self._goal_events_for(resolved), stale=resolved.stale)

        results = await asyncio.gather(*(one(s, g) for s, g in scope.games))
        snapshots = [s for s in results if s is not None]
        if scope.games and not snapshots:
            raise ScopeUnavailable(scope.describe(), [Exception(f.message) for f in failures])
        return snapshots

    def stats(self) -> dict[str, Any]:
        return {
            "cache": self._store.stats(),
            "cache_has_live_entries": self._store.has_live_entries(),
            "coalescer_pending": self._coalescer.pending,
            "limiter_peak_in_flight": self._limiter.peak_in_flight,
        }
