"""
Refresh scheduler for the Live Sync engine.

Drives the fetch orchestrator on an adaptive tick, commits a new snapshot
collection only when its fingerprint changes, and exposes the committed
state to the presentation layer.

States:
    IDLE      waiting for the next tick, a manual refresh or stop
    FETCHING  one cycle in progress (bounded by the cycle timeout)
    DISABLED  the requested date is in the past; the loop never ticks
"""
from __future__ import annotations

import asyncio
import dataclasses
import signal
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx
import structlog

from cache import CacheStore
from shared.config import Settings, get_settings
from shared.errors import SyncError
from shared.models.domain import FetchScope, GameSnapshot
from shared.models.enums import SchedulerPhase
from shared.utils.http_client import UpstreamHTTPClient
from shared.utils.logging import get_logger, setup_logging
from shared.utils.metrics import LIVE_GAMES, REFRESH_CYCLES, REFRESH_DURATION, atrack_latency, start_metrics_server
from shared.utils.retry import RetryPolicy

from ingest.calendar import default_fetch_date, is_historical
from ingest.coalescer import RequestCoalescer
from ingest.limiter import EnrichmentLimiter
from ingest.orchestrator import FetchOrchestrator
from ingest.upstream import ScheduleAPI
from scheduler.engine.change_detection import ChangeDetector, describe_changes
from scheduler.engine.polling import IntervalConfig, RefreshIntervalEngine

logger = get_logger(__name__)


@dataclass
class RefreshState:
    """Mutated only by RefreshScheduler; callers get copies."""
    phase: SchedulerPhase = SchedulerPhase.IDLE
    last_success_at: Optional[float] = None
    last_fingerprint: Optional[str] = None
    last_activity_at: Optional[float] = None
    consecutive_failures: int = 0
    total_cycles: int = 0
    commits: int = 0
    last_error: Optional[str] = None
    next_interval_s: Optional[float] = None


@dataclass(frozen=True)
class RefreshResult:
    success: bool
    changed: bool
    snapshots: tuple[GameSnapshot, ...]
    error: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RefreshScheduler:
    """
    Owns the committed snapshot collection.

    With no explicit scope the date is picked from the local clock on every
    cycle (yesterday before noon, today after), so an implicit scope never
    disables the loop.
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        scope: Optional[FetchScope] = None,
        intervals: Optional[RefreshIntervalEngine] = None,
        detector: Optional[ChangeDetector] = None,
        cycle_timeout_s: float = 15.0,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utcnow,
        local_now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._orchestrator = orchestrator
        self._scope = scope
        self._intervals = intervals or RefreshIntervalEngine()
        self._detector = detector or ChangeDetector()
        self._cycle_timeout = cycle_timeout_s
        self._clock = clock
        self._now = now
        self._local_now = local_now

        self._state = RefreshState()
        self._committed: tuple[GameSnapshot, ...] = ()
        self._changed = False
        self._last_tick_at: Optional[float] = None
        self._cycle_lock = asyncio.Lock()
        self._wake = asyncio.Event()
        self._stopping = False
        self._task: Optional[asyncio.Task[None]] = None

    # ── Consumer interface ──────────────────────────────────────────────

    @property
    def orchestrator(self) -> FetchOrchestrator:
        return self._orchestrator

    @property
    def snapshots(self) -> tuple[GameSnapshot, ...]:
        return self._committed

    @property
    def state(self) -> RefreshState:
        return dataclasses.replace(self._state)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def consume_changed(self) -> bool:
        """True once per commit: whether the committed set changed since the last call."""
        changed, self._changed = self._changed, False
        return changed

    def record_activity(self) -> None:
        self._state.last_activity_at = self._clock()
        self._wake.set()

    def set_scope(self, scope: Optional[FetchScope]) -> None:
        """Switch to another scope; the next tick is due immediately."""
        self._scope = scope
        self._last_tick_at = None
        # Whatever the new scope returns first is a change
        self._detector.reset()
        self._state.last_fingerprint = None
        if self._state.phase == SchedulerPhase.DISABLED:
            self._state.phase = SchedulerPhase.IDLE
        logger.info("scope_changed", scope=scope.describe() if scope else "auto")
        self._wake.set()

    def current_scope(self) -> FetchScope:
        if self._scope is not None:
            return self._scope
        day, _ = default_fetch_date(self._local_now())
        return FetchScope.for_date(day, explicit=False)

    def is_disabled(self) -> bool:
        scope = self.current_scope()
        return (
            scope.explicit_date
            and scope.day is not None
            and is_historical(scope.day, self._local_now().date())
        )

    async def refresh_now(self) -> RefreshResult:
        """Run one forced cycle, even when the loop is disabled."""
        return await self._cycle(force=True)

    # ── Lifecycle ───────────────────────────────────────────────────────

    def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        if self._state.last_activity_at is None:
            self._state.last_activity_at = self._clock()
        self._task = asyncio.create_task(self._run(), name="refresh-scheduler")
        logger.info("refresh_scheduler_started", scope=self.current_scope().describe())

    async def stop(self) -> None:
        self._stopping = True
        self._wake.set()
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._state.phase = SchedulerPhase.STOPPED
        logger.info(
            "refresh_scheduler_stopped",
            cycles=self._state.total_cycles,
            commits=self._state.commits,
            stats=self._orchestrator.stats(),
        )

    # ── Loop ────────────────────────────────────────────────────────────

    def next_interval(self) -> float:
        last_activity = self._state.last_activity_at
        since_activity = self._clock() - last_activity if last_activity is not None else None
        interval = self._intervals.compute_interval(
            since_activity,
            self._committed,
            self._now(),
            self._state.consecutive_failures,
        )
        self._state.next_interval_s = interval
        return interval

    async def _sleep_until_woken(self, timeout: Optional[float]) -> None:
        self._wake.clear()
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def _run(self) -> None:
        while not self._stopping:
            if self.is_disabled():
                if self._state.phase != SchedulerPhase.DISABLED:
                    logger.info("refresh_scheduler_disabled", scope=self.current_scope().describe())
                self._state.phase = SchedulerPhase.DISABLED
                await self._sleep_until_woken(None)
                continue

            if self._last_tick_at is not None:
                remaining = self._last_tick_at + self.next_interval() - self._clock()
                if remaining > 0:
                    # Woken early by activity or a scope change: recompute
                    await self._sleep_until_woken(remaining)
                    continue

            await self._cycle(force=False)

    async def _cycle(self, force: bool) -> RefreshResult:
        async with self._cycle_lock:
            scope = self.current_scope()
            self._state.phase = SchedulerPhase.FETCHING
            self._state.total_cycles += 1
            self._last_tick_at = self._clock()
            # Cached indexes may predate a start that is now due
            refresh_index = self._intervals.has_starting_games(self._committed, self._now())
            try:
                with structlog.contextvars.bound_contextvars(cycle=self._state.total_cycles, scope=scope.describe()):
                    async with atrack_latency(REFRESH_DURATION):
                        outcome = await asyncio.wait_for(
                            self._orchestrator.fetch_scope(scope, refresh_index=refresh_index),
                            timeout=self._cycle_timeout,
                        )
            except asyncio.TimeoutError:
                return self._fail(scope, f"Refresh timed out after {self._cycle_timeout}s", "timeout")
            except SyncError as exc:
                return self._fail(scope, str(exc), "failed")
            except Exception as exc:
                logger.error("refresh_cycle_error", scope=scope.describe(), error=str(exc), exc_info=True)
                return self._fail(scope, str(exc), "error")
            finally:
                if self._state.phase == SchedulerPhase.FETCHING:
                    self._state.phase = SchedulerPhase.DISABLED if self.is_disabled() else SchedulerPhase.IDLE

            self._state.consecutive_failures = 0
            self._state.last_error = None
            self._state.last_success_at = self._clock()

            candidate = outcome.snapshots
            changed = self._detector.has_changed(candidate)
            if changed or force:
                self._commit(candidate, changed)
            REFRESH_CYCLES.labels(result="changed" if changed else "unchanged").inc()
            logger.info(
                "refresh_cycle_completed",
                scope=scope.describe(),
                changed=changed,
                forced=force,
                games=len(candidate),
                upstream_calls=outcome.upstream_calls,
                failures=len(outcome.failures),
            )
            return RefreshResult(success=True, changed=changed, snapshots=self._committed)

    def _commit(self, candidate: tuple[GameSnapshot, ...], changed: bool) -> None:
        if changed:
            describe_changes(self._committed, candidate)
        self._committed = candidate
        self._state.last_fingerprint = self._detector.commit(candidate)
        self._state.commits += 1
        if changed:
            self._changed = True
        LIVE_GAMES.set(sum(1 for s in candidate if s.is_live))

    def _fail(self, scope: FetchScope, error: str, result: str) -> RefreshResult:
        self._state.consecutive_failures += 1
        self._state.last_error = error
        REFRESH_CYCLES.labels(result=result).inc()
        logger.warning(
            "refresh_cycle_failed",
            scope=scope.describe(),
            error=error,
            consecutive_failures=self._state.consecutive_failures,
        )
        return RefreshResult(success=False, changed=False, snapshots=self._committed, error=error)


# ── Composition root ────────────────────────────────────────────────────

def build_scheduler(
    settings: Settings | None = None,
    scope: Optional[FetchScope] = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RefreshScheduler:
    """Wire every component from settings. The only place Settings is read."""
    settings = settings or get_settings()
    retry = RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay_s=settings.retry_base_delay_s,
        max_delay_s=settings.retry_max_delay_s,
        rate_limit_delay_s=settings.retry_rate_limit_delay_s,
    )
    http = UpstreamHTTPClient(
        settings.api_base_url,
        timeout_s=settings.http_timeout_s,
        connect_timeout_s=settings.http_connect_timeout_s,
        retry_policy=retry,
        headers={"User-Agent": settings.user_agent, "Accept": "application/json"},
        transport=transport,
    )
    orchestrator = FetchOrchestrator(
        api=ScheduleAPI(http),
        store=CacheStore.from_settings(settings),
        limiter=EnrichmentLimiter(
            max_concurrent=settings.enrichment_max_concurrent,
            spacing_s=settings.enrichment_spacing_s,
            jitter_fraction=settings.enrichment_jitter_fraction,
        ),
        coalescer=RequestCoalescer(),
        stale_grace_s=settings.cache_stale_grace_s,
    )
    return RefreshScheduler(
        orchestrator,
        scope=scope,
        intervals=RefreshIntervalEngine(IntervalConfig.from_settings(settings)),
        cycle_timeout_s=settings.scheduler_cycle_timeout_s,
    )


async def main() -> None:
    """Scheduler service entrypoint."""
    settings = get_settings()
    setup_logging("scheduler", settings=settings)
    start_metrics_server(settings.metrics_port, enabled=settings.metrics_enabled)

    scheduler = build_scheduler(settings)
    api = scheduler.orchestrator.api
    await api.start()

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    scheduler.start()
    try:
        while not shutdown.is_set():
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=1.0)
            except asyncio.TimeoutError:
                pass
            if scheduler.consume_changed():
                for snapshot in scheduler.snapshots:
                    logger.info(
                        "game_state",
                        game_id=snapshot.game_id,
                        home=snapshot.home_team,
                        away=snapshot.away_team,
                        result=snapshot.result,
                        status=snapshot.status.value,
                        goals=len(snapshot.goal_events),
                    )
    finally:
        await scheduler.stop()
        await api.close()
        logger.info("scheduler_service_stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
