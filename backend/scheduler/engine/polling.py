"""
Refresh interval engine.
Computes the next tick from user activity, game liveness and recent failures.
"""
from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from shared.config import Settings
from shared.models.domain import GameSnapshot
from shared.models.enums import GameStatus
from shared.utils.logging import get_logger
from shared.utils.metrics import SCHEDULER_INTERVAL

from ingest.calendar import is_near_start

logger = get_logger(__name__)


@dataclass(frozen=True)
class IntervalConfig:
    active_threshold_s: float = 5.0
    semi_active_threshold_s: float = 30.0
    active_interval_s: float = 15.0
    semi_active_interval_s: float = 30.0
    idle_interval_s: float = 120.0
    live_interval_cap_s: float = 60.0
    starting_interval_cap_s: float = 30.0
    min_interval_s: float = 5.0
    max_interval_s: float = 300.0
    jitter_factor: float = 0.0
    failure_backoff_base_s: float = 5.0
    failure_backoff_max_s: float = 120.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "IntervalConfig":
        return cls(
            active_threshold_s=settings.scheduler_active_threshold_s,
            semi_active_threshold_s=settings.scheduler_semi_active_threshold_s,
            active_interval_s=settings.scheduler_active_interval_s,
            semi_active_interval_s=settings.scheduler_semi_active_interval_s,
            idle_interval_s=settings.scheduler_idle_interval_s,
            live_interval_cap_s=settings.scheduler_live_interval_cap_s,
            starting_interval_cap_s=settings.scheduler_starting_interval_cap_s,
            min_interval_s=settings.scheduler_min_interval_s,
            max_interval_s=settings.scheduler_max_interval_s,
            jitter_factor=settings.scheduler_jitter_factor,
            failure_backoff_base_s=settings.scheduler_failure_backoff_base_s,
            failure_backoff_max_s=settings.scheduler_failure_backoff_max_s,
        )


class RefreshIntervalEngine:
    """
    The interval formula:

        activity = active | semi_active | idle interval, by time since last activity
        cap      = live cap if any game is ongoing, start cap if one is about to start
        interval = min(activity, cap) + failure backoff
        interval = clamp(interval, min_interval, max_interval) + jitter
    """

    def __init__(self, config: IntervalConfig | None = None) -> None:
        self._config = config or IntervalConfig()

    @property
    def config(self) -> IntervalConfig:
        return self._config

    def activity_interval(self, since_activity_s: Optional[float]) -> tuple[float, str]:
        cfg = self._config
        if since_activity_s is not None and since_activity_s < cfg.active_threshold_s:
            return cfg.active_interval_s, "active"
        if since_activity_s is not None and since_activity_s < cfg.semi_active_threshold_s:
            return cfg.semi_active_interval_s, "semi_active"
        return cfg.idle_interval_s, "idle"

    @staticmethod
    def has_starting_games(snapshots: Sequence[GameSnapshot], now: datetime) -> bool:
        """Any game still shown as scheduled whose start window is open."""
        return any(s.status == GameStatus.SCHEDULED and is_near_start(s.start, now) for s in snapshots)

    def liveness_cap(self, snapshots: Sequence[GameSnapshot], now: datetime) -> tuple[Optional[float], str]:
        if any(s.is_live for s in snapshots):
            return self._config.live_interval_cap_s, "live"
        if self.has_starting_games(snapshots, now):
            return self._config.starting_interval_cap_s, "starting"
        return None, ""

    def failure_backoff(self, consecutive_failures: int) -> float:
        if consecutive_failures <= 0:
            return 0.0
        cfg = self._config
        return min(cfg.failure_backoff_max_s, cfg.failure_backoff_base_s * 2 ** (consecutive_failures - 1))

    def compute_interval(
        self,
        since_activity_s: Optional[float],
        snapshots: Sequence[GameSnapshot],
        now: datetime,
        consecutive_failures: int = 0,
    ) -> float:
        cfg = self._config
        interval, reason = self.activity_interval(since_activity_s)

        cap, cap_reason = self.liveness_cap(snapshots, now)
        if cap is not None and cap < interval:
            interval, reason = cap, cap_reason

        backoff = self.failure_backoff(consecutive_failures)
        if backoff:
            interval += backoff
            reason = "backoff"

        interval = max(cfg.min_interval_s, min(cfg.max_interval_s, interval))

        if cfg.jitter_factor > 0:
            spread = interval * cfg.jitter_factor
            interval = max(cfg.min_interval_s, interval + random.uniform(-spread, spread))

        SCHEDULER_INTERVAL.labels(reason=reason).observe(interval)
        logger.debug(
            "interval_computed",
            reason=reason,
            since_activity_s=round(since_activity_s, 2) if since_activity_s is not None else None,
            failures=consecutive_failures,
            backoff=backoff,
            final_interval=round(interval, 2),
        )
        return interval
