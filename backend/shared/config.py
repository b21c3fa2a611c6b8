"""
Central configuration for the Live Sync engine.
Uses pydantic-settings for env-based config with validation.

Only the composition root reads these settings; the cache, limiter,
orchestrator and scheduler receive plain values at construction.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Root settings for the sync engine."""

    model_config = SettingsConfigDict(
        env_prefix="LS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    debug: bool = False
    log_level: str = "INFO"

    # ── Upstream ─────────────────────────────────────────────
    api_base_url: str = Field(
        default="https://liiga.fi/api/v2",
        description="Base address of the schedule/game API (no trailing slash needed).",
    )
    http_timeout_s: float = 30.0
    http_connect_timeout_s: float = 5.0
    user_agent: str = "live-sync/1.0"

    # ── Retry ────────────────────────────────────────────────
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_s: float = Field(default=1.0, ge=0.0)
    retry_max_delay_s: float = Field(default=30.0, ge=0.0)
    retry_rate_limit_delay_s: float = Field(
        default=5.0, ge=0.0, description="Base delay for 429 responses (extended backoff)"
    )

    # ── Enrichment limiter ───────────────────────────────────
    enrichment_max_concurrent: int = Field(default=3, ge=1)
    enrichment_spacing_s: float = Field(default=1.0, ge=0.0)
    enrichment_jitter_fraction: float = Field(default=0.0, ge=0.0, le=1.0)

    # ── Cache tiers ──────────────────────────────────────────
    cache_index_capacity: int = Field(default=50, ge=1)
    cache_game_capacity: int = Field(default=200, ge=1)
    cache_goal_events_capacity: int = Field(default=300, ge=1)
    cache_players_capacity: int = Field(default=100, ge=1)
    cache_live_ttl_s: float = Field(default=30.0, gt=0.0)
    cache_static_ttl_s: float = Field(default=3600.0, gt=0.0)
    cache_players_ttl_s: float = Field(default=86400.0, gt=0.0)
    # How long an expired entry is kept as a stale fallback before it is purged
    cache_stale_grace_s: float = Field(default=3600.0, ge=0.0)

    # ── Scheduler ────────────────────────────────────────────
    scheduler_active_threshold_s: float = 5.0
    scheduler_semi_active_threshold_s: float = 30.0
    scheduler_active_interval_s: float = 15.0
    scheduler_semi_active_interval_s: float = 30.0
    scheduler_idle_interval_s: float = 120.0
    scheduler_live_interval_cap_s: float = 60.0
    scheduler_starting_interval_cap_s: float = 30.0
    scheduler_min_interval_s: float = 5.0
    scheduler_max_interval_s: float = 300.0
    scheduler_jitter_factor: float = Field(default=0.0, ge=0.0, le=0.5)
    scheduler_cycle_timeout_s: float = 15.0
    scheduler_failure_backoff_base_s: float = 5.0
    scheduler_failure_backoff_max_s: float = 120.0

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = False
    metrics_port: int = 9090

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def check_interval_bounds(self) -> "Settings":
        """Reject interval settings that can never be satisfied."""
        if self.scheduler_min_interval_s > self.scheduler_max_interval_s:
            raise ValueError("scheduler_min_interval_s must not exceed scheduler_max_interval_s")
        if self.scheduler_active_threshold_s > self.scheduler_semi_active_threshold_s:
            raise ValueError(
                "scheduler_active_threshold_s must not exceed scheduler_semi_active_threshold_s"
            )
        if self.retry_base_delay_s > self.retry_max_delay_s:
            raise ValueError("retry_base_delay_s must not exceed retry_max_delay_s")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()
