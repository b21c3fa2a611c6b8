"""
Tests for settings loading/validation and logging setup.

Run: pytest backend/tests/test_config_logging.py -v
"""
from __future__ import annotations

import logging
from datetime import date

import pytest
import structlog
from pydantic import ValidationError

from shared.config import Environment, Settings, get_settings
from shared.models.enums import GameStatus
from shared.utils.logging import get_logger, plain_values, setup_logging


def test_defaults_match_documented_values() -> None:
    settings = Settings()
    assert settings.api_base_url == "https://liiga.fi/api/v2"
    assert settings.retry_max_attempts == 3
    assert settings.enrichment_max_concurrent == 3
    assert settings.cache_live_ttl_s == 30
    assert settings.scheduler_live_interval_cap_s == 60
    assert settings.scheduler_cycle_timeout_s == 15


def test_env_prefix_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LS_RETRY_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("LS_ENVIRONMENT", "production")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.retry_max_attempts == 5
        assert settings.environment == Environment.PRODUCTION
    finally:
        get_settings.cache_clear()


def test_trailing_slash_is_stripped_from_base_url() -> None:
    assert Settings(api_base_url="https://example.test/api/").api_base_url == "https://example.test/api"


def test_inverted_interval_bounds_are_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(scheduler_min_interval_s=600, scheduler_max_interval_s=300)


def test_invalid_limiter_capacity_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Settings(enrichment_max_concurrent=0)


def test_setup_logging_routes_to_stderr_and_silences_http_libraries() -> None:
    setup_logging("test", settings=Settings(log_level="DEBUG"))
    root = logging.getLogger()
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 1
    assert logging.getLogger("httpx").level == logging.WARNING
    get_logger(__name__).info("logging_configured", check=True)


def test_setup_logging_binds_service_and_environment() -> None:
    setup_logging("scheduler", settings=Settings(environment="staging"))
    assert structlog.contextvars.get_contextvars() == {"service": "scheduler", "environment": "staging"}


def test_plain_values_renders_status_and_dates() -> None:
    event = plain_values(None, "info", {"status": GameStatus.ONGOING, "day": date(2025, 10, 18), "games": 3})
    assert event == {"status": "ongoing", "day": "2025-10-18", "games": 3}
