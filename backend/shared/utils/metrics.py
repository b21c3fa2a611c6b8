"""
Lightweight metrics collection for the Live Sync engine.
Wraps prometheus_client with async-safe patterns.
"""
from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Counters ────────────────────────────────────────────────────────────
UPSTREAM_REQUESTS = Counter(
    "ls_upstream_requests_total",
    "Total upstream HTTP requests",
    ["endpoint", "status"],
)
CACHE_LOOKUPS = Counter(
    "ls_cache_lookups_total",
    "Cache tier lookups",
    ["tier", "result"],
)
CACHE_EVICTIONS = Counter(
    "ls_cache_evictions_total",
    "Entries evicted by LRU policy",
    ["tier"],
)
COALESCED_WAITS = Counter(
    "ls_coalesced_waits_total",
    "Callers that joined an in-flight fetch instead of issuing their own",
)
FALLBACKS = Counter(
    "ls_fallbacks_total",
    "Resources served stale or degraded after upstream failure",
    ["kind"],
)
REFRESH_CYCLES = Counter(
    "ls_refresh_cycles_total",
    "Refresh scheduler cycles by result",
    ["result"],
)

# ── Histograms ──────────────────────────────────────────────────────────
UPSTREAM_LATENCY = Histogram(
    "ls_upstream_latency_seconds",
    "Upstream request latency in seconds",
    ["endpoint"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
REFRESH_DURATION = Histogram(
    "ls_refresh_duration_seconds",
    "Duration of a full refresh cycle",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0),
)
SCHEDULER_INTERVAL = Histogram(
    "ls_scheduler_interval_seconds",
    "Computed tick interval",
    ["reason"],
    buckets=(5, 10, 15, 30, 60, 120, 300),
)

# ── Gauges ──────────────────────────────────────────────────────────────
ENRICHMENT_IN_FLIGHT = Gauge(
    "ls_enrichment_in_flight",
    "Enrichment requests currently holding a limiter slot",
)
CACHE_SIZE = Gauge(
    "ls_cache_entries",
    "Entries currently held per cache tier",
    ["tier"],
)
LIVE_GAMES = Gauge(
    "ls_live_games",
    "Ongoing games in the last committed snapshot set",
)


@asynccontextmanager
async def atrack_latency(histogram: Histogram, **labels: str) -> AsyncIterator[None]:
    """Async context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        if labels:
            histogram.labels(**labels).observe(elapsed)
        else:
            histogram.observe(elapsed)


def start_metrics_server(port: int, enabled: bool = True) -> None:
    """Start the Prometheus metrics HTTP server."""
    if not enabled:
        return
    try:
        start_http_server(port)
        logger.info("metrics_server_started", port=port)
    except OSError as exc:
        logger.warning("metrics_server_failed", error=str(exc), port=port)
