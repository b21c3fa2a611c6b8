"""
Bounded-concurrency gate for per-game enrichment fetches.

Firing one detail request per game all at once trips the upstream rate
limiter, after which detail payloads come back without player data. The
limiter caps concurrent detail requests at K and spaces successive
acquisitions by a fixed delay.
"""
from __future__ import annotations

import asyncio
import random
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

from shared.utils.logging import get_logger
from shared.utils.metrics import ENRICHMENT_IN_FLIGHT

logger = get_logger(__name__)


class EnrichmentLimiter:
    """
    Semaphore of size `max_concurrent` plus an inter-acquisition delay.

    Usage:
        async with limiter.slot():
            await fetch_detail(...)

    The slot is released on every exit path, including cancellation.
    """

    def __init__(
        self,
        max_concurrent: int = 3,
        spacing_s: float = 1.0,
        jitter_fraction: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if spacing_s < 0:
            raise ValueError("spacing_s must be >= 0")
        self._max = max_concurrent
        self._spacing = spacing_s
        self._jitter = jitter_fraction
        self._clock = clock
        self._sleep = sleep
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._spacing_lock = asyncio.Lock()
        self._last_acquired: Optional[float] = None
        self._in_flight = 0
        self._peak = 0
        self._total = 0

    @property
    def max_concurrent(self) -> int:
        return self._max

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak_in_flight(self) -> int:
        return self._peak

    @property
    def total_acquisitions(self) -> int:
        return self._total

    def _spacing_delay(self) -> float:
        if self._spacing <= 0:
            return 0.0
        if self._jitter > 0:
            spread = self._spacing * self._jitter
            return max(0.0, self._spacing + random.uniform(-spread, spread))
        return self._spacing

    async def _wait_for_spacing(self) -> None:
        async with self._spacing_lock:
            if self._last_acquired is not None:
                wait = self._last_acquired + self._spacing_delay() - self._clock()
                if wait > 0:
                    await self._sleep(wait)
            self._last_acquired = self._clock()

    @asynccontextmanager
    async def slot(self, label: str = "") -> AsyncIterator[None]:
        """Scoped acquisition of one enrichment slot."""
        await self._semaphore.acquire()
        try:
            await self._wait_for_spacing()
            self._in_flight += 1
            self._total += 1
            self._peak = max(self._peak, self._in_flight)
            ENRICHMENT_IN_FLIGHT.set(self._in_flight)
            logger.debug("enrichment_slot_acquired", label=label, in_flight=self._in_flight)
            try:
                yield
            finally:
                self._in_flight -= 1
                ENRICHMENT_IN_FLIGHT.set(self._in_flight)
        finally:
            self._semaphore.release()
