"""
Request coalescing: one upstream fetch per key, shared by every concurrent caller.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Generic, Hashable, TypeVar

from shared.utils.logging import get_logger
from shared.utils.metrics import COALESCED_WAITS

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class RequestCoalescer(Generic[K]):
    """
    Tracks in-flight fetches by key.

    The first caller for a key starts the fetch as a task; callers arriving
    while it runs await the same task. The fetch is shielded, so one waiter
    being cancelled does not cancel it for the others. Exceptions reach every
    waiter. The key is released as soon as the task finishes.
    """

    def __init__(self) -> None:
        self._in_flight: dict[K, asyncio.Task[Any]] = {}

    def in_flight(self, key: K) -> bool:
        return key in self._in_flight

    @property
    def pending(self) -> int:
        return len(self._in_flight)

    async def run(self, key: K, factory: Callable[[], Awaitable[T]]) -> T:
        task = self._in_flight.get(key)
        if task is not None:
            COALESCED_WAITS.inc()
            logger.debug("fetch_coalesced", key=str(key))
        else:
            task = asyncio.ensure_future(factory())
            self._in_flight[key] = task
            task.add_done_callback(lambda _t, k=key: self._release(k, _t))
        return await asyncio.shield(task)

    def _release(self, key: K, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Mark the exception retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()
