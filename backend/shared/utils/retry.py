"""
Retry policy for upstream calls.

A RetryPolicy is a plain value: how many attempts, how long to wait before
the next one, and which errors are worth retrying. The HTTP client consumes
it; it holds no state of its own.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Optional

from shared.errors import RateLimited, SyncError


def default_is_retryable(exc: BaseException) -> bool:
    """NetworkError, RateLimited and ServerError are retryable; everything else is not."""
    return isinstance(exc, SyncError) and exc.retryable


@dataclass(frozen=True)
class RetryPolicy:
    """
    Capped exponential backoff.

        delay(n)            = min(max_delay, base_delay * 2 ** (n - 1))
        delay(n) for 429    = min(max_delay, max(retry_after, rate_limit_delay * 2 ** (n - 1)))

    `n` is the 1-based number of the attempt that just failed.
    """

    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 30.0
    rate_limit_delay_s: float = 5.0
    jitter_fraction: float = 0.0
    is_retryable: Callable[[BaseException], bool] = field(default=default_is_retryable)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay_s < 0 or self.max_delay_s < 0 or self.rate_limit_delay_s < 0:
            raise ValueError("retry delays must be non-negative")

    def should_retry(self, exc: BaseException, attempt: int) -> bool:
        """True when `attempt` failed with `exc` and another attempt is allowed."""
        return attempt < self.max_attempts and self.is_retryable(exc)

    def delay_for(self, attempt: int, exc: Optional[BaseException] = None) -> float:
        """Seconds to wait after failed attempt number `attempt`."""
        exponent = max(attempt - 1, 0)
        if isinstance(exc, RateLimited):
            delay = self.rate_limit_delay_s * (2 ** exponent)
            if exc.retry_after is not None:
                delay = max(delay, exc.retry_after)
        else:
            delay = self.base_delay_s * (2 ** exponent)
            retry_after = getattr(exc, "retry_after", None)
            if retry_after is not None:
                delay = max(delay, retry_after)
        delay = min(delay, self.max_delay_s)
        if self.jitter_fraction > 0 and delay > 0:
            spread = delay * self.jitter_fraction
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(max_attempts=1, base_delay_s=0.0, max_delay_s=0.0, rate_limit_delay_s=0.0)
