"""
Token bucket rate limiter for outbound API calls.

Waiters are served one at a time in arrival order, so a burst of tracking
lookups in one sync pass is spread out at ``rate_per_second``.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class TokenBucketRateLimiter:
    """
    Async token bucket.

    Args:
        rate_per_second: Tokens added per second
        capacity: Maximum tokens held (burst size)
        clock: Monotonic time source
        sleep: Coroutine used to wait
    """

    def __init__(
        self,
        rate_per_second: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if rate_per_second <= 0:
            raise ValueError("rate_per_second must be positive")
        if capacity < 1:
            raise ValueError("capacity must be at least 1")

        self.rate_per_second = rate_per_second
        self.capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated_at = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated_at)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate_per_second)
        self._updated_at = now

    async def acquire(self) -> float:
        """
        Wait until a token is available and consume it.

        Returns:
            float: seconds spent waiting
        """
        waited = 0.0
        async with self._lock:
            self._refill()
            while self._tokens < 1:
                wait_time = (1 - self._tokens) / self.rate_per_second
                logger.debug(f"Rate limit reached, waiting {wait_time:.2f}s")
                await self._sleep(wait_time)
                waited += wait_time
                self._refill()
            self._tokens -= 1
        return waited

    @property
    def available_tokens(self) -> float:
        self._refill()
        return self._tokens
