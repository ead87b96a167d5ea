"""Client-side token bucket rate limiting."""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

from ..errors import RateLimitExceeded
from ..utils.config import RateLimitConfig
from ..utils.logging import get_logger
from .base import Middleware, NextCall

logger = get_logger("rate_limit")


class RateLimitMiddleware(Middleware):
    """Holds each request until a token is available.

    The bucket starts full at ``burst_size`` tokens and refills at
    ``requests_per_second``. With ``block=False`` a request that finds the
    bucket empty fails with ``RateLimitExceeded`` instead of waiting.
    """

    name = "rate_limit"

    def __init__(self, config: Optional[RateLimitConfig] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(self.config.burst_size)
        self._last_refill = clock()
        self._lock = asyncio.Lock()

        if self.config.burst_size < self.config.requests_per_second:
            logger.warning("rate_limit_burst_below_rate",
                           burst_size=self.config.burst_size,
                           requests_per_second=self.config.requests_per_second)

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    async def call(self, request, context: Dict[str, Any], next_call: NextCall) -> Any:
        await self.acquire()
        return await next_call(request, context)

    async def acquire(self):
        while True:
            async with self._lock:
                self._refill()
                if self._tokens >= 1.0:
                    self._tokens -= 1.0
                    return
                wait = self._time_until_next_token()

            if not self.config.block:
                raise RateLimitExceeded(
                    f"Client rate limit of {self.config.requests_per_second} req/s exceeded",
                    data={"retry_after": wait},
                )
            logger.debug("rate_limit_wait", wait_seconds=round(wait, 3))
            await self._sleep(wait)

    def can_make_request(self) -> bool:
        return self.tokens >= 1.0

    def time_until_next_token(self) -> float:
        self._refill()
        return self._time_until_next_token()

    def status(self) -> Dict[str, Any]:
        tokens = self.tokens
        return {
            "requests_per_second": self.config.requests_per_second,
            "burst_size": self.config.burst_size,
            "available_tokens": round(tokens, 2),
            "tokens_full": tokens >= self.config.burst_size,
            "can_make_request": tokens >= 1.0,
        }

    def reset(self):
        self._tokens = float(self.config.burst_size)
        self._last_refill = self._clock()

    def _time_until_next_token(self) -> float:
        if self._tokens >= 1.0:
            return 0.0
        return (1.0 - self._tokens) / self.config.requests_per_second

    def _refill(self):
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed <= 0:
            return
        self._tokens = min(self._tokens + elapsed * self.config.requests_per_second,
                           float(self.config.burst_size))
        self._last_refill = now
