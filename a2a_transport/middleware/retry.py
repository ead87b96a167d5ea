"""Retry with exponential backoff for transient failures."""

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type

from ..errors import RequestTimeoutError, TransportError
from ..utils.config import RetryConfig
from ..utils.logging import get_logger
from .base import Middleware, NextCall

logger = get_logger("retry")

JITTER_FRACTION = 0.1


def is_transient(error: BaseException) -> bool:
    """Timeouts, connection failures, 5xx and 408 are worth another try.

    Everything else (other 4xx, protocol errors, auth errors, an open
    circuit) fails the same way on every attempt.
    """
    if isinstance(error, RequestTimeoutError):
        return True
    if isinstance(error, TransportError):
        status = error.status_code
        return status is None or status >= 500 or status == 408
    return False


class RetryMiddleware(Middleware):

    name = "retry"

    def __init__(self, config: Optional[RetryConfig] = None,
                 retryable_errors: Optional[Tuple[Type[BaseException], ...]] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep):
        self.config = config or RetryConfig()
        self.retryable_errors = retryable_errors
        self._sleep = sleep

    def should_retry(self, error: BaseException) -> bool:
        if self.retryable_errors is not None:
            return isinstance(error, self.retryable_errors)
        return is_transient(error)

    def delay_for(self, retry_number: int) -> float:
        """Delay before retry ``retry_number`` (1-based), capped at max_delay."""
        config = self.config
        delay = min(config.initial_delay * config.backoff_multiplier ** (retry_number - 1),
                    config.max_delay)
        if config.jitter:
            delay = min(delay * (1 + random.random() * JITTER_FRACTION), config.max_delay)
        return delay

    def delays(self, count: Optional[int] = None) -> List[float]:
        """The backoff schedule, one delay per retry."""
        count = self.config.max_attempts - 1 if count is None else count
        return [self.delay_for(n) for n in range(1, count + 1)]

    async def call(self, request, context: Dict[str, Any], next_call: NextCall) -> Any:
        attempt = 1
        while True:
            context["retry_attempt"] = attempt
            try:
                return await next_call(request, context)
            except Exception as e:
                if not self.should_retry(e) or attempt >= self.config.max_attempts:
                    if attempt > 1:
                        logger.warning("retry_exhausted" if self.should_retry(e) else "retry_aborted",
                                       attempts=attempt, error_type=type(e).__name__, error=str(e))
                    raise

                delay = self.delay_for(attempt)
                context["retry_delay"] = delay
                logger.info("retry_scheduled",
                            attempt=attempt,
                            max_attempts=self.config.max_attempts,
                            delay_seconds=round(delay, 3),
                            error_type=type(e).__name__)
                await self._sleep(delay)
                attempt += 1
