"""
Circuit breaker for agent endpoints.

Protects callers from hammering an endpoint that keeps failing:

    CLOSED --failure_threshold consecutive failures--> OPEN
    OPEN --recovery_timeout elapsed (checked on the next call)--> HALF_OPEN
    HALF_OPEN --success_threshold consecutive successes--> CLOSED
    HALF_OPEN --any failure--> OPEN (counters reset, timer restarted)

While OPEN, calls fail with ``CircuitOpenError`` without reaching the
network. Breakers are kept per target in a registry; by default the
process-wide one, so every client talking to an endpoint shares its health.
"""

import asyncio
import time
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type

from ..errors import CircuitOpenError, RequestTimeoutError, TransportError
from ..utils.config import CircuitBreakerConfig
from ..utils.logging import get_logger
from .base import Middleware, NextCall
from .retry import is_transient

logger = get_logger("circuit_breaker")

DEFAULT_FAILURE_TYPES: Tuple[Type[BaseException], ...] = (TransportError, RequestTimeoutError)


class CircuitState(Enum):
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing fast
    HALF_OPEN = "half_open"  # Probing


class CircuitBreaker:
    """State machine for one target. Counters change only under ``_lock``."""

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.consecutive_successes = 0
        self.opened_at: Optional[float] = None
        self._lock = asyncio.Lock()

    async def before_call(self):
        """Raise CircuitOpenError unless a call may proceed."""
        async with self._lock:
            if self.state != CircuitState.OPEN:
                return

            elapsed = self._clock() - self.opened_at
            if elapsed >= self.config.recovery_timeout:
                self.state = CircuitState.HALF_OPEN
                self.consecutive_successes = 0
                logger.info("circuit_breaker_half_open",
                            breaker=self.name,
                            open_seconds=round(elapsed, 1))
                return

            retry_after = self.config.recovery_timeout - elapsed
            logger.warning("circuit_breaker_rejected",
                           breaker=self.name,
                           failures=self.consecutive_failures,
                           retry_after=round(retry_after, 1))
            raise CircuitOpenError(f"Circuit breaker {self.name} is open",
                                   target=self.name, retry_after=retry_after)

    async def record_success(self):
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.consecutive_successes += 1
                if self.consecutive_successes >= self.config.success_threshold:
                    self._close()
            else:
                self.consecutive_failures = 0

    async def record_failure(self):
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                logger.warning("circuit_breaker_reopened",
                               breaker=self.name,
                               successes=self.consecutive_successes)
                self._open()
                return

            self.consecutive_failures += 1
            if self.state == CircuitState.CLOSED and self.consecutive_failures >= self.config.failure_threshold:
                logger.warning("circuit_breaker_opened",
                               breaker=self.name,
                               failures=self.consecutive_failures,
                               threshold=self.config.failure_threshold)
                self._open()

    async def call(self, func: Callable, *args,
                   failure_types: Tuple[Type[BaseException], ...] = DEFAULT_FAILURE_TYPES,
                   is_failure: Optional[Callable[[BaseException], bool]] = None,
                   **kwargs) -> Any:
        """Run ``func`` through the breaker.

        Only ``failure_types`` accepted by ``is_failure`` (when given) count as
        failures. Other errors propagate without touching the counters.
        """
        await self.before_call()
        try:
            result = await func(*args, **kwargs)
        except failure_types as e:
            if is_failure is None or is_failure(e):
                await self.record_failure()
            raise
        await self.record_success()
        return result

    async def reset(self):
        async with self._lock:
            self._close()

    async def trip(self):
        """Force the breaker open."""
        async with self._lock:
            self._open()

    def _open(self):
        self.state = CircuitState.OPEN
        self.opened_at = self._clock()
        self.consecutive_failures = 0
        self.consecutive_successes = 0

    def _close(self):
        if self.state != CircuitState.CLOSED:
            logger.info("circuit_breaker_closed", breaker=self.name)
        self.state = CircuitState.CLOSED
        self.opened_at = None
        self.consecutive_failures = 0
        self.consecutive_successes = 0

    def get_state(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "consecutive_successes": self.consecutive_successes,
            "opened_at": self.opened_at,
        }


class CircuitBreakerRegistry:
    """Breakers keyed by target."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._clock = clock

    def get_breaker(self, name: str, config: Optional[CircuitBreakerConfig] = None) -> CircuitBreaker:
        breaker = self._breakers.get(name)
        if breaker is None:
            breaker = CircuitBreaker(name, config, clock=self._clock)
            self._breakers[name] = breaker
            logger.debug("circuit_breaker_created", breaker=name)
        return breaker

    def remove_breaker(self, name: str):
        self._breakers.pop(name, None)

    def get_all_states(self) -> Dict[str, Dict[str, Any]]:
        return {name: breaker.get_state() for name, breaker in self._breakers.items()}

    async def reset_all(self):
        for breaker in self._breakers.values():
            await breaker.reset()

    def clear(self):
        self._breakers.clear()


_registry: Optional[CircuitBreakerRegistry] = None


def get_circuit_breaker_registry() -> CircuitBreakerRegistry:
    """The process-wide registry."""
    global _registry
    if _registry is None:
        _registry = CircuitBreakerRegistry()
    return _registry


class CircuitBreakerMiddleware(Middleware):
    """Guards each request with the breaker of its target URL.

    Failures are classified like retries: timeouts, connection errors, 5xx
    and 408 count against the endpoint, other HTTP errors do not.
    """

    name = "circuit_breaker"

    def __init__(self, config: Optional[CircuitBreakerConfig] = None,
                 registry: Optional[CircuitBreakerRegistry] = None,
                 failure_types: Tuple[Type[BaseException], ...] = DEFAULT_FAILURE_TYPES,
                 is_failure: Optional[Callable[[BaseException], bool]] = is_transient):
        self.config = config or CircuitBreakerConfig()
        if registry is None:
            registry = (CircuitBreakerRegistry() if self.config.scope == "client"
                        else get_circuit_breaker_registry())
        self.registry = registry
        self.failure_types = failure_types
        self.is_failure = is_failure

    def breaker_for(self, request) -> CircuitBreaker:
        return self.registry.get_breaker(request.url, self.config)

    async def call(self, request, context: Dict[str, Any], next_call: NextCall) -> Any:
        breaker = self.breaker_for(request)
        context["circuit_state"] = breaker.state.value
        return await breaker.call(next_call, request, context, failure_types=self.failure_types,
                                  is_failure=self.is_failure)
