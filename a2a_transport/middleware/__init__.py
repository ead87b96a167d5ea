"""Composable client middleware.

Default order, outermost first: logging, rate limit (when configured),
circuit breaker, retry, auth. Retries therefore run inside the breaker, and
every retry re-applies credentials.
"""

from typing import Any, Dict, List, Optional

from ..errors import ConfigurationError
from ..utils.config import (
    CircuitBreakerConfig, ClientConfig, RateLimitConfig, RetryConfig,
)
from .base import Middleware, NextCall, build_chain
from .circuit_breaker import (
    CircuitBreaker, CircuitBreakerMiddleware, CircuitBreakerRegistry, CircuitState,
    get_circuit_breaker_registry,
)
from .logging_middleware import LoggingMiddleware, mask_headers
from .rate_limit import RateLimitMiddleware
from .retry import RetryMiddleware, is_transient

_RETRY_KEYS = ("max_attempts", "initial_delay", "max_delay", "backoff_multiplier", "jitter")
_BREAKER_KEYS = ("failure_threshold", "recovery_timeout", "success_threshold", "scope")
_RATE_LIMIT_KEYS = ("requests_per_second", "burst_size", "block")
_LOGGING_KEYS = ("log_requests", "log_responses", "log_errors", "log_bodies")


def _pick(config: Dict[str, Any], keys) -> Dict[str, Any]:
    return {key: config[key] for key in keys if key in config}


def from_config(config: Dict[str, Any]) -> Middleware:
    """Build one middleware from a mapping with a ``type`` key.

    Example:
        from_config({"type": "retry", "max_attempts": 5})
    """
    kind = config.get("type")
    if kind == "retry":
        return RetryMiddleware(RetryConfig(**_pick(config, _RETRY_KEYS)))
    if kind == "circuit_breaker":
        values = _pick(config, _BREAKER_KEYS)
        # "timeout" is accepted as an alias of recovery_timeout
        if "timeout" in config and "recovery_timeout" not in values:
            values["recovery_timeout"] = config["timeout"]
        return CircuitBreakerMiddleware(CircuitBreakerConfig(**values))
    if kind == "rate_limit":
        return RateLimitMiddleware(RateLimitConfig(**_pick(config, _RATE_LIMIT_KEYS)))
    if kind == "logging":
        return LoggingMiddleware(**_pick(config, _LOGGING_KEYS))
    raise ConfigurationError(f"Unknown middleware type: {kind}")


def default_stack(config: Optional[ClientConfig] = None, auth=None,
                  tracker=None) -> List[Middleware]:
    """The standard chain for a client configuration.

    ``auth`` may be an AuthStrategy or an already built AuthInterceptor.
    """
    from ..auth.interceptor import AuthInterceptor

    config = config or ClientConfig()
    stack: List[Middleware] = []

    if config.logging.enabled:
        stack.append(LoggingMiddleware(log_bodies=config.logging.log_bodies, tracker=tracker))
    if config.rate_limit is not None:
        stack.append(RateLimitMiddleware(config.rate_limit))
    stack.append(CircuitBreakerMiddleware(config.circuit_breaker))
    stack.append(RetryMiddleware(config.retry))
    if auth is not None:
        if not isinstance(auth, AuthInterceptor):
            auth = AuthInterceptor(auth, auto_retry=config.auth_auto_retry)
        stack.append(auth)
    return stack


__all__ = [
    "Middleware",
    "NextCall",
    "build_chain",
    "default_stack",
    "from_config",
    "RetryMiddleware",
    "is_transient",
    "CircuitBreaker",
    "CircuitBreakerMiddleware",
    "CircuitBreakerRegistry",
    "CircuitState",
    "get_circuit_breaker_registry",
    "RateLimitMiddleware",
    "LoggingMiddleware",
    "mask_headers",
]
