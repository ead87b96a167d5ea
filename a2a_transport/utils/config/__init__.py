"""Configuration for the A2A transport client."""

from .config import (
    CircuitBreakerConfig,
    ClientConfig,
    LoggingConfig,
    PoolConfig,
    RateLimitConfig,
    RetryConfig,
)

__all__ = [
    "ClientConfig",
    "RetryConfig",
    "CircuitBreakerConfig",
    "RateLimitConfig",
    "PoolConfig",
    "LoggingConfig",
]
