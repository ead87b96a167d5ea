"""Configuration dataclasses for the A2A transport client.

Only the resolved configuration structure lives here. Loading it from files
or the environment is left to the host application.
"""

import copy as _copy
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, List, Optional

from ...errors import ConfigurationError
from .constants import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD, CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
    CIRCUIT_BREAKER_SUCCESS_THRESHOLD,
    DEFAULT_AGENT_CARD_PATH, DEFAULT_BACKOFF_MULTIPLIER, DEFAULT_BURST_SIZE,
    DEFAULT_CONNECT_TIMEOUT, DEFAULT_IDLE_TIMEOUT, DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_POOL_SIZE, DEFAULT_POOL_TIMEOUT, DEFAULT_REQUESTS_PER_SECOND,
    DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_DELAY, DEFAULT_TIMEOUT_SECONDS,
    TRANSPORT_JSONRPC, VALID_TRANSPORTS,
)

DEFAULT_USER_AGENT = "a2a-transport/0.1.0"
VALID_OUTPUT_MODES = ("text", "file", "data")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
VALID_BREAKER_SCOPES = ("global", "client")


@dataclass
class RetryConfig:
    """Retry with exponential backoff."""
    max_attempts: int = DEFAULT_RETRY_ATTEMPTS
    initial_delay: float = DEFAULT_RETRY_DELAY
    max_delay: float = DEFAULT_MAX_RETRY_DELAY
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    jitter: bool = False

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.initial_delay <= 0 or self.max_delay <= 0:
            raise ConfigurationError("retry delays must be positive")
        if self.initial_delay > self.max_delay:
            raise ConfigurationError("initial_delay cannot exceed max_delay")
        if self.backoff_multiplier < 1:
            raise ConfigurationError("backoff_multiplier must be at least 1")


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker thresholds."""
    failure_threshold: int = CIRCUIT_BREAKER_FAILURE_THRESHOLD  # Consecutive failures before opening
    recovery_timeout: float = CIRCUIT_BREAKER_RECOVERY_TIMEOUT  # Seconds open before a probe
    success_threshold: int = CIRCUIT_BREAKER_SUCCESS_THRESHOLD  # Half-open successes to close
    scope: str = "global"

    def __post_init__(self):
        if self.failure_threshold < 1 or self.success_threshold < 1:
            raise ConfigurationError("circuit breaker thresholds must be at least 1")
        if self.recovery_timeout <= 0:
            raise ConfigurationError("recovery_timeout must be positive")
        if self.scope not in VALID_BREAKER_SCOPES:
            raise ConfigurationError(f"scope must be one of {', '.join(VALID_BREAKER_SCOPES)}")


@dataclass
class RateLimitConfig:
    """Token bucket rate limiting."""
    requests_per_second: float = DEFAULT_REQUESTS_PER_SECOND
    burst_size: int = DEFAULT_BURST_SIZE
    block: bool = True  # Wait for a token instead of raising

    def __post_init__(self):
        if self.requests_per_second <= 0:
            raise ConfigurationError("requests_per_second must be positive")
        if self.burst_size < 1:
            raise ConfigurationError("burst_size must be at least 1")


@dataclass
class PoolConfig:
    """Connection pool sizing."""
    size: int = DEFAULT_POOL_SIZE
    timeout: float = DEFAULT_POOL_TIMEOUT  # Checkout wait
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT

    def __post_init__(self):
        if self.size < 1:
            raise ConfigurationError("pool size must be at least 1")
        if self.timeout <= 0 or self.idle_timeout <= 0:
            raise ConfigurationError("pool timeouts must be positive")


@dataclass
class LoggingConfig:
    """Logging configuration."""
    enabled: bool = True
    level: str = "INFO"
    log_dir: Optional[str] = None
    max_file_size: int = 10485760  # 10MB
    backup_count: int = 5
    log_bodies: bool = False

    def __post_init__(self):
        self.level = self.level.upper()
        if self.level not in VALID_LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.level}")


_NESTED = {
    "retry": RetryConfig,
    "circuit_breaker": CircuitBreakerConfig,
    "rate_limit": RateLimitConfig,
    "pool": PoolConfig,
    "logging": LoggingConfig,
}


@dataclass
class ClientConfig:
    """Resolved client configuration.

    Passed explicitly to every client; there is no process-wide configuration.
    """
    streaming: bool = True
    polling: bool = False
    supported_transports: List[str] = field(default_factory=lambda: [TRANSPORT_JSONRPC])
    use_client_preference: bool = True
    accepted_output_modes: List[str] = field(default_factory=lambda: list(VALID_OUTPUT_MODES))
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    stream_read_timeout: Optional[float] = None  # None keeps SSE reads open indefinitely
    headers: Dict[str, str] = field(default_factory=dict)
    user_agent: str = DEFAULT_USER_AGENT
    auth_auto_retry: bool = True
    agent_card_path: str = DEFAULT_AGENT_CARD_PATH

    retry: RetryConfig = field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    rate_limit: Optional[RateLimitConfig] = None
    pool: PoolConfig = field(default_factory=PoolConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        self.validate()

    def validate(self):
        """Raise ConfigurationError for inconsistent settings."""
        if not self.supported_transports:
            raise ConfigurationError("At least one transport must be supported")
        for transport in self.supported_transports:
            if transport not in VALID_TRANSPORTS:
                raise ConfigurationError(f"Invalid transport: {transport}")
        for mode in self.accepted_output_modes:
            if mode not in VALID_OUTPUT_MODES:
                raise ConfigurationError(f"Invalid output mode: {mode}")
        if self.timeout <= 0 or self.connect_timeout <= 0:
            raise ConfigurationError("Timeouts must be positive")
        if self.stream_read_timeout is not None and self.stream_read_timeout <= 0:
            raise ConfigurationError("stream_read_timeout must be positive")
        if not self.agent_card_path.startswith("/"):
            raise ConfigurationError("agent_card_path must start with '/'")

    def supports_transport(self, transport: str) -> bool:
        return transport in self.supported_transports

    @property
    def preferred_transport(self) -> str:
        return self.supported_transports[0]

    def accepts_output_mode(self, mode: str) -> bool:
        return mode in self.accepted_output_modes

    def copy(self, **overrides) -> "ClientConfig":
        """Deep copy with field overrides applied (validation re-runs)."""
        values = {f.name: _copy.deepcopy(getattr(self, f.name)) for f in fields(self)}
        values.update(overrides)
        return ClientConfig(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClientConfig":
        """Build from a plain mapping; nested sections may be dicts."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        values = dict(data)
        for key, section_class in _NESTED.items():
            section = values.get(key)
            if isinstance(section, dict):
                try:
                    values[key] = section_class(**section)
                except TypeError as e:
                    raise ConfigurationError(f"Invalid {key} configuration: {e}") from e
        return cls(**values)
