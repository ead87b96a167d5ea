"""Client transport for the Agent-to-Agent (A2A) protocol.

JSON-RPC 2.0 over HTTP with SSE streaming, pluggable authentication,
transport negotiation and a composable middleware chain.
"""

__version__ = "0.1.0"

from .errors import (
    A2AException, AuthenticationError, CircuitOpenError, ClientError,
    ConfigurationError, NoCompatibleTransport, PoolTimeout, ProtocolError,
    RequestTimeoutError, TransportError, error_from_code,
)
from .types import AgentCard, AgentInterface, JsonRpcRequest, JsonRpcResponse, SseEvent
from .utils.config import (
    CircuitBreakerConfig, ClientConfig, LoggingConfig, PoolConfig, RateLimitConfig, RetryConfig,
)
from .auth import ApiKeyAuth, AuthInterceptor, BasicAuth, JWTAuth, OAuth2ClientCredentials
from .client import A2AClient

__all__ = [
    "A2AClient",
    "AgentCard",
    "AgentInterface",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "SseEvent",
    "ClientConfig",
    "RetryConfig",
    "CircuitBreakerConfig",
    "RateLimitConfig",
    "PoolConfig",
    "LoggingConfig",
    "OAuth2ClientCredentials",
    "JWTAuth",
    "ApiKeyAuth",
    "BasicAuth",
    "AuthInterceptor",
    "A2AException",
    "ConfigurationError",
    "ClientError",
    "TransportError",
    "RequestTimeoutError",
    "PoolTimeout",
    "AuthenticationError",
    "CircuitOpenError",
    "NoCompatibleTransport",
    "ProtocolError",
    "error_from_code",
]
