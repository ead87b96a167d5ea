"""Client side of the A2A JSON-RPC transport."""

from .client import A2AClient
from .codec import JsonRpcCodec
from .connection_pool import ConnectionPool, HttpConnection, PoolEntry
from .negotiator import TransportNegotiator
from .performance import PerformanceTracker
from .sse import SseParser
from .transport import EventStream, HttpRequest, HttpTransport, TransportResponse

__all__ = [
    "A2AClient",
    "JsonRpcCodec",
    "ConnectionPool",
    "HttpConnection",
    "PoolEntry",
    "TransportNegotiator",
    "PerformanceTracker",
    "SseParser",
    "EventStream",
    "HttpRequest",
    "HttpTransport",
    "TransportResponse",
]
