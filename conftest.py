"""
Global pytest configuration and fixtures for the A2A transport tests.

Fixtures are grouped by concern: configuration, agent cards, fake
connections/clocks for deterministic timing, and HTTP mocking.
"""

import json
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from aioresponses import aioresponses

from a2a_transport.client.connection_pool import ConnectionPool
from a2a_transport.middleware.circuit_breaker import get_circuit_breaker_registry
from a2a_transport.types import AgentCard
from a2a_transport.utils.config import (
    CircuitBreakerConfig, ClientConfig, PoolConfig, RetryConfig,
)

AGENT_URL = "http://agent.test/a2a"


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def client_config():
    """Client configuration with fast retries and a per-client breaker."""
    return ClientConfig(
        streaming=False,
        retry=RetryConfig(max_attempts=3, initial_delay=0.01, max_delay=0.05),
        circuit_breaker=CircuitBreakerConfig(failure_threshold=3, recovery_timeout=5, scope="client"),
        pool=PoolConfig(size=2, timeout=1.0, idle_timeout=30.0),
    )


@pytest.fixture
def circuit_breaker_config():
    """Circuit breaker configuration for testing."""
    return CircuitBreakerConfig(
        failure_threshold=3,
        recovery_timeout=5,
        success_threshold=2,
    )


@pytest.fixture(autouse=True)
def clean_breaker_registry():
    """Keep the process-wide breaker registry from leaking between tests."""
    get_circuit_breaker_registry().clear()
    yield
    get_circuit_breaker_registry().clear()


# ============================================================================
# Agent Card Fixtures
# ============================================================================

@pytest.fixture
def agent_card_data() -> Dict[str, Any]:
    """Agent card document as an agent would publish it."""
    return {
        "name": "test-agent",
        "version": "1.0.0",
        "url": AGENT_URL,
        "preferredTransport": "JSONRPC",
        "additionalInterfaces": [
            {"transport": "GRPC", "url": "grpc://agent.test:50051"},
            {"transport": "HTTP+JSON", "url": "http://agent.test/rest"},
        ],
        "capabilities": {"streaming": True, "pushNotifications": True},
        "securitySchemes": {
            "apiKey": {"type": "apiKey", "in": "header", "name": "X-Agent-Key"},
        },
    }


@pytest.fixture
def agent_card(agent_card_data):
    return AgentCard.from_dict(agent_card_data)


# ============================================================================
# Deterministic Time
# ============================================================================

class FakeClock:
    """Manually advanced clock for breaker, rate limit and pool tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records delays and advances an optional clock."""

    def __init__(self, clock: FakeClock = None):
        self.delays: List[float] = []
        self.clock = clock

    async def __call__(self, delay: float):
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


# ============================================================================
# Fake Connections
# ============================================================================

class FakeConnection:
    """Minimal connection exposing the interface the pool validates."""

    instances = 0

    def __init__(self):
        FakeConnection.instances += 1
        self.number = FakeConnection.instances
        self.closed = False

    def request(self, *args, **kwargs):
        raise NotImplementedError

    def post(self, *args, **kwargs):
        raise NotImplementedError

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_pool(fake_clock):
    """Pool of FakeConnections driven by the fake clock."""
    return ConnectionPool(FakeConnection, size=2, timeout=0.05, idle_timeout=30.0, clock=fake_clock)


# ============================================================================
# HTTP Mocking
# ============================================================================

@pytest.fixture
def mock_http():
    """aioresponses context for mocking aiohttp calls."""
    with aioresponses() as mocked:
        yield mocked


def rpc_result(result: Any, request_id: Any = 1) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def rpc_error(code: int, message: str, request_id: Any = 1) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}


def sse_body(*payloads: Any, done: bool = True) -> str:
    """Encode payloads as an SSE body, optionally ending with the [DONE] sentinel."""
    lines = []
    for index, payload in enumerate(payloads, start=1):
        lines.append(f"id: {index}")
        lines.append(f"data: {json.dumps(payload)}")
        lines.append("")
    if done:
        lines.append("data: [DONE]")
        lines.append("")
    return "\n".join(lines) + "\n"


@pytest_asyncio.fixture
async def http_pool(client_config):
    """Real HttpConnection pool, closed after the test."""
    pool = ConnectionPool.for_http(client_config)
    yield pool
    await pool.close_all()
