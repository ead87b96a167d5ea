"""
Unit tests for the middleware chain.

Tests cover:
- Chain composition order
- Retry backoff schedule, transient classification, exhaustion
- Token bucket rate limiting (blocking and non-blocking)
- Logging middleware header masking and performance tracking
- Building middleware from configuration
"""

import json
import logging

import pytest

from a2a_transport.auth import AuthInterceptor, BearerTokenAuth
from a2a_transport.client.performance import PerformanceTracker
from a2a_transport.client.transport import HttpRequest, TransportResponse
from a2a_transport.errors import (
    CircuitOpenError, ConfigurationError, InvalidParams, RateLimitExceeded,
    RequestTimeoutError, TaskNotFound, TransportError,
)
from a2a_transport.middleware import (
    CircuitBreakerMiddleware, LoggingMiddleware, Middleware, RateLimitMiddleware,
    RetryMiddleware, build_chain, default_stack, from_config, is_transient, mask_headers,
)
from a2a_transport.utils.config import ClientConfig, RateLimitConfig, RetryConfig
from conftest import RecordingSleep


class Recorder(Middleware):
    """Appends its label on the way in and out."""

    def __init__(self, label, trail):
        self.label = label
        self.trail = trail

    async def call(self, request, context, next_call):
        self.trail.append(f"{self.label}-in")
        response = await next_call(request, context)
        self.trail.append(f"{self.label}-out")
        return response


class FlakyTerminal:
    """Raises the given errors in order, then succeeds."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self, request, context):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return TransportResponse(status=200, text='{"jsonrpc": "2.0", "id": 1, "result": "ok"}')


def make_request(**kwargs):
    return HttpRequest(url="http://agent.test/a2a", rpc_method="tasks/get", rpc_id=1, **kwargs)


class TestChainComposition:

    @pytest.mark.asyncio
    async def test_first_middleware_is_outermost(self):
        trail = []

        async def terminal(request, context):
            trail.append("terminal")
            return "response"

        chain = build_chain([Recorder("a", trail), Recorder("b", trail)], terminal)

        assert await chain(make_request(), {}) == "response"
        assert trail == ["a-in", "b-in", "terminal", "b-out", "a-out"]

    @pytest.mark.asyncio
    async def test_empty_chain_is_terminal(self):
        async def terminal(request, context):
            return "direct"

        assert await build_chain([], terminal)(make_request(), {}) == "direct"


class TestRetryMiddleware:
    """Test retry with exponential backoff."""

    @pytest.fixture
    def retry(self, recording_sleep):
        config = RetryConfig(max_attempts=4, initial_delay=1.0, max_delay=60.0, backoff_multiplier=2.0)
        return RetryMiddleware(config, sleep=recording_sleep)

    def test_delay_schedule_doubles(self, retry):
        assert retry.delays() == [1.0, 2.0, 4.0]

    def test_delay_capped_at_max(self):
        retry = RetryMiddleware(RetryConfig(max_attempts=10, initial_delay=1.0, max_delay=5.0))

        assert retry.delays(6) == [1.0, 2.0, 4.0, 5.0, 5.0, 5.0]

    def test_jitter_stays_within_bounds(self):
        retry = RetryMiddleware(RetryConfig(initial_delay=1.0, max_delay=60.0, jitter=True))

        for _ in range(50):
            assert 2.0 <= retry.delay_for(2) <= 2.2

    @pytest.mark.parametrize("error,expected", [
        (RequestTimeoutError(), True),
        (TransportError("reset"), True),
        (TransportError("bad gateway", status_code=502), True),
        (TransportError("timeout", status_code=408), True),
        (TransportError("not found", status_code=404), False),
        (RateLimitExceeded(), False),
        (TaskNotFound(), False),
        (CircuitOpenError(), False),
        (ValueError("bug"), False),
    ])
    def test_is_transient(self, error, expected):
        assert is_transient(error) is expected

    @pytest.mark.asyncio
    async def test_transient_errors_retried_until_success(self, retry, recording_sleep):
        terminal = FlakyTerminal(TransportError(status_code=503), RequestTimeoutError())
        context = {}

        response = await build_chain([retry], terminal)(make_request(), context)

        assert response.status == 200
        assert terminal.calls == 3
        assert recording_sleep.delays == [1.0, 2.0]
        assert context["retry_attempt"] == 3
        assert context["retry_delay"] == 2.0

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_last_error(self, retry, recording_sleep):
        errors = [TransportError(f"attempt {n}", status_code=500) for n in range(1, 5)]
        terminal = FlakyTerminal(*errors)

        with pytest.raises(TransportError, match="attempt 4"):
            await build_chain([retry], terminal)(make_request(), {})

        assert terminal.calls == 4
        assert recording_sleep.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_non_transient_error_not_retried(self, retry, recording_sleep):
        terminal = FlakyTerminal(InvalidParams("bad params"))

        with pytest.raises(InvalidParams):
            await build_chain([retry], terminal)(make_request(), {})

        assert terminal.calls == 1
        assert recording_sleep.delays == []

    @pytest.mark.asyncio
    async def test_custom_retryable_errors(self, recording_sleep):
        retry = RetryMiddleware(RetryConfig(max_attempts=2, initial_delay=0.5),
                                retryable_errors=(TaskNotFound,), sleep=recording_sleep)
        terminal = FlakyTerminal(TaskNotFound())

        response = await build_chain([retry], terminal)(make_request(), {})

        assert response.status == 200
        assert recording_sleep.delays == [0.5]

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self, recording_sleep):
        retry = RetryMiddleware(RetryConfig(max_attempts=1), sleep=recording_sleep)
        terminal = FlakyTerminal(TransportError())

        with pytest.raises(TransportError):
            await build_chain([retry], terminal)(make_request(), {})

        assert recording_sleep.delays == []


class TestRateLimitMiddleware:
    """Test token bucket behaviour with a fake clock."""

    @pytest.mark.asyncio
    async def test_non_blocking_raises_when_empty(self, fake_clock):
        limiter = RateLimitMiddleware(RateLimitConfig(requests_per_second=2, burst_size=2, block=False),
                                      clock=fake_clock)

        await limiter.acquire()
        await limiter.acquire()
        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.acquire()

        assert exc_info.value.data["retry_after"] == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_tokens_refill_over_time(self, fake_clock):
        limiter = RateLimitMiddleware(RateLimitConfig(requests_per_second=2, burst_size=2, block=False),
                                      clock=fake_clock)
        await limiter.acquire()
        await limiter.acquire()
        assert not limiter.can_make_request()

        fake_clock.advance(0.5)

        assert limiter.can_make_request()
        await limiter.acquire()

    @pytest.mark.asyncio
    async def test_blocking_waits_for_token(self, fake_clock):
        sleep = RecordingSleep(fake_clock)
        limiter = RateLimitMiddleware(RateLimitConfig(requests_per_second=4, burst_size=4),
                                      clock=fake_clock, sleep=sleep)
        terminal = FlakyTerminal()
        chain = build_chain([limiter], terminal)

        for _ in range(5):
            await chain(make_request(), {})

        assert terminal.calls == 5
        assert sleep.delays == [pytest.approx(0.25)]

    def test_bucket_never_exceeds_burst(self, fake_clock):
        limiter = RateLimitMiddleware(RateLimitConfig(requests_per_second=10, burst_size=3),
                                      clock=fake_clock)

        fake_clock.advance(100)

        assert limiter.tokens == 3.0
        assert limiter.status()["tokens_full"] is True

    @pytest.mark.asyncio
    async def test_reset_refills_bucket(self, fake_clock):
        limiter = RateLimitMiddleware(RateLimitConfig(requests_per_second=1, burst_size=1, block=False),
                                      clock=fake_clock)
        await limiter.acquire()

        limiter.reset()

        assert limiter.time_until_next_token() == 0.0


class TestLoggingMiddleware:
    """Test request logging, masking and tracking."""

    def test_mask_headers(self):
        masked = mask_headers({
            "Authorization": "Bearer secret",
            "x-api-key": "k",
            "Cookie": "a=b",
            "Content-Type": "application/json",
        })

        assert masked["Authorization"] == "[REDACTED]"
        assert masked["x-api-key"] == "[REDACTED]"
        assert masked["Cookie"] == "[REDACTED]"
        assert masked["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_logged_request_has_masked_headers(self, caplog):
        middleware = LoggingMiddleware()
        request = make_request(headers={"Authorization": "Bearer secret-token"})

        with caplog.at_level(logging.INFO, logger="a2a_transport"):
            await build_chain([middleware], FlakyTerminal())(request, {})

        entries = [json.loads(r.getMessage()) for r in caplog.records]
        request_entry = next(e for e in entries if e["message"] == "a2a_request")
        assert request_entry["headers"]["Authorization"] == "[REDACTED]"
        assert "secret-token" not in caplog.text
        assert any(e["message"] == "a2a_response" for e in entries)

    @pytest.mark.asyncio
    async def test_error_logged_and_reraised(self, caplog):
        middleware = LoggingMiddleware()

        with caplog.at_level(logging.INFO, logger="a2a_transport"):
            with pytest.raises(TransportError):
                await build_chain([middleware], FlakyTerminal(TransportError(status_code=502)))(make_request(), {})

        entries = [json.loads(r.getMessage()) for r in caplog.records]
        error_entry = next(e for e in entries if e["message"] == "a2a_error")
        assert error_entry["status_code"] == 502
        assert error_entry["error_type"] == "TransportError"

    @pytest.mark.asyncio
    async def test_tracker_counts_errors(self):
        tracker = PerformanceTracker()
        chain = build_chain([LoggingMiddleware(tracker=tracker)], FlakyTerminal(TransportError()))

        with pytest.raises(TransportError):
            await chain(make_request(), {})
        await chain(make_request(), {})

        stats = tracker.stats()
        assert stats["requests_count"] == 2
        assert stats["errors_count"] == 1

    @pytest.mark.asyncio
    async def test_request_id_set_in_context(self):
        context = {}

        await build_chain([LoggingMiddleware()], FlakyTerminal())(make_request(), context)

        assert len(context["request_id"]) == 16


class TestMiddlewareFactories:
    """Test building middleware from configuration."""

    def test_retry_from_config(self):
        middleware = from_config({"type": "retry", "max_attempts": 5, "initial_delay": 0.5})

        assert isinstance(middleware, RetryMiddleware)
        assert middleware.config.max_attempts == 5

    def test_circuit_breaker_timeout_alias(self):
        middleware = from_config({"type": "circuit_breaker", "failure_threshold": 2, "timeout": 15})

        assert isinstance(middleware, CircuitBreakerMiddleware)
        assert middleware.config.recovery_timeout == 15

    def test_rate_limit_from_config(self):
        middleware = from_config({"type": "rate_limit", "requests_per_second": 1, "burst_size": 1})

        assert isinstance(middleware, RateLimitMiddleware)

    def test_invalid_values_rejected(self):
        with pytest.raises(ConfigurationError):
            from_config({"type": "retry", "max_attempts": 0})

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError):
            from_config({"type": "compression"})

    def test_default_stack_order(self):
        stack = default_stack(ClientConfig(rate_limit=RateLimitConfig()), auth=BearerTokenAuth("t"))

        assert [type(m) for m in stack] == [
            LoggingMiddleware, RateLimitMiddleware, CircuitBreakerMiddleware,
            RetryMiddleware, AuthInterceptor,
        ]

    def test_default_stack_minimal(self):
        config = ClientConfig()
        config.logging.enabled = False

        stack = default_stack(config)

        assert [type(m) for m in stack] == [CircuitBreakerMiddleware, RetryMiddleware]

    def test_default_stack_honours_auth_auto_retry(self):
        stack = default_stack(ClientConfig(auth_auto_retry=False), auth=BearerTokenAuth("t"))

        assert stack[-1].auto_retry is False
