"""
Unit tests for A2AClient against mocked HTTP.

Tests cover:
- Unary operations and their JSON-RPC params
- Error mapping from HTTP status codes and JSON-RPC error bodies
- Retry of transient failures through the default middleware stack
- Streaming over SSE, early close, dropped streams and single-body fallbacks
- Adding and removing middleware on a live client
- Event consumers, agent card fetches and performance statistics
"""

import asyncio
import gc
import json

import aiohttp
import pytest
import pytest_asyncio
from yarl import URL

from a2a_transport import A2AClient
from a2a_transport.auth import ApiKeyAuth
from a2a_transport.client.transport import EventStream
from a2a_transport.errors import (
    AuthenticationError, NoCompatibleTransport, ParseError, RateLimitExceeded,
    TaskNotFound, TransportError,
)
from a2a_transport.middleware import Middleware
from a2a_transport.types import AgentCard
from a2a_transport.utils.config import PoolConfig
from conftest import AGENT_URL, rpc_error, rpc_result, sse_body

CARD_URL = "http://agent.test/.well-known/agent-card.json"


def sent_requests(mock_http, method="POST", url=AGENT_URL):
    return mock_http.requests.get((method, URL(url)), [])


def sent_body(call):
    return json.loads(call.kwargs["data"])


class StalledResponse:
    """Streaming response whose body never delivers another chunk."""

    def __init__(self):
        self.content = self
        self.released = False
        self.closed = False

    def iter_any(self):
        return self

    def __aiter__(self):
        return self

    async def __anext__(self):
        await asyncio.Event().wait()

    def release(self):
        self.released = True

    def close(self):
        self.closed = True


@pytest_asyncio.fixture
async def client(client_config, http_pool):
    async with A2AClient(AGENT_URL, config=client_config, pool=http_pool) as a2a_client:
        yield a2a_client


@pytest_asyncio.fixture
async def streaming_client(client_config, http_pool):
    config = client_config.copy(streaming=True)
    async with A2AClient(AGENT_URL, config=config, pool=http_pool) as a2a_client:
        yield a2a_client


class TestUnaryOperations:
    """Test request/response operations."""

    @pytest.mark.asyncio
    async def test_get_task(self, client, mock_http):
        mock_http.post(AGENT_URL, payload=rpc_result({"id": "task-1", "status": {"state": "working"}}))

        task = await client.get_task("task-1", history_length=5)

        assert task["id"] == "task-1"
        body = sent_body(sent_requests(mock_http)[0])
        assert body["method"] == "tasks/get"
        assert body["params"] == {"id": "task-1", "historyLength": 5}
        assert body["jsonrpc"] == "2.0"

    @pytest.mark.asyncio
    async def test_send_message_params(self, client, mock_http):
        mock_http.post(AGENT_URL, payload=rpc_result({"kind": "task", "id": "t1"}))
        message = {"role": "user", "parts": [{"kind": "text", "text": "hi"}], "messageId": "m1"}

        await client.send_message(message, configuration={"blocking": True}, metadata={"k": "v"})

        body = sent_body(sent_requests(mock_http)[0])
        assert body["method"] == "message/send"
        assert body["params"] == {"message": message, "configuration": {"blocking": True},
                                  "metadata": {"k": "v"}}

    @pytest.mark.asyncio
    async def test_request_ids_unique(self, client, mock_http):
        mock_http.post(AGENT_URL, payload=rpc_result({}), repeat=True)

        await client.get_task("a")
        await client.cancel_task("a")

        ids = [sent_body(call)["id"] for call in sent_requests(mock_http)]
        assert len(set(ids)) == 2

    @pytest.mark.asyncio
    async def test_task_callbacks(self, client, mock_http):
        mock_http.post(AGENT_URL, payload=rpc_result({"taskId": "t1"}))
        mock_http.post(AGENT_URL, payload=rpc_result(None))

        await client.set_task_callback("t1", {"url": "http://hooks.test/cb"})
        callbacks = await client.list_task_callbacks("t1")

        calls = sent_requests(mock_http)
        assert sent_body(calls[0])["method"] == "tasks/pushNotificationConfig/set"
        assert sent_body(calls[0])["params"]["pushNotificationConfig"] == {"url": "http://hooks.test/cb"}
        assert sent_body(calls[1])["method"] == "tasks/pushNotificationConfig/list"
        assert callbacks == []

    @pytest.mark.asyncio
    async def test_default_headers_sent(self, client_config, http_pool, mock_http):
        config = client_config.copy(headers={"X-Tenant": "acme"})
        mock_http.post(AGENT_URL, payload=rpc_result({}))

        async with A2AClient(AGENT_URL, config=config, pool=http_pool) as a2a_client:
            await a2a_client.get_task("t1")

        headers = sent_requests(mock_http)[0].kwargs["headers"]
        assert headers["X-Tenant"] == "acme"
        assert headers["User-Agent"] == "a2a-transport/0.1.0"
        assert headers["Content-Type"] == "application/json"


class TestErrorMapping:
    """Test HTTP and JSON-RPC failures surface as typed errors."""

    @pytest.mark.asyncio
    async def test_json_rpc_error_body(self, client, mock_http):
        mock_http.post(AGENT_URL, payload=rpc_error(-32001, "Task not found"))

        with pytest.raises(TaskNotFound, match="Task not found"):
            await client.get_task("missing")

    @pytest.mark.asyncio
    async def test_401_is_authentication_error(self, client, mock_http):
        mock_http.post(AGENT_URL, status=401, body="unauthorized")

        with pytest.raises(AuthenticationError) as exc_info:
            await client.get_task("t1")

        assert exc_info.value.status_code == 401
        assert exc_info.value.response_body == "unauthorized"

    @pytest.mark.asyncio
    async def test_429_is_rate_limit_and_not_retried(self, client, mock_http):
        mock_http.post(AGENT_URL, status=429, repeat=True)

        with pytest.raises(RateLimitExceeded):
            await client.get_task("t1")

        assert len(sent_requests(mock_http)) == 1

    @pytest.mark.asyncio
    async def test_404_not_retried(self, client, mock_http):
        mock_http.post(AGENT_URL, status=404, repeat=True)

        with pytest.raises(TransportError) as exc_info:
            await client.get_task("t1")

        assert exc_info.value.status_code == 404
        assert len(sent_requests(mock_http)) == 1

    @pytest.mark.asyncio
    async def test_transient_failures_retried(self, client, mock_http):
        mock_http.post(AGENT_URL, status=503)
        mock_http.post(AGENT_URL, exception=aiohttp.ClientConnectionError("reset"))
        mock_http.post(AGENT_URL, payload=rpc_result({"id": "t1"}))
        context = {}

        task = await client.get_task("t1", context=context)

        assert task == {"id": "t1"}
        assert len(sent_requests(mock_http)) == 3
        assert context["retry_attempt"] == 3

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, client, mock_http):
        mock_http.post(AGENT_URL, status=500, repeat=True)

        with pytest.raises(TransportError):
            await client.get_task("t1")

        assert len(sent_requests(mock_http)) == 3

    @pytest.mark.asyncio
    async def test_malformed_body_is_parse_error(self, client, mock_http):
        mock_http.post(AGENT_URL, body="<html>oops</html>")

        with pytest.raises(ParseError) as exc_info:
            await client.get_task("t1")

        assert exc_info.value.code == -32700


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_api_key_applied(self, client_config, http_pool, mock_http):
        mock_http.post(AGENT_URL, payload=rpc_result({}))

        async with A2AClient(AGENT_URL, config=client_config, pool=http_pool,
                             auth=ApiKeyAuth("agent-key")) as a2a_client:
            await a2a_client.get_task("t1")

        assert sent_requests(mock_http)[0].kwargs["headers"]["X-API-Key"] == "agent-key"


class TestStreaming:
    """Test SSE streaming operations."""

    @pytest.mark.asyncio
    async def test_stream_yields_decoded_events(self, streaming_client, http_pool, mock_http):
        events = [
            rpc_result({"kind": "status-update", "status": {"state": "working"}}, "s1"),
            rpc_result({"kind": "status-update", "status": {"state": "completed"}, "final": True}, "s1"),
        ]
        mock_http.post(AGENT_URL, body=sse_body(*events), content_type="text/event-stream")

        stream = await streaming_client.send_message({"role": "user", "parts": []})
        received = [event async for event in stream]

        assert [e["status"]["state"] for e in received] == ["working", "completed"]
        assert sent_body(sent_requests(mock_http)[0])["method"] == "message/stream"
        assert sent_requests(mock_http)[0].kwargs["headers"]["Accept"] == "text/event-stream"
        stats = http_pool.stats()
        assert stats["checked_out"] == 0
        assert stats["available"] == 1

    @pytest.mark.asyncio
    async def test_stream_error_event_raises(self, streaming_client, mock_http):
        mock_http.post(AGENT_URL, body=sse_body(rpc_error(-32001, "gone", "s1")),
                       content_type="text/event-stream")

        stream = await streaming_client.resubscribe("t1")
        with pytest.raises(TaskNotFound):
            async for _ in stream:
                pass

        assert stream.closed

    @pytest.mark.asyncio
    async def test_early_close_discards_connection(self, streaming_client, http_pool, mock_http):
        events = [{"kind": "artifact-update", "n": n} for n in range(3)]
        mock_http.post(AGENT_URL, body=sse_body(*events, done=False), content_type="text/event-stream")

        async with await streaming_client.send_message_streaming({"role": "user", "parts": []}) as stream:
            first = await stream.__anext__()

        assert first["n"] == 0
        assert stream.closed
        stats = http_pool.stats()
        assert stats["created"] == 0
        assert stats["checked_out"] == 0

    @pytest.mark.asyncio
    async def test_dropped_stream_returns_its_slot(self, client_config, mock_http):
        config = client_config.copy(streaming=True, pool=PoolConfig(size=1, timeout=1.0))
        events = [{"kind": "artifact-update", "n": n} for n in range(3)]
        mock_http.post(AGENT_URL, body=sse_body(*events, done=False), content_type="text/event-stream")
        mock_http.post(AGENT_URL, payload=rpc_result({"id": "t1"}))

        async with A2AClient(AGENT_URL, config=config) as a2a_client:
            stream = await a2a_client.send_message_streaming({"role": "user", "parts": []})
            async for _ in stream:
                break
            assert a2a_client.pool.stats()["checked_out"] == 1

            del stream
            gc.collect()
            task = await a2a_client.get_task("t1")

            assert task == {"id": "t1"}
            assert a2a_client.pool.stats()["checked_out"] == 0

    @pytest.mark.asyncio
    async def test_cancelled_read_closes_stream(self, fake_pool):
        connection = await fake_pool.checkout()
        response = StalledResponse()
        stream = EventStream(response, connection, fake_pool)

        reader = asyncio.ensure_future(stream.__anext__())
        await asyncio.sleep(0)
        reader.cancel()
        with pytest.raises(asyncio.CancelledError):
            await reader

        assert stream.closed
        assert response.closed
        assert connection.closed
        stats = fake_pool.stats()
        assert stats["checked_out"] == 0
        assert stats["created"] == 0

    @pytest.mark.asyncio
    async def test_json_reply_to_stream_request(self, streaming_client, mock_http):
        mock_http.post(AGENT_URL, payload=rpc_result({"kind": "task", "id": "t1"}))

        stream = await streaming_client.send_message_streaming({"role": "user", "parts": []})
        received = [event async for event in stream]

        assert received == [{"kind": "task", "id": "t1"}]

    @pytest.mark.asyncio
    async def test_card_without_streaming_uses_message_send(self, agent_card_data, client_config,
                                                            http_pool, mock_http):
        agent_card_data["capabilities"]["streaming"] = False
        config = client_config.copy(streaming=True)
        mock_http.post(AGENT_URL, payload=rpc_result({"kind": "task", "id": "t1"}))

        async with A2AClient(agent_card_data, config=config, pool=http_pool) as a2a_client:
            result = await a2a_client.send_message({"role": "user", "parts": []})

        assert result["id"] == "t1"
        assert sent_body(sent_requests(mock_http)[0])["method"] == "message/send"


class TestConsumers:
    """Test event consumer notification."""

    @pytest.mark.asyncio
    async def test_consumers_see_every_event(self, streaming_client, mock_http):
        seen = []

        def broken(payload):
            raise RuntimeError("consumer bug")

        streaming_client.add_consumer(broken)
        streaming_client.add_consumer(seen.append)
        mock_http.post(AGENT_URL, body=sse_body({"n": 1}, {"n": 2}), content_type="text/event-stream")

        stream = await streaming_client.send_message({"role": "user", "parts": []})
        received = [event async for event in stream]

        assert seen == received == [{"n": 1}, {"n": 2}]

    def test_remove_consumer(self, client_config):
        consumer = print
        client = A2AClient(AGENT_URL, config=client_config, consumers=[consumer])

        client.remove_consumer(consumer)
        client.remove_consumer(consumer)

        assert client.consumers == []


class TraceHeader(Middleware):

    name = "trace_header"

    async def call(self, request, context, next_call):
        request.headers["X-Trace"] = "on"
        return await next_call(request, context)


class TestMiddlewareEditing:
    """Test changing the middleware of a live client."""

    @pytest.mark.asyncio
    async def test_added_middleware_runs_until_removed(self, client, mock_http):
        tracer = TraceHeader()
        mock_http.post(AGENT_URL, payload=rpc_result({}))
        mock_http.post(AGENT_URL, payload=rpc_result({}))

        client.add_middleware(tracer)
        await client.get_task("t1")
        client.remove_middleware(tracer)
        await client.get_task("t2")

        first, second = sent_requests(mock_http)
        assert first.kwargs["headers"]["X-Trace"] == "on"
        assert "X-Trace" not in second.kwargs["headers"]
        assert tracer not in client.middleware

    def test_added_middleware_is_innermost(self, client_config):
        client = A2AClient(AGENT_URL, config=client_config)
        tracer = TraceHeader()

        client.add_middleware(tracer)
        client.remove_middleware(TraceHeader())

        assert client.middleware[-1] is tracer

    def test_supports_polling(self, client_config):
        assert not A2AClient(AGENT_URL, config=client_config).supports_polling()
        assert A2AClient(AGENT_URL, config=client_config.copy(polling=True)).supports_polling()


class TestAgentCardAndNegotiation:

    @pytest.mark.asyncio
    async def test_get_card(self, client, agent_card_data, mock_http):
        mock_http.get(CARD_URL, payload=agent_card_data)

        card = await client.get_card()

        assert isinstance(card, AgentCard)
        assert card.name == "test-agent"

    @pytest.mark.asyncio
    async def test_get_authenticated_card(self, client, agent_card_data, mock_http):
        mock_http.post(AGENT_URL, payload=rpc_result(agent_card_data))

        card = await client.get_card(authenticated=True)

        assert card.url == AGENT_URL
        assert sent_body(sent_requests(mock_http)[0])["method"] == "agent/getAuthenticatedExtendedCard"

    def test_endpoint_from_card(self, agent_card, client_config):
        client = A2AClient(agent_card, config=client_config)

        assert client.endpoint_url == AGENT_URL
        assert client.negotiate().transport == "JSONRPC"

    def test_unimplemented_transport_rejected(self, client_config):
        config = client_config.copy(supported_transports=["GRPC", "JSONRPC"])
        card = {"url": "grpc://agent.test:50051", "preferredTransport": "GRPC"}
        client = A2AClient(card, config=config)

        with pytest.raises(NoCompatibleTransport):
            client.negotiate()


class TestPerformanceStats:

    @pytest.mark.asyncio
    async def test_stats_track_requests(self, client, mock_http):
        mock_http.post(AGENT_URL, payload=rpc_result({}))
        mock_http.post(AGENT_URL, status=404)

        await client.get_task("t1")
        with pytest.raises(TransportError):
            await client.get_task("t2")

        stats = client.performance_stats()
        assert stats["requests_count"] == 2
        assert stats["errors_count"] == 1
        assert stats["avg_response_time"] >= 0

        client.reset_performance_stats()
        assert client.performance_stats()["requests_count"] == 0
