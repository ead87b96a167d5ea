"""
A2A JSON-RPC client.

Every operation has the same shape:

1. The codec builds a JSON-RPC request with a fresh id.
2. The request is wrapped in an ``HttpRequest`` for the negotiated endpoint.
3. The middleware chain (logging, rate limit, circuit breaker, retry, auth)
   runs it; the terminal handler is the pooled ``HttpTransport``.
4. Unary calls decode the body into a result or a typed error. Streaming
   calls return an ``EventStream`` that decodes events as bytes arrive.

Usage:
    async with A2AClient(card, auth=JWTAuth(token=token)) as client:
        task = await client.get_task("task-1")
        async with await client.send_message_streaming(message) as events:
            async for event in events:
                ...
"""

import time
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import urlsplit, urlunsplit

from ..auth.base import AuthStrategy
from ..errors import NoCompatibleTransport, ParseError
from ..middleware import Middleware, build_chain, default_stack
from ..types import AgentCard, NegotiationResult, SseEvent
from ..utils.config import ClientConfig
from ..utils.config.constants import (
    IMPLEMENTED_TRANSPORTS, METHOD_AUTHENTICATED_CARD, METHOD_MESSAGE_SEND,
    METHOD_MESSAGE_STREAM, METHOD_PUSH_CONFIG_DELETE, METHOD_PUSH_CONFIG_GET,
    METHOD_PUSH_CONFIG_LIST, METHOD_PUSH_CONFIG_SET, METHOD_TASKS_CANCEL,
    METHOD_TASKS_GET, METHOD_TASKS_RESUBSCRIBE, TRANSPORT_JSONRPC,
)
from ..utils.logging import configure_logging, get_logger, log_operation
from .codec import JsonRpcCodec
from .connection_pool import ConnectionPool
from .negotiator import TransportNegotiator
from .performance import PerformanceTracker
from .transport import EventStream, HttpRequest, HttpTransport, TransportResponse

logger = get_logger("client")

EventConsumer = Callable[[Any], Any]


class A2AClient:
    """Client for one remote agent.

    ``target`` is either an ``AgentCard`` (the transport is negotiated from
    it) or a plain JSON-RPC endpoint URL.
    """

    def __init__(self, target: Union[AgentCard, Dict[str, Any], str],
                 config: Optional[ClientConfig] = None,
                 auth: Optional[AuthStrategy] = None,
                 middleware: Optional[List[Middleware]] = None,
                 pool: Optional[ConnectionPool] = None,
                 consumers: Optional[List[EventConsumer]] = None):
        self.config = config or ClientConfig()
        configure_logging(self.config.logging)

        if isinstance(target, dict):
            target = AgentCard.from_dict(target)
        self.card: Optional[AgentCard] = target if isinstance(target, AgentCard) else None
        self._endpoint_url: Optional[str] = None if self.card else target

        self.auth = auth
        self.codec = JsonRpcCodec()
        self.negotiator = TransportNegotiator(self.config)
        self.performance = PerformanceTracker()
        self.pool = pool or ConnectionPool.for_http(self.config)
        self.transport = HttpTransport.from_config(self.pool, self.config)
        self.consumers: List[EventConsumer] = list(consumers or [])

        if middleware is None:
            middleware = default_stack(self.config, auth=auth, tracker=self.performance)
        self.middleware = list(middleware)
        self._chain = build_chain(self.middleware, self.transport)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        await self.pool.close_all()

    # ------------------------------------------------------------------
    # Negotiation
    # ------------------------------------------------------------------

    def negotiate(self) -> NegotiationResult:
        """Transport and endpoint for this client's target (cached)."""
        if self.card is None:
            return NegotiationResult(transport=TRANSPORT_JSONRPC, endpoint_url=self._endpoint_url)

        result = self.negotiator.negotiate(self.card)
        if result.transport not in IMPLEMENTED_TRANSPORTS:
            raise NoCompatibleTransport(
                f"Negotiated transport {result.transport} is not available in this client"
            )
        return result

    @property
    def endpoint_url(self) -> str:
        return self.negotiate().endpoint_url

    def supports_streaming(self) -> bool:
        if not self.config.streaming:
            return False
        return self.card is None or self.card.capabilities.streaming

    def supports_polling(self) -> bool:
        return self.config.polling

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def send_message(self, message: Dict[str, Any], configuration: Optional[Dict[str, Any]] = None,
                           metadata: Optional[Dict[str, Any]] = None,
                           context: Optional[Dict[str, Any]] = None) -> Any:
        """``message/send``, or a ``message/stream`` EventStream when streaming is enabled."""
        params = _message_params(message, configuration, metadata)
        if self.supports_streaming():
            return await self._stream(METHOD_MESSAGE_STREAM, params, context)
        return await self._call(METHOD_MESSAGE_SEND, params, context)

    async def send_message_streaming(self, message: Dict[str, Any],
                                     configuration: Optional[Dict[str, Any]] = None,
                                     metadata: Optional[Dict[str, Any]] = None,
                                     context: Optional[Dict[str, Any]] = None) -> EventStream:
        return await self._stream(METHOD_MESSAGE_STREAM,
                                  _message_params(message, configuration, metadata), context)

    async def get_task(self, task_id: str, history_length: Optional[int] = None,
                       context: Optional[Dict[str, Any]] = None) -> Any:
        params: Dict[str, Any] = {"id": task_id}
        if history_length is not None:
            params["historyLength"] = history_length
        return await self._call(METHOD_TASKS_GET, params, context)

    async def cancel_task(self, task_id: str, context: Optional[Dict[str, Any]] = None) -> Any:
        return await self._call(METHOD_TASKS_CANCEL, {"id": task_id}, context)

    async def resubscribe(self, task_id: str, context: Optional[Dict[str, Any]] = None) -> EventStream:
        return await self._stream(METHOD_TASKS_RESUBSCRIBE, {"id": task_id}, context)

    async def set_task_callback(self, task_id: str, push_notification_config: Dict[str, Any],
                                context: Optional[Dict[str, Any]] = None) -> Any:
        params = {"taskId": task_id, "pushNotificationConfig": push_notification_config}
        return await self._call(METHOD_PUSH_CONFIG_SET, params, context)

    async def get_task_callback(self, task_id: str, push_notification_config_id: str,
                                context: Optional[Dict[str, Any]] = None) -> Any:
        params = {"taskId": task_id, "pushNotificationConfigId": push_notification_config_id}
        return await self._call(METHOD_PUSH_CONFIG_GET, params, context)

    async def list_task_callbacks(self, task_id: str,
                                  context: Optional[Dict[str, Any]] = None) -> List[Any]:
        result = await self._call(METHOD_PUSH_CONFIG_LIST, {"taskId": task_id}, context)
        return result or []

    async def delete_task_callback(self, task_id: str, push_notification_config_id: str,
                                   context: Optional[Dict[str, Any]] = None) -> Any:
        params = {"taskId": task_id, "pushNotificationConfigId": push_notification_config_id}
        return await self._call(METHOD_PUSH_CONFIG_DELETE, params, context)

    async def get_card(self, authenticated: bool = False,
                       context: Optional[Dict[str, Any]] = None) -> AgentCard:
        """Fetch the agent card.

        Plain fetches GET ``agent_card_path`` on the endpoint's origin; the
        authenticated variant calls ``agent/getAuthenticatedExtendedCard``.
        """
        if authenticated:
            result = await self._call(METHOD_AUTHENTICATED_CARD, {}, context)
            return AgentCard.from_dict(result)

        request = HttpRequest(
            url=self._card_url(),
            method="GET",
            headers=self._base_headers(),
        )
        response = await self._execute(request, context)
        payload = response.payload
        if not isinstance(payload, dict):
            raise ParseError("Agent card response is not a JSON object", data=response.text)
        return AgentCard.from_dict(payload)

    # ------------------------------------------------------------------
    # Middleware, event consumers and statistics
    # ------------------------------------------------------------------

    def add_middleware(self, middleware: Middleware):
        """Append ``middleware`` innermost, just above the transport."""
        self.middleware.append(middleware)
        self._chain = build_chain(self.middleware, self.transport)

    def remove_middleware(self, middleware: Middleware):
        if middleware in self.middleware:
            self.middleware.remove(middleware)
            self._chain = build_chain(self.middleware, self.transport)

    def add_consumer(self, consumer: EventConsumer):
        self.consumers.append(consumer)

    def remove_consumer(self, consumer: EventConsumer):
        if consumer in self.consumers:
            self.consumers.remove(consumer)

    def performance_stats(self) -> Dict[str, Any]:
        return self.performance.stats()

    def reset_performance_stats(self):
        self.performance.reset()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _call(self, method: str, params: Any, context: Optional[Dict[str, Any]]) -> Any:
        rpc_request = self.codec.build_request(method, params)
        request = self._http_request(rpc_request, streaming=False)
        response = await self._execute(request, context)
        return self.codec.parse_response(response.text)

    async def _stream(self, method: str, params: Any, context: Optional[Dict[str, Any]]) -> EventStream:
        rpc_request = self.codec.build_request(method, params, streaming=True)
        request = self._http_request(rpc_request, streaming=True)
        response = await self._execute(request, context)

        if response.stream is None:
            # The agent answered with a single JSON body instead of a stream
            result = self.codec.parse_response(response.text)
            return _SingleEventStream(self._notify(result))
        return response.stream.with_transform(self._decode_event)

    async def _execute(self, request: HttpRequest, context: Optional[Dict[str, Any]]) -> TransportResponse:
        context = context if context is not None else {}
        context.setdefault("endpoint_url", request.url)
        operation = (request.rpc_method or "get_card").replace("/", "_")
        start = time.monotonic()
        try:
            with log_operation("client", operation, endpoint_url=request.url) as correlation_id:
                context.setdefault("correlation_id", correlation_id)
                return await self._chain(request, context)
        finally:
            context["duration"] = time.monotonic() - start

    def _http_request(self, rpc_request, streaming: bool) -> HttpRequest:
        return HttpRequest(
            url=self.endpoint_url,
            method="POST",
            headers=self._base_headers(),
            body=self.codec.encode(rpc_request),
            streaming=streaming,
            rpc_method=rpc_request.method,
            rpc_id=rpc_request.id,
        )

    def _base_headers(self) -> Dict[str, str]:
        headers = {"User-Agent": self.config.user_agent}
        headers.update(self.config.headers)
        return headers

    def _card_url(self) -> str:
        parts = urlsplit(self.endpoint_url)
        return urlunsplit((parts.scheme, parts.netloc, self.config.agent_card_path, "", ""))

    def _decode_event(self, event: SseEvent) -> Any:
        return self._notify(self.codec.decode_event(event))

    def _notify(self, payload: Any) -> Any:
        for consumer in self.consumers:
            try:
                consumer(payload)
            except Exception as e:
                logger.error("event_consumer_error",
                             consumer=getattr(consumer, "__name__", repr(consumer)),
                             error=str(e),
                             error_type=type(e).__name__)
        return payload


class _SingleEventStream:
    """Stream facade over a result that arrived as one JSON body."""

    def __init__(self, payload: Any):
        self._payload = payload
        self._consumed = False
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        if self._consumed or self.closed:
            raise StopAsyncIteration
        self._consumed = True
        return self._payload

    async def aclose(self):
        self.closed = True

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()


def _message_params(message: Dict[str, Any], configuration: Optional[Dict[str, Any]],
                    metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    params: Dict[str, Any] = {"message": message}
    if configuration is not None:
        params["configuration"] = configuration
    if metadata is not None:
        params["metadata"] = metadata
    return params
