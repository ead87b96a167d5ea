"""HTTP transport: the terminal handler of the middleware chain.

``HttpTransport.send`` checks a connection out of the pool, performs one HTTP
exchange and maps HTTP-level failures onto the error taxonomy. JSON-RPC
errors inside a 2xx body are left for the client to decode, so middleware
sees them as ordinary responses.

Streaming requests return a ``TransportResponse`` whose ``stream`` owns the
checked-out connection until the stream finishes or is closed.
"""

import asyncio
import inspect
import json
from collections import deque
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Deque, Dict, Optional

import aiohttp

from ..errors import (
    A2AException, AuthenticationError, AuthorizationFailed, RateLimitExceeded,
    RequestTimeoutError, TransportError,
)
from ..types import SseEvent
from ..utils.config.constants import CONTENT_TYPE_EVENT_STREAM, CONTENT_TYPE_JSON
from ..utils.logging import get_logger
from .sse import SseParser

logger = get_logger("transport")

_NO_PAYLOAD = object()


@dataclass
class HttpRequest:
    """A request as seen by middleware. Auth strategies mutate headers/params."""
    url: str
    method: str = "POST"
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None
    streaming: bool = False
    rpc_method: Optional[str] = None
    rpc_id: Any = None

    def copy(self) -> "HttpRequest":
        return replace(self, headers=dict(self.headers), params=dict(self.params))


@dataclass
class TransportResponse:
    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    text: Optional[str] = None
    stream: Optional["EventStream"] = None
    _payload: Any = field(default=_NO_PAYLOAD, repr=False, compare=False)

    @property
    def is_stream(self) -> bool:
        return self.stream is not None

    @property
    def payload(self) -> Any:
        """Body parsed as JSON, or None for streams and non-JSON bodies."""
        if self._payload is _NO_PAYLOAD:
            try:
                self._payload = json.loads(self.text) if self.text else None
            except ValueError:
                self._payload = None
        return self._payload

    @property
    def rpc_error_code(self) -> Optional[int]:
        payload = self.payload
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            return payload["error"].get("code")
        return None


class EventStream:
    """Async iterator over the events of one SSE response.

    Finishing normally (end of body or ``[DONE]``) returns the connection to
    the pool. ``aclose()`` before that closes the connection, and the pool
    discards it on checkin. A stream dropped unfinished is closed the same
    way once it is garbage collected.
    """

    def __init__(self, response, connection, pool, read_timeout: Optional[float] = None,
                 transform: Optional[Callable[[SseEvent], Any]] = None):
        self._response = response
        self._connection = connection
        self._pool = pool
        self._read_timeout = read_timeout
        self._transform = transform
        self._parser = SseParser()
        self._chunks = response.content.iter_any()
        self._pending: Deque[SseEvent] = deque()
        self._released = False
        self._loop = asyncio.get_running_loop()

    def __del__(self):
        if getattr(self, "_released", True) or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._loop.create_task, self.aclose())

    @property
    def closed(self) -> bool:
        return self._released

    def with_transform(self, transform: Callable[[SseEvent], Any]) -> "EventStream":
        self._transform = transform
        return self

    def __aiter__(self):
        return self

    async def __anext__(self) -> Any:
        while not self._pending:
            if self._released:
                raise StopAsyncIteration
            await self._read_more()

        event = self._pending.popleft()
        if self._transform is None:
            return event
        try:
            return self._transform(event)
        except Exception:
            await self.aclose()
            raise

    async def _read_more(self):
        try:
            if self._read_timeout is None:
                chunk = await self._chunks.__anext__()
            else:
                chunk = await asyncio.wait_for(self._chunks.__anext__(), self._read_timeout)
        except StopAsyncIteration:
            self._pending.extend(self._parser.flush())
            await self._finish()
            return
        except asyncio.TimeoutError as e:
            await self.aclose()
            raise RequestTimeoutError("Timed out reading event stream") from e
        except aiohttp.ClientError as e:
            await self.aclose()
            raise TransportError(f"Event stream failed: {e}") from e
        except BaseException:
            await self.aclose()
            raise

        self._pending.extend(self._parser.feed(chunk))
        if self._parser.done:
            await self._finish()

    async def _finish(self):
        if self._released:
            return
        self._released = True
        self._response.release()
        await self._pool.checkin(self._connection)
        logger.debug("stream_finished")

    async def aclose(self):
        """Stop reading; the connection is closed rather than reused."""
        if self._released:
            return
        self._released = True
        self._pending.clear()
        self._response.close()
        result = self._connection.close()
        if inspect.isawaitable(result):
            await result
        await self._pool.checkin(self._connection)
        logger.debug("stream_closed_early")

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()


class HttpTransport:
    """Sends HttpRequests over pooled connections."""

    def __init__(self, pool, timeout: Optional[float] = None,
                 connect_timeout: Optional[float] = None,
                 stream_read_timeout: Optional[float] = None):
        self.pool = pool
        self.timeout = aiohttp.ClientTimeout(total=timeout, connect=connect_timeout)
        # Streams stay open as long as events keep coming
        self.stream_timeout = aiohttp.ClientTimeout(total=None, connect=connect_timeout)
        self.stream_read_timeout = stream_read_timeout

    @classmethod
    def from_config(cls, pool, config) -> "HttpTransport":
        return cls(pool, timeout=config.timeout, connect_timeout=config.connect_timeout,
                   stream_read_timeout=config.stream_read_timeout)

    async def __call__(self, request: HttpRequest, context: Dict[str, Any]) -> TransportResponse:
        return await self.send(request)

    async def send(self, request: HttpRequest) -> TransportResponse:
        headers = dict(request.headers)
        if request.body is not None:
            headers.setdefault("Content-Type", CONTENT_TYPE_JSON)
        if request.streaming:
            headers["Accept"] = CONTENT_TYPE_EVENT_STREAM
            return await self._send_streaming(request, headers)
        headers.setdefault("Accept", CONTENT_TYPE_JSON)

        connection = await self.pool.checkout()
        try:
            async with connection.request(
                request.method,
                request.url,
                data=request.body,
                headers=headers,
                params=request.params or None,
                timeout=self.timeout,
            ) as resp:
                text = await resp.text()
                response = TransportResponse(status=resp.status, headers=dict(resp.headers), text=text)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(f"Request to {request.url} timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Request to {request.url} failed: {e}") from e
        finally:
            await self.pool.checkin(connection)

        raise_for_status(response)
        return response

    async def _send_streaming(self, request: HttpRequest, headers: Dict[str, str]) -> TransportResponse:
        connection = await self.pool.checkout()
        try:
            resp = await connection.request(
                request.method,
                request.url,
                data=request.body,
                headers=headers,
                params=request.params or None,
                timeout=self.stream_timeout,
            )
        except asyncio.TimeoutError as e:
            await self.pool.checkin(connection)
            raise RequestTimeoutError(f"Stream request to {request.url} timed out") from e
        except aiohttp.ClientError as e:
            await self.pool.checkin(connection)
            raise TransportError(f"Stream request to {request.url} failed: {e}") from e

        content_type = resp.headers.get("Content-Type", "")
        if resp.status >= 300 or not content_type.startswith(CONTENT_TYPE_EVENT_STREAM):
            # Errors and plain JSON replies are read whole, like unary responses
            try:
                text = await resp.text()
            except aiohttp.ClientError as e:
                raise TransportError(f"Reading response from {request.url} failed: {e}") from e
            finally:
                resp.release()
                await self.pool.checkin(connection)
            response = TransportResponse(status=resp.status, headers=dict(resp.headers), text=text)
            raise_for_status(response)
            return response

        stream = EventStream(resp, connection, self.pool, read_timeout=self.stream_read_timeout)
        return TransportResponse(status=resp.status, headers=dict(resp.headers), stream=stream)


_STATUS_ERRORS = {
    401: AuthenticationError,
    403: AuthorizationFailed,
    408: RequestTimeoutError,
    429: RateLimitExceeded,
}


def raise_for_status(response: TransportResponse):
    """Map a non-2xx response onto the error taxonomy."""
    if 200 <= response.status < 300:
        return
    error_class = _STATUS_ERRORS.get(response.status, TransportError)
    message = f"HTTP request failed: {response.status}"
    error: A2AException = error_class(message, status_code=response.status,
                                      response_body=response.text)
    raise error
