"""Bounded pool of reusable HTTP connections.

Connections are created lazily up to ``size``. A caller that finds the pool
exhausted waits for a checkin, up to ``timeout`` seconds, then gets
``PoolTimeout``. Invariant, checked under the pool's condition lock:

    available + checked_out == created <= size

Connections are validated on checkin and on checkout. A connection that is
closed, lacks a request interface, or has lived longer than
``10 * idle_timeout`` is closed and forgotten, freeing a slot for a fresh one.
Idle connections are evicted opportunistically during checkout (at most once
per cleanup interval); there is no background task.
"""

import asyncio
import inspect
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiohttp

from ..errors import PoolTimeout
from ..utils.config.constants import (
    DEFAULT_IDLE_TIMEOUT, DEFAULT_POOL_SIZE, DEFAULT_POOL_TIMEOUT,
    POOL_CLEANUP_INTERVAL, POOL_MAX_AGE_FACTOR,
)
from ..utils.logging import get_logger

logger = get_logger("pool")


class HttpConnection:
    """One aiohttp session restricted to a single underlying TCP connection."""

    def __init__(self, timeout: Optional[aiohttp.ClientTimeout] = None,
                 headers: Optional[Dict[str, str]] = None):
        connector = aiohttp.TCPConnector(
            limit=1,
            ttl_dns_cache=300,
            enable_cleanup_closed=True,
        )
        self.session = aiohttp.ClientSession(connector=connector, timeout=timeout, headers=headers)

    def request(self, method: str, url: str, **kwargs):
        return self.session.request(method, url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.session.post(url, **kwargs)

    def get(self, url: str, **kwargs):
        return self.session.get(url, **kwargs)

    @property
    def closed(self) -> bool:
        return self.session.closed

    async def close(self):
        if not self.session.closed:
            await self.session.close()


@dataclass
class PoolEntry:
    connection: Any
    created_at: float
    last_used_at: float


class ConnectionPool:
    """Async connection pool over an arbitrary connection factory."""

    def __init__(self, factory: Callable[[], Any], size: int = DEFAULT_POOL_SIZE,
                 timeout: float = DEFAULT_POOL_TIMEOUT,
                 idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
                 clock: Callable[[], float] = time.monotonic):
        self.factory = factory
        self.size = size
        self.timeout = timeout
        self.idle_timeout = idle_timeout
        self._clock = clock

        self._available: List[PoolEntry] = []
        self._checked_out: Dict[int, PoolEntry] = {}
        self._created = 0
        self._cond = asyncio.Condition()
        self._last_cleanup = clock()

    @classmethod
    def for_http(cls, config) -> "ConnectionPool":
        """Pool of HttpConnection objects sized and timed from a ClientConfig."""
        timeout = aiohttp.ClientTimeout(total=config.timeout, connect=config.connect_timeout)
        headers = {"User-Agent": config.user_agent}

        def factory():
            return HttpConnection(timeout=timeout, headers=headers)

        return cls(
            factory,
            size=config.pool.size,
            timeout=config.pool.timeout,
            idle_timeout=config.pool.idle_timeout,
        )

    @property
    def created(self) -> int:
        return self._created

    async def checkout(self) -> Any:
        """Get a connection, waiting up to ``timeout`` seconds for one."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        async with self._cond:
            if self._clock() - self._last_cleanup >= POOL_CLEANUP_INTERVAL:
                await self._cleanup_idle_locked()

            while True:
                entry = await self._take_available_locked()
                if entry is not None:
                    break

                if self._created < self.size:
                    entry = self._create_locked()
                    break

                remaining = deadline - loop.time()
                if remaining <= 0:
                    self._raise_timeout()
                try:
                    await asyncio.wait_for(self._cond.wait(), remaining)
                except asyncio.TimeoutError:
                    self._raise_timeout()

            entry.last_used_at = self._clock()
            self._checked_out[id(entry.connection)] = entry
            return entry.connection

    async def checkin(self, connection: Any):
        """Return a connection; invalid ones are closed and their slot freed."""
        async with self._cond:
            entry = self._checked_out.pop(id(connection), None)
            if entry is None:
                logger.warning("pool_checkin_unknown_connection")
                return

            if self._is_valid(entry):
                entry.last_used_at = self._clock()
                self._available.append(entry)
            else:
                await self._discard_locked(entry, reason="invalid_on_checkin")
            self._cond.notify()

    @asynccontextmanager
    async def connection(self):
        """Scoped checkout; the connection is checked in on every exit path."""
        conn = await self.checkout()
        try:
            yield conn
        finally:
            await self.checkin(conn)

    async def with_connection(self, fn: Callable[[Any], Awaitable[Any]]) -> Any:
        async with self.connection() as conn:
            return await fn(conn)

    async def cleanup_idle(self) -> int:
        """Close available connections idle longer than ``idle_timeout``."""
        async with self._cond:
            return await self._cleanup_idle_locked()

    def stats(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "created": self._created,
            "available": len(self._available),
            "checked_out": len(self._checked_out),
            "idle_timeout": self.idle_timeout,
            "timeout": self.timeout,
        }

    async def close_all(self):
        """Close every connection, including checked-out ones, and reset counters."""
        async with self._cond:
            entries = self._available + list(self._checked_out.values())
            self._available = []
            self._checked_out = {}
            self._created = 0
            for entry in entries:
                await self._close_connection(entry.connection)
            self._cond.notify_all()
        logger.info("pool_closed", closed_connections=len(entries))

    # ------------------------------------------------------------------
    # Internals; callers hold self._cond
    # ------------------------------------------------------------------

    def _create_locked(self) -> PoolEntry:
        connection = self.factory()
        self._created += 1
        now = self._clock()
        logger.debug("pool_connection_created", created=self._created, size=self.size)
        return PoolEntry(connection=connection, created_at=now, last_used_at=now)

    async def _take_available_locked(self) -> Optional[PoolEntry]:
        while self._available:
            entry = self._available.pop()
            if self._is_valid(entry):
                return entry
            await self._discard_locked(entry, reason="invalid_on_checkout")
        return None

    async def _cleanup_idle_locked(self) -> int:
        now = self._clock()
        self._last_cleanup = now
        keep = []
        evicted = 0
        for entry in self._available:
            if now - entry.last_used_at > self.idle_timeout:
                await self._discard_locked(entry, reason="idle")
                evicted += 1
            else:
                keep.append(entry)
        self._available = keep
        if evicted:
            self._cond.notify(evicted)
        return evicted

    async def _discard_locked(self, entry: PoolEntry, reason: str):
        self._created -= 1
        await self._close_connection(entry.connection)
        logger.debug("pool_connection_discarded", reason=reason, created=self._created)

    def _is_valid(self, entry: PoolEntry) -> bool:
        connection = entry.connection
        if not (callable(getattr(connection, "request", None))
                and callable(getattr(connection, "post", None))):
            return False
        if getattr(connection, "closed", False):
            return False
        return self._clock() - entry.created_at <= self.idle_timeout * POOL_MAX_AGE_FACTOR

    @staticmethod
    async def _close_connection(connection: Any):
        close = getattr(connection, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result

    def _raise_timeout(self):
        logger.warning("pool_checkout_timeout", **self.stats())
        raise PoolTimeout(f"Could not obtain a connection within {self.timeout}s")
