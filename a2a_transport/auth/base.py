"""Authentication strategy interface and the shared credential cache."""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Optional

from ..types import Credential
from ..utils.config.constants import TOKEN_EXPIRY_BUFFER_SECONDS
from ..utils.logging import get_logger

logger = get_logger("auth")


class SingleFlight:
    """Caches one credential and collapses concurrent refreshes into one load.

    The load runs as its own task. Callers that arrive while it is running
    await the same task and receive its credential or its exception. A caller
    that is cancelled stops waiting but the load carries on for the others.
    The cached credential is only replaced, never mutated.
    """

    def __init__(self, loader: Callable[[], Awaitable[Credential]],
                 buffer_seconds: float = TOKEN_EXPIRY_BUFFER_SECONDS,
                 clock: Callable[[], float] = time.time):
        self._loader = loader
        self._buffer = buffer_seconds
        self._clock = clock
        self._credential: Optional[Credential] = None
        self._inflight: Optional[asyncio.Future] = None

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    def is_fresh(self) -> bool:
        return (self._credential is not None
                and not self._credential.expires_within(self._buffer, now=self._clock()))

    async def get(self) -> Credential:
        """Cached credential, refreshed when missing or about to expire."""
        if self.is_fresh():
            return self._credential
        return await self.refresh()

    async def refresh(self) -> Credential:
        """Force a load, joining one already in flight."""
        if self._inflight is None:
            task = asyncio.ensure_future(self._loader())
            task.add_done_callback(self._loaded)
            self._inflight = task
        return await asyncio.shield(self._inflight)

    def _loaded(self, task: asyncio.Future):
        if self._inflight is task:
            self._inflight = None
        if task.cancelled():
            return
        # Mark retrieved so an unobserved failure is not reported by the loop
        if task.exception() is None:
            self._credential = task.result()

    def clear(self):
        self._credential = None


class AuthStrategy(ABC):
    """Applies credentials to an outgoing request.

    ``apply_to_request`` is the only observable effect on a request.
    Strategies that can obtain new credentials set ``supports_refresh``.
    """

    name = "auth"
    supports_refresh = False

    @abstractmethod
    async def apply_to_request(self, request) -> None:
        """Add credentials to ``request`` (headers, query params)."""

    async def refresh(self) -> None:
        """Obtain fresh credentials. Strategies without refresh do nothing."""

    @property
    def expires_at(self) -> Optional[float]:
        return None

    def is_valid(self) -> bool:
        return True

    def describe(self) -> Dict[str, Any]:
        """Loggable summary with secrets masked."""
        return {"type": self.name}


def mask_secret(value: Optional[str]) -> str:
    """Show only the first and last four characters of long secrets."""
    if not value:
        return ""
    if len(value) <= 8:
        return value
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"
