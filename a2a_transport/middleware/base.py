"""Middleware interface and chain composition.

A middleware receives the request, a per-call context dict and the rest of
the chain::

    async def call(self, request, context, next_call) -> response

``build_chain`` folds a list of middleware right to left around a terminal
handler, so the first middleware in the list is the outermost.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, Sequence

NextCall = Callable[[Any, Dict[str, Any]], Awaitable[Any]]


class Middleware(ABC):

    name = "middleware"

    @abstractmethod
    async def call(self, request, context: Dict[str, Any], next_call: NextCall) -> Any:
        """Handle ``request``, usually by awaiting ``next_call(request, context)``."""

    def __repr__(self):
        return f"{type(self).__name__}()"


def build_chain(middleware: Sequence[Middleware], terminal: NextCall) -> NextCall:
    """Compose middleware around ``terminal``; ``middleware[0]`` runs first."""
    handler = terminal
    for item in reversed(middleware):
        handler = _bind(item, handler)
    return handler


def _bind(item: Middleware, next_call: NextCall) -> NextCall:
    async def handler(request, context):
        return await item.call(request, context, next_call)
    handler.middleware = item
    return handler
