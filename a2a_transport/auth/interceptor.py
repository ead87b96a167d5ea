"""Middleware that authenticates requests and recovers once from auth failures."""

from typing import Any, Dict

from ..errors import AuthenticationError, error_from_payload
from ..middleware.base import Middleware, NextCall
from ..utils.config.constants import AUTH_ERROR_CODES
from .base import AuthStrategy, logger


class AuthInterceptor(Middleware):
    """Applies a strategy to each request.

    An authentication failure is either a raised ``AuthenticationError``
    (HTTP 401/403, JSON-RPC -32004/-32005) or a response carrying one of
    those JSON-RPC codes. With ``auto_retry`` and a refreshable strategy the
    interceptor refreshes once, re-applies credentials to a fresh copy of the
    request and retries once. Whatever that retry produces is final.
    """

    name = "auth"

    def __init__(self, strategy: AuthStrategy, auto_retry: bool = True):
        self.strategy = strategy
        self.auto_retry = auto_retry

    @property
    def supports_refresh(self) -> bool:
        return bool(self.strategy.supports_refresh)

    async def call(self, request, context: Dict[str, Any], next_call: NextCall) -> Any:
        attempt = request.copy()
        await self.strategy.apply_to_request(attempt)

        try:
            response = await next_call(attempt, context)
        except AuthenticationError as e:
            return await self._recover(request, context, next_call, e)

        if _is_auth_failure(response):
            return await self._recover(request, context, next_call, error_from_payload(response.payload["error"]))
        return response

    async def _recover(self, request, context, next_call: NextCall, error: AuthenticationError) -> Any:
        if not (self.auto_retry and self.supports_refresh):
            raise error

        logger.info("auth_refresh_after_failure", strategy=self.strategy.name,
                    error_type=type(error).__name__)
        try:
            await self.strategy.refresh()
        except Exception as refresh_error:
            logger.warning("auth_refresh_failed", strategy=self.strategy.name,
                           error=str(refresh_error))
            raise error from refresh_error

        context["auth_retried"] = True
        attempt = request.copy()
        await self.strategy.apply_to_request(attempt)
        return await next_call(attempt, context)

    def status(self) -> Dict[str, Any]:
        return {
            "strategy": type(self.strategy).__name__,
            "valid": self.strategy.is_valid(),
            "supports_refresh": self.supports_refresh,
            "expires_at": self.strategy.expires_at,
        }


def _is_auth_failure(response: Any) -> bool:
    code = getattr(response, "rpc_error_code", None)
    return code in AUTH_ERROR_CODES
