"""Structured request/response/error logging for the middleware chain."""

import time
import uuid
from typing import Any, Dict, Iterable

from ..utils.config.constants import SENSITIVE_HEADERS
from ..utils.logging import get_logger
from .base import Middleware, NextCall

logger = get_logger("a2a")

MASK = "[REDACTED]"


def mask_headers(headers: Dict[str, str], sensitive: Iterable[str] = SENSITIVE_HEADERS) -> Dict[str, str]:
    sensitive = {name.lower() for name in sensitive}
    return {key: MASK if key.lower() in sensitive else value for key, value in headers.items()}


class LoggingMiddleware(Middleware):
    """Logs each call without touching the request or response.

    Also feeds an optional ``PerformanceTracker`` with call durations.
    """

    name = "logging"

    def __init__(self, log_requests: bool = True, log_responses: bool = True,
                 log_errors: bool = True, log_bodies: bool = False, tracker=None,
                 component_logger=None):
        self.log_requests = log_requests
        self.log_responses = log_responses
        self.log_errors = log_errors
        self.log_bodies = log_bodies
        self.tracker = tracker
        self.logger = component_logger or logger

    async def call(self, request, context: Dict[str, Any], next_call: NextCall) -> Any:
        request_id = context.setdefault("request_id", uuid.uuid4().hex[:16])

        if self.log_requests:
            entry = {
                "request_id": request_id,
                "http_method": request.method,
                "url": request.url,
                "rpc_method": request.rpc_method,
                "rpc_id": request.rpc_id,
                "streaming": request.streaming,
                "headers": mask_headers(request.headers),
            }
            if self.log_bodies and request.body is not None:
                entry["body"] = request.body
            self.logger.info("a2a_request", **entry)

        start_time = time.monotonic()
        try:
            response = await next_call(request, context)
        except Exception as e:
            duration = time.monotonic() - start_time
            self._record(duration, success=False)
            if self.log_errors:
                self.logger.error("a2a_error",
                                  request_id=request_id,
                                  rpc_method=request.rpc_method,
                                  duration_ms=round(duration * 1000, 2),
                                  error_type=type(e).__name__,
                                  error=str(e),
                                  error_code=getattr(e, "code", None),
                                  status_code=getattr(e, "status_code", None),
                                  retry_attempt=context.get("retry_attempt"))
            raise

        duration = time.monotonic() - start_time
        rpc_error_code = getattr(response, "rpc_error_code", None)
        self._record(duration, success=rpc_error_code is None)
        if self.log_responses:
            entry = {
                "request_id": request_id,
                "rpc_method": request.rpc_method,
                "duration_ms": round(duration * 1000, 2),
                "status": getattr(response, "status", None),
                "streaming": getattr(response, "is_stream", False),
                "success": rpc_error_code is None,
            }
            if rpc_error_code is not None:
                entry["rpc_error_code"] = rpc_error_code
            if self.log_bodies and getattr(response, "text", None):
                entry["body"] = response.text
            log = self.logger.info if rpc_error_code is None else self.logger.warning
            log("a2a_response", **entry)
        return response

    def _record(self, duration: float, success: bool):
        if self.tracker is not None:
            self.tracker.record(duration, success=success)
