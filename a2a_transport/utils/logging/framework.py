"""Component-scoped logging with operation context.

``SmartLogger`` tags every entry with its component and the context of the
enclosing ``log_operation`` block. Context is held in ``contextvars`` so
concurrent requests on one event loop never see each other's ids.
"""

import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Optional

from .logger import ROOT_LOGGER_NAME, StructuredLogger, _correlation_id, get_correlation_id

_operation_context: ContextVar[Dict[str, Any]] = ContextVar("a2a_operation_context", default={})


class SmartLogger:
    """Logger that injects component, correlation id and operation context."""

    def __init__(self, component: str = "system"):
        self._component = component
        self._logger = StructuredLogger(f"{ROOT_LOGGER_NAME}.{component}")

    @property
    def component(self) -> str:
        return self._component

    def _log(self, level: str, message: str, **kwargs):
        kwargs.setdefault("component", self._component)

        correlation_id = get_correlation_id()
        if correlation_id:
            kwargs.setdefault("correlation_id", correlation_id)

        for key, value in _operation_context.get().items():
            kwargs.setdefault(key, value)

        getattr(self._logger, level)(message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log("debug", message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log("info", message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log("warning", message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log("error", message, **kwargs)

    def isEnabledFor(self, level: int) -> bool:
        return self._logger.isEnabledFor(level)


_loggers: Dict[str, SmartLogger] = {}


def get_logger(component: str = "system") -> SmartLogger:
    """Get (or create) the logger for a component."""
    logger = _loggers.get(component)
    if logger is None:
        logger = SmartLogger(component)
        _loggers[component] = logger
    return logger


@contextmanager
def log_operation(component: str, operation: str,
                  correlation_id: Optional[str] = None, **context):
    """Scope an operation: correlation id, shared context, start/complete/error.

    Example:
        with log_operation("client", "get_card", url=url):
            card = await fetch()
    """
    if not correlation_id:
        correlation_id = get_correlation_id() or str(uuid.uuid4())[:8]

    op_logger = get_logger(component)
    id_token = _correlation_id.set(correlation_id)
    ctx_token = _operation_context.set({**_operation_context.get(), "operation": operation, **context})

    op_logger.info(f"operation_start_{operation}")
    start_time = time.time()
    try:
        yield correlation_id
    except Exception as e:
        op_logger.error(f"operation_error_{operation}",
                        duration_seconds=round(time.time() - start_time, 3),
                        success=False,
                        error=str(e),
                        error_type=type(e).__name__)
        raise
    else:
        op_logger.info(f"operation_complete_{operation}",
                       duration_seconds=round(time.time() - start_time, 3),
                       success=True)
    finally:
        _operation_context.reset(ctx_token)
        _correlation_id.reset(id_token)
