"""Structured JSON logging for the A2A transport client.

Every record is one JSON object carrying the event message, the keyword
context passed by the caller and the current correlation id. Records go
through the standard ``logging`` module under the ``a2a_transport`` logger
name, so a host application controls where they end up. ``configure_logging``
optionally adds rotating files:

- a2a_transport.log: everything at or above the configured level
- errors.log: ERROR and above only
"""

import json
import logging
import logging.handlers
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER_NAME = "a2a_transport"

# Correlation id of the current task; asyncio copies context into new tasks
_correlation_id: ContextVar[Optional[str]] = ContextVar("a2a_correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set the correlation id for the current context, generating one if needed."""
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())[:8]
    _correlation_id.set(correlation_id)
    return correlation_id


def clear_correlation_id():
    _correlation_id.set(None)


class StructuredLogger:
    """JSON logger bound to one named stdlib logger."""

    def __init__(self, name: str = ROOT_LOGGER_NAME):
        self.logger = logging.getLogger(name)
        # Disabling the package logger silences every component logger below it
        self._package_logger = logging.getLogger(ROOT_LOGGER_NAME)

    def _log(self, level: int, message: str, **kwargs):
        if not self.isEnabledFor(level):
            return

        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": logging.getLevelName(level),
            "message": message,
            **kwargs,
        }

        correlation_id = get_correlation_id()
        if correlation_id and "correlation_id" not in entry:
            entry["correlation_id"] = correlation_id

        self.logger.log(level, json.dumps(entry, default=str))

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)

    def isEnabledFor(self, level: int) -> bool:
        if self._package_logger.disabled:
            return False
        return self.logger.isEnabledFor(level)


_installed_handlers: Dict[str, logging.Handler] = {}


def configure_logging(config: Any = None) -> logging.Logger:
    """Apply a ``LoggingConfig`` to the package logger.

    Without a ``log_dir`` nothing but the level is touched and records
    propagate to the host's handlers. With one, rotating file handlers are
    installed (once) and propagation is turned off to avoid duplicates.
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if config is None:
        return root

    if not config.enabled:
        root.disabled = True
        return root

    root.disabled = False
    root.setLevel(getattr(logging, config.level, logging.INFO))

    if config.log_dir:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        _install_file_handler(root, "main", log_dir / "a2a_transport.log",
                              config.max_file_size, config.backup_count, logging.NOTSET)
        _install_file_handler(root, "errors", log_dir / "errors.log",
                              config.max_file_size, config.backup_count, logging.ERROR)
        root.propagate = False

    return root


def _install_file_handler(root: logging.Logger, key: str, path: Path,
                          max_bytes: int, backup_count: int, level: int):
    existing = _installed_handlers.get(key)
    if existing is not None:
        if getattr(existing, "baseFilename", None) == str(path.resolve()):
            return
        root.removeHandler(existing)
        existing.close()

    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    # Entries are already JSON
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(level)
    root.addHandler(handler)
    _installed_handlers[key] = handler


def reset_logging():
    """Remove handlers installed by configure_logging and restore propagation."""
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in _installed_handlers.values():
        root.removeHandler(handler)
        handler.close()
    _installed_handlers.clear()
    root.propagate = True
    root.disabled = False
