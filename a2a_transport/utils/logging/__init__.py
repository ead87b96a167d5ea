"""Structured logging for the A2A transport client."""

from .framework import SmartLogger, get_logger, log_operation
from .logger import (
    StructuredLogger,
    clear_correlation_id,
    configure_logging,
    get_correlation_id,
    reset_logging,
    set_correlation_id,
)

__all__ = [
    "get_logger",
    "log_operation",
    "configure_logging",
    "reset_logging",
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "SmartLogger",
    "StructuredLogger",
]
