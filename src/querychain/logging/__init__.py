"""Logging infrastructure for querychain.

This module provides structured logging with JSON output and context tracking.
"""

from querychain.logging.filters import (
    ContextFilter,
    clear_request_context,
    request_context,
    set_logging_context,
    set_request_context,
)
from querychain.logging.logger import CustomJsonFormatter, get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "CustomJsonFormatter",
    "ContextFilter",
    "set_logging_context",
    "set_request_context",
    "clear_request_context",
    "request_context",
]
