"""JSON logging for the ``querychain`` logger tree.

Records are rendered as one JSON object per line. Anything passed through
``extra=`` (``db.system``, ``duration.seconds``, ``error_code``, ...) becomes a
top-level key, and records emitted inside an active OpenTelemetry span carry
its trace and span ids. Only the ``querychain`` logger is configured, so host
applications keep control of the root logger.
"""

from __future__ import annotations

import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from opentelemetry import trace

LIBRARY_LOGGER = "querychain"

_STANDARD_ATTRIBUTES = frozenset(logging.makeLogRecord({}).__dict__) | {"asctime", "message"}


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class CustomJsonFormatter(logging.Formatter):
    """Render a record, its ``extra`` fields and the active span as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            key: value for key, value in vars(record).items() if key not in _STANDARD_ATTRIBUTES
        }
        payload.update(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
        )
        payload.update(self._span_fields())
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)

    @staticmethod
    def _span_fields() -> Dict[str, str]:
        context = trace.get_current_span().get_span_context()
        if not context.is_valid:
            return {}
        return {
            "trace_id": trace.format_trace_id(context.trace_id),
            "span_id": trace.format_span_id(context.span_id),
        }


def _logging_config(level: str, stream: str) -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {"()": CustomJsonFormatter},
        },
        "filters": {
            "context": {"()": "querychain.logging.filters.ContextFilter"},
        },
        "handlers": {
            "querychain_stream": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "filters": ["context"],
                "stream": stream,
            },
        },
        "loggers": {
            LIBRARY_LOGGER: {
                "level": level,
                "handlers": ["querychain_stream"],
                "propagate": False,
            },
        },
    }


def setup_logging(level: Optional[str] = None, stream: str = "ext://sys.stdout") -> None:
    """Attach a JSON stream handler to the ``querychain`` logger.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL, any case. Defaults to
            ``QUERYCHAIN_LOG_LEVEL``.
        stream: ``dictConfig`` stream reference, stdout unless told otherwise.
    """
    if level is None:
        from querychain.settings import get_settings
        level = get_settings().log_level

    logging.config.dictConfig(_logging_config(level.upper(), stream))
