"""Context injection for querychain log records.

Every record passing through :class:`ContextFilter` is tagged with the
library name and version, the current request context (request and user
ids, tracked per thread or task through ``contextvars``) and whatever static
context the host application registered with :func:`set_logging_context`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

from querychain.__version__ import __version__

_EMPTY_REQUEST: Mapping[str, Optional[str]] = MappingProxyType({"request_id": None, "user_id": None})

_request_context: ContextVar[Mapping[str, Optional[str]]] = ContextVar(
    "querychain_request_context", default=_EMPTY_REQUEST
)
_static_context: Dict[str, Any] = {}


class ContextFilter(logging.Filter):
    """Tag records with library, request and static context. Never drops a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.sdk_name = "querychain"
        record.querychain_version = __version__
        for key, value in _request_context.get().items():
            setattr(record, key, value)
        for key, value in _static_context.items():
            setattr(record, key, value)
        return True


def set_logging_context(
    environment: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """Replace the static context attached to every record.

    Passing ``None`` for both arguments clears it.
    """
    _static_context.clear()
    if environment is not None:
        _static_context["environment"] = environment
    if extra:
        _static_context.update(extra)


def set_request_context(
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> None:
    """Update the request context; ``None`` leaves a field as it is."""
    current = dict(_request_context.get())
    if request_id is not None:
        current["request_id"] = request_id
    if user_id is not None:
        current["user_id"] = user_id
    _request_context.set(MappingProxyType(current))


def clear_request_context() -> None:
    _request_context.set(_EMPTY_REQUEST)


@contextmanager
def request_context(request_id: Optional[str] = None, user_id: Optional[str] = None) -> Iterator[None]:
    """Scope request and user ids to a block, restoring the previous ones on exit."""
    token = _request_context.set(_EMPTY_REQUEST)
    set_request_context(request_id, user_id)
    try:
        yield
    finally:
        _request_context.reset(token)
