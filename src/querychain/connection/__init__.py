"""Connection resolution for querychain."""

from querychain.connection.resolver import (
    ConnectionResolver,
    get_resolver,
    is_truthy,
    resolve_connection,
    set_resolver,
)

__all__ = [
    "ConnectionResolver",
    "get_resolver",
    "is_truthy",
    "resolve_connection",
    "set_resolver",
]
