from typing import Any, Optional

from querychain.__version__ import __version__
from querychain.builder import QueryBuilder, Record, Table
from querychain.predicates import agg
from querychain.types.predicates import raw

from querychain.common.exceptions import (
    ConfigurationError,
    ConnectionResolutionError,
    ErrorCode,
    InvalidJoinError,
    LimitAlreadySetError,
    ModeViolationError,
    QueryChainError,
)

from querychain.connection import ConnectionResolver, get_resolver, resolve_connection, set_resolver
from querychain.drivers import SQLAlchemyDriver
from querychain.logging import setup_logging
from querychain.settings import IniConfigProvider, MappingConfigProvider


def table(name: str, alias: Optional[str] = None, using: Any = None, **kwargs: Any) -> QueryBuilder:
    """Start a query chain on ``name``.

    Example:
        >>> from querychain import table
        >>> table("users").filter({"last_name": "Doe"}).all()
    """
    return QueryBuilder.from_(name, alias, using, **kwargs)


def raw_query(sql: str, params: Optional[Any] = None, using: Any = None) -> Any:
    return QueryBuilder.raw_query(sql, params, using)


__all__ = [
    "__version__",

    # Builder
    "QueryBuilder",
    "Table",
    "Record",
    "table",
    "raw",
    "raw_query",
    "agg",

    # Connections
    "ConnectionResolver",
    "IniConfigProvider",
    "MappingConfigProvider",
    "SQLAlchemyDriver",
    "get_resolver",
    "resolve_connection",
    "set_resolver",

    # Logging
    "setup_logging",

    # Exceptions (public API)
    "QueryChainError",
    "ErrorCode",
    "ConnectionResolutionError",
    "ConfigurationError",
    "ModeViolationError",
    "InvalidJoinError",
    "LimitAlreadySetError",
]
