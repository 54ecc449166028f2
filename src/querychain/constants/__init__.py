"""Constants module for querychain.

As Layer 0 in the architecture, this module has no dependencies on other
querychain modules.

Organization:
    - sql: operators, join types, reserved predicate keys
    - builder: builder modes, capabilities and defaults
"""

from querychain.constants.sql import (
    AssignmentOperator,
    Connective,
    JoinType,
    MatchMode,
    Operator,
    QueryType,
    SortDirection,
    GROUP_KEY,
    HAVING_KEY,
    LIMIT_KEY,
    MATCH_KEY,
    ORDER_KEY,
    RESERVED_KEYS,
)
from querychain.constants.builder import (
    BuilderMode,
    Capability,
    DEFAULT_CONNECTION,
    DEFAULT_ID_FIELD,
    SERVER_SECTION,
    UNBOUNDED_LIMIT,
)

__all__ = [
    "AssignmentOperator",
    "Connective",
    "JoinType",
    "MatchMode",
    "Operator",
    "QueryType",
    "SortDirection",
    "GROUP_KEY",
    "HAVING_KEY",
    "LIMIT_KEY",
    "MATCH_KEY",
    "ORDER_KEY",
    "RESERVED_KEYS",
    "BuilderMode",
    "Capability",
    "DEFAULT_CONNECTION",
    "DEFAULT_ID_FIELD",
    "SERVER_SECTION",
    "UNBOUNDED_LIMIT",
]
