"""SQL and query-related constants.

This module contains the enums shared by the predicate parser, the query
builder and the drivers. They live in Layer 0 so any layer can import them
without creating circular dependencies.
"""

from enum import Enum


class Operator(str, Enum):
    """Comparison operators, keyed by the suffix used in predicate keys.

    A predicate key such as ``"age[>]"`` selects ``Operator.GT``; a key with
    no suffix is an equality test.
    """

    EQ = "="
    NEQ = "!"
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    LIKE = "~"
    NOT_LIKE = "!~"
    BETWEEN = "<>"
    NOT_BETWEEN = "><"
    REGEXP = "REGEXP"


class AssignmentOperator(str, Enum):
    """Update operators, keyed by the suffix used in data keys (``"hits[+]"``)."""

    SET = "="
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    JSON = "JSON"


class Connective(str, Enum):
    """Logical connective of a predicate group."""

    AND = "AND"
    OR = "OR"


class JoinType(str, Enum):
    """Supported join types."""

    INNER = "INNER"
    LEFT = "LEFT"
    RIGHT = "RIGHT"
    FULL = "FULL"

    @property
    def keyword(self) -> str:
        """SQL keyword sequence for this join type."""
        if self is JoinType.FULL:
            return "FULL OUTER JOIN"
        return f"{self.value} JOIN"


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class MatchMode(str, Enum):
    """Full-text search modes for ``MATCH ... AGAINST``."""

    NATURAL = "natural"
    NATURAL_QUERY = "natural+query"
    BOOLEAN = "boolean"
    QUERY = "query"

    @property
    def clause(self) -> str:
        return {
            MatchMode.NATURAL: "IN NATURAL LANGUAGE MODE",
            MatchMode.NATURAL_QUERY: "IN NATURAL LANGUAGE MODE WITH QUERY EXPANSION",
            MatchMode.BOOLEAN: "IN BOOLEAN MODE",
            MatchMode.QUERY: "WITH QUERY EXPANSION",
        }[self]


class QueryType(str, Enum):
    """Statement kinds issued by drivers. Used for logging and span attributes."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    AGGREGATE = "AGGREGATE"
    EXISTS = "EXISTS"
    RAW = "RAW"


# Reserved predicate keys that are lifted out of where-mappings into typed slots.
LIMIT_KEY = "LIMIT"
ORDER_KEY = "ORDER"
GROUP_KEY = "GROUP"
HAVING_KEY = "HAVING"
MATCH_KEY = "MATCH"
RESERVED_KEYS = frozenset({LIMIT_KEY, ORDER_KEY, GROUP_KEY, HAVING_KEY, MATCH_KEY})
