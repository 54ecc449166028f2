"""Predicate and aggregate helpers.

Every helper returns a single-entry mapping that can be passed straight to a
builder method or merged with other mappings::

    from querychain import agg, table

    table("users").filter({**agg.gt("age", 18), **agg.neq("status", "banned")}).all()
    table("posts").update({**agg.plus("views", 1)}, {"id": 7})
    table("orders").columns({**agg.sum("total", "amount")}).all()

The SQL-function shorthands (``random``, ``now``, ``uuid``, ...) emit
MySQL-flavoured function names.
"""

from typing import Any, Dict, Optional, Sequence, Union

from querychain.constants.sql import AssignmentOperator, Operator
from querychain.types.predicates import RawFragment
from querychain.types.predicates import raw as raw_fragment


def _suffixed(column: str, suffix: str) -> str:
    return f"{column}[{suffix}]"


# Comparisons

def eq(column: str, value: Any) -> Dict[str, Any]:
    return {column: value}


def neq(column: str, value: Any) -> Dict[str, Any]:
    return {_suffixed(column, Operator.NEQ.value): value}


def lt(column: str, value: Any) -> Dict[str, Any]:
    return {_suffixed(column, Operator.LT.value): value}


def lte(column: str, value: Any) -> Dict[str, Any]:
    return {_suffixed(column, Operator.LTE.value): value}


def gt(column: str, value: Any) -> Dict[str, Any]:
    return {_suffixed(column, Operator.GT.value): value}


def gte(column: str, value: Any) -> Dict[str, Any]:
    return {_suffixed(column, Operator.GTE.value): value}


def like(column: str, value: Any) -> Dict[str, Any]:
    """``column LIKE value``. Values without wildcards match anywhere."""
    return {_suffixed(column, Operator.LIKE.value): value}


def not_like(column: str, value: Any) -> Dict[str, Any]:
    return {_suffixed(column, Operator.NOT_LIKE.value): value}


def between(column: str, low: Any, high: Any) -> Dict[str, Any]:
    return {_suffixed(column, Operator.BETWEEN.value): [low, high]}


def not_between(column: str, low: Any, high: Any) -> Dict[str, Any]:
    return {_suffixed(column, Operator.NOT_BETWEEN.value): [low, high]}


def regexp(column: str, pattern: str) -> Dict[str, Any]:
    return {_suffixed(column, Operator.REGEXP.value): pattern}


# Update arithmetic

def plus(column: str, value: Union[int, float]) -> Dict[str, Any]:
    """``SET column = column + value``."""
    return {_suffixed(column, AssignmentOperator.ADD.value): value}


def minus(column: str, value: Union[int, float]) -> Dict[str, Any]:
    return {_suffixed(column, AssignmentOperator.SUBTRACT.value): value}


def of(column: str, value: Union[int, float]) -> Dict[str, Any]:
    """``SET column = column * value``."""
    return {_suffixed(column, AssignmentOperator.MULTIPLY.value): value}


def div(column: str, value: Union[int, float]) -> Dict[str, Any]:
    return {_suffixed(column, AssignmentOperator.DIVIDE.value): value}


def jsonified(column: str, value: Any) -> Dict[str, Any]:
    """Store ``value`` JSON-encoded in ``column``."""
    return {_suffixed(column, AssignmentOperator.JSON.value): value}


# Raw SQL

def raw(column: str, sql: str, params: Optional[Union[Dict[str, Any], Sequence[Any]]] = None) -> Dict[str, RawFragment]:
    """Bind a raw SQL fragment to ``column`` (or to an output alias in ``columns()``)."""
    return {column: raw_fragment(sql, params)}


def random(column: str) -> Dict[str, RawFragment]:
    return raw(column, "RAND()")


def sum(column: str, source: str) -> Dict[str, RawFragment]:
    """``SUM(source) AS column`` when used in ``columns()``."""
    return raw(column, f"SUM(<{source}>)")


def avg(column: str, source: str) -> Dict[str, RawFragment]:
    return raw(column, f"AVG(<{source}>)")


def max(column: str, source: str) -> Dict[str, RawFragment]:
    return raw(column, f"MAX(<{source}>)")


def min(column: str, source: str) -> Dict[str, RawFragment]:
    return raw(column, f"MIN(<{source}>)")


def now(column: str) -> Dict[str, RawFragment]:
    """Assign the current timestamp, e.g. ``update({**agg.now("updated_at")}, ...)``."""
    return raw(column, "NOW()")


def uuid(column: str) -> Dict[str, RawFragment]:
    return raw(column, "UUID()")
