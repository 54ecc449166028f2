"""Typed predicate tree.

Where-mappings written by application code (``{"age[>]": 18, "OR": {...}}``)
are parsed into these nodes before they reach a driver. A driver only ever
sees the tree, never the key-suffix convention.

Node kinds:
    - Comparison: ``column <operator> value``
    - Group: AND/OR of nested conditions
    - RawFragment: literal SQL with its own parameters
    - Match: full-text ``MATCH (...) AGAINST (...)``

Update data is parsed into ``Assignment`` nodes and ordering into
``OrderItem`` nodes. ``QueryClause`` bundles everything a driver needs to
render the tail of a statement.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import ConfigDict, Field

from querychain.constants.sql import (
    AssignmentOperator,
    Connective,
    MatchMode,
    Operator,
    SortDirection,
)
from querychain.types.base import QueryChainModel


class PredicateNode(QueryChainModel):
    """Immutable base for predicate tree nodes."""
    model_config = ConfigDict(frozen=True)


class RawFragment(PredicateNode):
    """Literal SQL passed through to the driver.

    ``<name>`` inside ``sql`` is replaced by the quoted identifier. ``params``
    is either a named map (``:name`` placeholders) or a positional sequence
    (``?`` placeholders).
    """
    kind: Literal["raw"] = "raw"
    sql: str = Field(..., min_length=1)
    params: Union[Dict[str, Any], List[Any]] = Field(default_factory=dict)


class Comparison(PredicateNode):
    kind: Literal["comparison"] = "comparison"
    column: str = Field(..., min_length=1)
    operator: Operator = Operator.EQ
    value: Any = None


class Match(PredicateNode):
    kind: Literal["match"] = "match"
    columns: List[str] = Field(..., min_length=1)
    keyword: str
    mode: MatchMode = MatchMode.NATURAL


class Group(PredicateNode):
    kind: Literal["group"] = "group"
    connective: Connective = Connective.AND
    conditions: List["Condition"] = Field(default_factory=list)


Condition = Annotated[
    Union[Comparison, Group, RawFragment, Match],
    Field(discriminator="kind"),
]

Group.model_rebuild()


class Assignment(PredicateNode):
    """One ``SET`` entry of an update (or one column of an insert)."""
    column: str = Field(..., min_length=1)
    operator: AssignmentOperator = AssignmentOperator.SET
    value: Any = None


class OrderItem(PredicateNode):
    column: str = Field(..., min_length=1)
    direction: SortDirection = SortDirection.ASC


class QueryClause(PredicateNode):
    """Lowered query state handed to a driver.

    Attributes:
        condition: WHERE tree (None = no filter)
        match: Optional full-text condition, ANDed with ``condition``
        group_by: GROUP BY columns
        having: HAVING tree
        order_by: ORDER BY items
        limit: Row count
        offset: Rows to skip
    """
    condition: Optional[Condition] = None
    match: Optional[Match] = None
    group_by: List[str] = Field(default_factory=list)
    having: Optional[Condition] = None
    order_by: List[OrderItem] = Field(default_factory=list)
    limit: Optional[int] = Field(default=None, ge=0)
    offset: Optional[int] = Field(default=None, ge=0)

    def with_window(self, limit: Optional[int], offset: Optional[int] = None) -> "QueryClause":
        """Return a copy with a different row window, keeping the offset unless given."""
        return self.model_copy(
            update={
                "limit": limit,
                "offset": self.offset if offset is None else offset,
            }
        )


def raw(sql: str, params: Optional[Union[Dict[str, Any], Sequence[Any]]] = None) -> RawFragment:
    """Build a raw SQL fragment.

    Example:
        >>> raw("<age> > :min_age", {"min_age": 18})
        >>> raw("LOWER(<email>) = ?", ["ann@example.com"])
    """
    if params is None:
        params = {}
    elif not isinstance(params, dict):
        params = list(params)
    return RawFragment(sql=sql, params=params)
