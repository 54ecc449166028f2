"""Query state types.

This module contains the mutable accumulator a builder chain writes into
(``QueryState``) and the join specification it collects (``JoinSpec``).
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import ConfigDict, Field

from querychain.constants.sql import JoinType
from querychain.types.base import QueryChainModel
from querychain.types.predicates import Condition, Match, OrderItem


def render_table(name: str, alias: Optional[str] = None) -> str:
    """Render a table reference in ``"name (alias)"`` form."""
    return f"{name} ({alias})" if alias else name


class JoinSpec(QueryChainModel):
    """One join clause of a builder chain.

    Attributes:
        join_type: INNER, LEFT, RIGHT or FULL.
        table: Joined table name.
        on: Join condition. A column name or list of column names means
            ``USING (...)``; a mapping ``{"main_col": "joined_col"}`` means
            ``ON main.main_col = joined.joined_col``.
        alias: Optional alias of the joined table. Required for self-joins.
    """
    model_config = ConfigDict(frozen=True)

    join_type: JoinType
    table: str = Field(..., min_length=1)
    on: Union[str, List[str], Dict[str, str]]
    alias: Optional[str] = None

    @property
    def target(self) -> str:
        return render_table(self.table, self.alias)

    @property
    def reference(self) -> str:
        """Name the joined columns are qualified with."""
        return self.alias or self.table


class QueryState(QueryChainModel):
    """Everything a builder chain has accumulated so far.

    ``where`` keeps the plain (non-reserved) part of every merged mapping in
    insertion order. Reserved keys (LIMIT, ORDER, GROUP, HAVING, MATCH) are
    lifted into the typed slots below as soon as a mapping is merged.

    Attributes:
        name: Table name.
        alias: Optional table alias.
        columns: ``"*"``, a list of column names or a mapping of output alias
            to expression.
        where: Accumulated predicate mapping.
        joins: Join clauses in call order.
        limit: Row count.
        offset: Rows to skip.
        group_by: GROUP BY columns.
        having: HAVING tree.
        order_by: ORDER BY items.
        match: Full-text condition.
        result_set: Raw result of the last terminal call.
    """
    name: str = Field(..., min_length=1)
    alias: Optional[str] = None
    columns: Union[str, List[str], Dict[str, Any]] = "*"
    where: Dict[str, Any] = Field(default_factory=dict)
    joins: List[JoinSpec] = Field(default_factory=list)
    limit: Optional[int] = Field(default=None, ge=0)
    offset: Optional[int] = Field(default=None, ge=0)
    group_by: List[str] = Field(default_factory=list)
    having: Optional[Condition] = None
    order_by: List[OrderItem] = Field(default_factory=list)
    match: Optional[Match] = None
    result_set: Any = None

    @property
    def table(self) -> str:
        return render_table(self.name, self.alias)
