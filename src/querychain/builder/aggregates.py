from typing import TYPE_CHECKING, Any, Mapping, Optional

from querychain.logging import get_logger

if TYPE_CHECKING:
    from querychain.builder.base import QueryBuilder

logger = get_logger(__name__)


class AggregateOperations:
    """COUNT/SUM/AVG/MAX/MIN over a builder's accumulated predicate and joins.

    A ``where`` passed to an aggregate is merged shallowly over the chain's
    predicate for that one call; the chain itself is left unchanged.
    """

    def __init__(self, builder: "QueryBuilder"):
        self._builder = builder

    def _run(self, function: str, column: Optional[str], where: Optional[Mapping[str, Any]]) -> Any:
        builder = self._builder
        state = builder._scoped(where, function, group=False)
        logger.debug("Running %s(%s) on '%s'", function.upper(), column or "*", state.table)
        return getattr(builder.driver, function)(
            state.table,
            column,
            builder._clause(state),
            joins=builder.state.joins or None,
        )

    def count(self, column: Optional[str] = None, where: Optional[Mapping[str, Any]] = None) -> Any:
        return self._run("count", column, where)

    def sum(self, column: str, where: Optional[Mapping[str, Any]] = None) -> Any:
        return self._run("sum", column, where)

    def avg(self, column: str, where: Optional[Mapping[str, Any]] = None) -> Any:
        return self._run("avg", column, where)

    def max(self, column: str, where: Optional[Mapping[str, Any]] = None) -> Any:
        return self._run("max", column, where)

    def min(self, column: str, where: Optional[Mapping[str, Any]] = None) -> Any:
        return self._run("min", column, where)
