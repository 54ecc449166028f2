"""Driver protocol definition.

The query builder never renders or executes SQL itself. It lowers its state
into typed ``QueryClause`` / ``Assignment`` objects and hands them to an
object satisfying ``Driver``. ``querychain.drivers.SQLAlchemyDriver`` is the
bundled implementation; tests and applications may supply their own.
"""

from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    Union,
    runtime_checkable,
)

from querychain.types.predicates import Assignment, QueryClause, RawFragment
from querychain.types.query import JoinSpec


T = TypeVar("T")

Columns = Union[str, List[str], Dict[str, Any]]


@runtime_checkable
class Driver(Protocol):
    """Protocol for SQL drivers consumed by the query builder.

    ``table`` arguments use the ``"name (alias)"`` form. ``joins`` is the
    ordered join list of the chain, or None.
    """

    def select(
        self,
        table: str,
        columns: Columns,
        where: QueryClause,
        *,
        joins: Optional[Sequence[JoinSpec]] = None,
        callback: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> Any:
        """Fetch rows.

        Returns:
            List of row mappings, or whatever the driver returns in callback
            mode when ``callback`` is given (each row is passed to it).
        """
        ...

    def get(
        self,
        table: str,
        columns: Columns,
        where: QueryClause,
        *,
        joins: Optional[Sequence[JoinSpec]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Fetch the first matching row, or None."""
        ...

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert rows and return the number inserted."""
        ...

    def update(self, table: str, assignments: Sequence[Assignment], where: QueryClause) -> int:
        """Apply assignments to matching rows and return the affected count."""
        ...

    def delete(self, table: str, where: QueryClause) -> int:
        """Delete matching rows and return the affected count."""
        ...

    def has(
        self,
        table: str,
        where: QueryClause,
        *,
        joins: Optional[Sequence[JoinSpec]] = None,
    ) -> bool:
        ...

    def rand(
        self,
        table: str,
        columns: Columns,
        where: QueryClause,
        *,
        joins: Optional[Sequence[JoinSpec]] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch matching rows in random order."""
        ...

    def count(self, table: str, column: Optional[str], where: QueryClause, *,
              joins: Optional[Sequence[JoinSpec]] = None) -> Any:
        ...

    def sum(self, table: str, column: str, where: QueryClause, *,
            joins: Optional[Sequence[JoinSpec]] = None) -> Any:
        ...

    def avg(self, table: str, column: str, where: QueryClause, *,
            joins: Optional[Sequence[JoinSpec]] = None) -> Any:
        ...

    def max(self, table: str, column: str, where: QueryClause, *,
            joins: Optional[Sequence[JoinSpec]] = None) -> Any:
        ...

    def min(self, table: str, column: str, where: QueryClause, *,
            joins: Optional[Sequence[JoinSpec]] = None) -> Any:
        ...

    def last_insert_id(self) -> Any:
        """Id generated by the most recent insert, or None."""
        ...

    def raw(self, query: str, params: Optional[Any] = None) -> RawFragment:
        ...

    def query(self, sql: str, params: Optional[Any] = None) -> List[Dict[str, Any]]:
        """Execute literal SQL and return its rows (empty list for no rows)."""
        ...

    def action(self, callback: Callable[["Driver"], T]) -> T:
        """Run ``callback`` inside a transaction.

        The callback receives a driver bound to the transaction. The
        transaction is rolled back when the callback raises or returns
        ``False`` and committed otherwise.
        """
        ...

    def quote(self, value: Any) -> str:
        """Render ``value`` as a SQL literal."""
        ...

    def info(self) -> Dict[str, Any]:
        """Connection details (never including secrets)."""
        ...

    def log(self) -> List[str]:
        """Statements executed so far."""
        ...

    def last(self) -> Optional[str]:
        """The most recently executed statement."""
        ...
