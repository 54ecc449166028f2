"""Fluent query builder.

A ``QueryBuilder`` is bound to one table and accumulates query state across
chained calls until a terminal call (``get``, ``all``, ``save``, ...) hands
the lowered state to a driver::

    from querychain import table, agg

    user = table("users").get(5)
    adults = (
        table("users")
        .filter({**agg.gte("age", 18), "status": "active"})
        .order_by({"created_at": "DESC"})
        .limit(20)
        .all()
    )
    new_user = table("users").save({"name": "Ann", "age": 31})

Which calls are legal depends on the chain so far. ``filter()`` and
``join()`` switch the builder to filter-only mode, after which only
chain-building, fetching and aggregates are allowed. ``columns()`` disables
``has()`` and ``raw()``. Illegal calls raise ``ModeViolationError``.
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar, Union

from querychain.builder.aggregates import AggregateOperations
from querychain.builder.guard import ModeGuard
from querychain.builder.joins import JoinComposer
from querychain.builder.materializer import Record, ResultMaterializer
from querychain.common.exceptions import (
    ErrorCode,
    LimitAlreadySetError,
    validation_error,
)
from querychain.constants.builder import Capability, DEFAULT_ID_FIELD, UNBOUNDED_LIMIT
from querychain.constants.sql import (
    GROUP_KEY,
    HAVING_KEY,
    LIMIT_KEY,
    MATCH_KEY,
    ORDER_KEY,
    JoinType,
    MatchMode,
)
from querychain.logging import get_logger
from querychain.predicates.parser import (
    parse_assignments,
    parse_conditions,
    parse_group,
    parse_having,
    parse_insert_rows,
    parse_limit,
    parse_match,
    parse_order,
    parse_where,
    split_reserved,
)
from querychain.protocols.driver import Columns, Driver
from querychain.types.predicates import QueryClause, RawFragment
from querychain.types.query import QueryState

logger = get_logger(__name__)

T = TypeVar("T")

Predicate = Optional[Union[Mapping[str, Any], Any]]


class QueryBuilder:
    """Chainable, table-scoped query builder.

    Args:
        name: Table name
        alias: Optional table alias
        using: Connection reference: a section name, an options mapping, a
            SQLAlchemy engine or connection, or a driver. None selects the
            default connection.
        resolver: Resolver used to turn ``using`` into a driver. Defaults to
            the process-wide resolver.
    """

    def __init__(
        self,
        name: str,
        alias: Optional[str] = None,
        using: Any = None,
        *,
        resolver: Any = None,
    ):
        self.state = QueryState(name=name, alias=alias)
        self.guard = ModeGuard()
        self.joins = JoinComposer()
        self.aggregates = AggregateOperations(self)
        self.materializer = ResultMaterializer()
        self._using = using
        self._resolver = resolver
        self._driver: Optional[Driver] = None
        self._limit_called = False

    @classmethod
    def from_(cls, name: str, alias: Optional[str] = None, using: Any = None, **kwargs: Any) -> "QueryBuilder":
        """Start a new chain on ``name``."""
        return cls(name, alias, using, **kwargs)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} table={self.state.table!r} mode={self.guard.mode.value}>"

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    @property
    def driver(self) -> Driver:
        """The driver of this chain, resolved on first use and cached."""
        if self._driver is None:
            if self._resolver is None:
                from querychain.connection.resolver import get_resolver
                self._resolver = get_resolver()
            self._driver = self._resolver.resolve(self._using)
        return self._driver

    def table(self, name: str, alias: Optional[str] = None, using: Any = None) -> "QueryBuilder":
        """Point the chain at another table, optionally on another connection."""
        self.state.name = name
        self.state.alias = alias
        if using is not None:
            self._using = using
            self._driver = None
        return self

    def using(self, ref: Any) -> "QueryBuilder":
        self.guard.check("using", self.state.table, normal=True)
        self._using = ref
        self._driver = None
        return self

    # ------------------------------------------------------------------
    # State accumulation
    # ------------------------------------------------------------------

    def _apply_reserved(self, reserved: Mapping[str, Any], state: Optional[QueryState] = None) -> None:
        state = self.state if state is None else state
        if LIMIT_KEY in reserved:
            offset, count = parse_limit(reserved[LIMIT_KEY])
            state.limit = count
            if offset is not None:
                state.offset = offset
        if ORDER_KEY in reserved:
            state.order_by = parse_order(reserved[ORDER_KEY])
        if GROUP_KEY in reserved:
            state.group_by = parse_group(reserved[GROUP_KEY])
        if HAVING_KEY in reserved:
            state.having = parse_having(reserved[HAVING_KEY])
        if MATCH_KEY in reserved:
            state.match = parse_match(reserved[MATCH_KEY])

    def _check_predicate(self, predicate: Any, method: str) -> Mapping[str, Any]:
        if not isinstance(predicate, Mapping):
            raise validation_error(
                f"{method}() expects a mapping of conditions, got {type(predicate).__name__}",
                field="where",
                value=predicate,
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
        return predicate

    def _merge(self, predicate: Optional[Mapping[str, Any]], method: str = "where") -> None:
        """Shallow-merge ``predicate`` into the chain's where-mapping."""
        if predicate is None:
            return
        plain, reserved = split_reserved(self._check_predicate(predicate, method))
        parse_conditions(plain)
        self.state.where = {**self.state.where, **plain}
        self._apply_reserved(reserved)

    def _coerce(self, where: Predicate, id_field: str) -> Optional[Mapping[str, Any]]:
        """A scalar means ``{id_field: scalar}``."""
        if where is None or isinstance(where, Mapping):
            return where
        return {id_field: where}

    def _scoped(self, predicate: Optional[Mapping[str, Any]], method: str, *, group: bool = True) -> QueryState:
        """State for one terminal call: the chain's state plus that call's predicate.

        The chain's own state is left untouched. With ``group`` the predicate
        becomes a new, uniquely keyed AND group; otherwise it is merged
        shallowly like ``where()``.
        """
        state = self.state.model_copy()
        if predicate is None:
            return state
        plain, reserved = split_reserved(self._check_predicate(predicate, method))
        if plain:
            parse_conditions(plain)
            if group:
                number = 0
                while f"AND #{number}" in state.where:
                    number += 1
                state.where = {**state.where, f"AND #{number}": plain}
            else:
                state.where = {**state.where, **plain}
        self._apply_reserved(reserved, state)
        return state

    def _require_predicate(self, state: QueryState, method: str) -> None:
        """Refuse to write to every row of the table."""
        if not state.where and state.match is None:
            raise validation_error(
                f"{method}() on '{state.table}' needs a where predicate",
                field="where",
                error_code=ErrorCode.INVALID_ARGUMENT,
            )

    def _clause(self, state: Optional[QueryState] = None) -> QueryClause:
        """Lower query state into the clause handed to drivers."""
        state = self.state if state is None else state
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Lowering query state for '%s'",
                state.table,
                extra={"query_state": state.to_dict(exclude={"result_set"})},
            )
        return QueryClause(
            condition=parse_where(state.where),
            match=state.match,
            group_by=state.group_by,
            having=state.having,
            order_by=state.order_by,
            limit=state.limit,
            offset=state.offset,
        )

    @property
    def _joins(self):
        return self.state.joins or None

    def columns(self, columns: Columns) -> "QueryBuilder":
        """Select specific columns.

        Accepts ``"*"``, a list such as ``["id", "name (full_name)",
        "posts.title"]`` or a mapping of output alias to column or raw
        fragment. Disables ``has()`` and ``raw()`` for the rest of the chain.
        """
        self.guard.check("columns", self.state.table, normal=True)
        self.state.columns = columns
        self.guard.revoke(Capability.HAS, Capability.RAW)
        return self

    def where(self, predicate: Optional[Mapping[str, Any]] = None) -> "QueryBuilder":
        self._merge(predicate, "where")
        return self

    def filter(self, predicate: Optional[Mapping[str, Any]] = None) -> "QueryBuilder":
        """Merge ``predicate`` and switch the chain to filter-only mode."""
        self.guard.check("filter", self.state.table, unfiltered=True)
        self._merge(predicate, "filter")
        self.guard.enter_filter_only("filter", self.state.table)
        return self

    def join(
        self,
        join_type: Union[str, JoinType],
        table: str,
        on: Any,
        alias: Optional[str] = None,
    ) -> "QueryBuilder":
        """Join another table.

        Args:
            join_type: INNER, LEFT, RIGHT or FULL (case-insensitive)
            table: Table to join
            on: Column or list of columns shared by both tables (``USING``),
                or a mapping ``{"main_col": "joined_col"}`` (``ON``)
            alias: Alias of the joined table; required to join a table to itself

        Raises:
            InvalidJoinError: For an unknown join type or a self-join without alias
            ModeViolationError: If ``filter()`` was already called
        """
        self.guard.check("join", self.state.table, unfiltered=True)
        spec = self.joins.compose(join_type, self.state.name, table, on, alias)
        self.state.joins = [*self.state.joins, spec]
        self.guard.enter_filter_only("join", self.state.table)
        return self

    def inner_join(self, table: str, on: Any, alias: Optional[str] = None) -> "QueryBuilder":
        return self.join(JoinType.INNER, table, on, alias)

    def left_join(self, table: str, on: Any, alias: Optional[str] = None) -> "QueryBuilder":
        return self.join(JoinType.LEFT, table, on, alias)

    def right_join(self, table: str, on: Any, alias: Optional[str] = None) -> "QueryBuilder":
        return self.join(JoinType.RIGHT, table, on, alias)

    def full_join(self, table: str, on: Any, alias: Optional[str] = None) -> "QueryBuilder":
        return self.join(JoinType.FULL, table, on, alias)

    def limit(self, limit: int) -> "QueryBuilder":
        """Set the row count. Can be called once per chain; keeps any offset."""
        if self._limit_called:
            raise LimitAlreadySetError(
                f"limit() was already called for '{self.state.table}'",
                details={"table": self.state.table, "limit": self.state.limit},
            )
        _, count = parse_limit(limit)
        self.state.limit = count
        self._limit_called = True
        return self

    def start_at(self, offset: int) -> "QueryBuilder":
        """Skip ``offset`` rows. Without a row count, every remaining row is returned."""
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise validation_error(
                "start_at() expects a non-negative integer",
                field="offset",
                value=offset,
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
        self.state.offset = offset
        if self.state.limit is None:
            self.state.limit = UNBOUNDED_LIMIT
        return self

    def group(self, columns: Union[str, List[str]]) -> "QueryBuilder":
        self.state.group_by = parse_group(columns)
        return self

    def having(self, condition: Union[Mapping[str, Any], RawFragment]) -> "QueryBuilder":
        self.state.having = parse_having(condition)
        return self

    def order_by(self, order: Union[str, List[Any], Mapping[str, str]]) -> "QueryBuilder":
        """Order results: ``"col"``, ``["a", "b"]`` or ``{"col": "DESC"}``."""
        self.state.order_by = parse_order(order)
        return self

    def match(
        self,
        columns: Union[str, List[str]],
        keyword: str,
        mode: Union[str, MatchMode] = MatchMode.NATURAL,
    ) -> "QueryBuilder":
        """Full-text search (MySQL ``MATCH ... AGAINST``)."""
        mode_value = mode.value if isinstance(mode, MatchMode) else mode
        self.state.match = parse_match({"columns": columns, "keyword": keyword, "mode": mode_value})
        return self

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def get(self, where: Predicate = None, id_field: str = DEFAULT_ID_FIELD) -> Optional[Record]:
        """Fetch one row.

        Args:
            where: Extra conditions. A scalar means ``{id_field: where}``.
            id_field: Primary key column used for scalar lookups

        Returns:
            The first matching row, or None
        """
        state = self._scoped(self._coerce(where, id_field), "get")
        logger.debug("get() on '%s'", state.table)
        row = self.driver.get(state.table, state.columns, self._clause(state), joins=self._joins)
        self.state.result_set = row
        return self.materializer.to_object(row)

    def first(self) -> Optional[Record]:
        return self.get()

    def all(self, callback: Optional[Callable[[Record], Any]] = None) -> Any:
        """Fetch every matching row.

        With a ``callback``, rows are streamed to it one ``Record`` at a
        time and the driver's return value is passed back.
        """
        logger.debug("all() on '%s'", self.state.table)
        if callback is not None:
            result = self.driver.select(
                self.state.table,
                self.state.columns,
                self._clause(),
                joins=self._joins,
                callback=self.materializer.stream(callback),
            )
            self.state.result_set = result
            return result

        rows = self.driver.select(self.state.table, self.state.columns, self._clause(), joins=self._joins)
        self.state.result_set = rows
        return self.materializer.to_object(rows)

    def has(self, where: Predicate = None, id_field: str = DEFAULT_ID_FIELD) -> bool:
        self.guard.check("has", self.state.table, normal=True, capability=Capability.HAS)
        state = self._scoped(self._coerce(where, id_field), "has")
        return bool(self.driver.has(state.table, self._clause(state), joins=self._joins))

    def random(self, limit: Optional[int] = 1, where: Optional[Mapping[str, Any]] = None) -> Any:
        """Fetch random rows.

        A ``LIMIT`` inside ``where`` takes precedence over ``limit``. With a
        count of one, a single ``Record`` (or None) is returned, otherwise a
        list.
        """
        self.guard.check("random", self.state.table, normal=True)
        reserved = split_reserved(where)[1] if isinstance(where, Mapping) else {}
        state = self._scoped(where, "random")
        if LIMIT_KEY not in reserved:
            state.limit = limit or 1

        rows = self.driver.rand(state.table, state.columns, self._clause(state), joins=self._joins)
        if state.limit == 1:
            result = rows[0] if rows else None
        else:
            result = rows
        self.state.result_set = result
        return self.materializer.to_object(result)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def _fetch(self, predicate: Mapping[str, Any]) -> Optional[Record]:
        clause = QueryClause(condition=parse_where(predicate))
        row = self.driver.get(self.state.table, self.state.columns, clause)
        self.state.result_set = row
        return self.materializer.to_object(row)

    def save(self, data: Mapping[str, Any], id_field: str = DEFAULT_ID_FIELD) -> Optional[Record]:
        """Insert one row and return it as stored.

        The row is read back by the driver's last insert id. When the
        driver has none, ``data[id_field]`` is used, and failing that every
        scalar column of ``data``.
        """
        self.guard.check("save", self.state.table, normal=True)
        if not isinstance(data, Mapping):
            raise validation_error(
                "save() expects a mapping of column values",
                field="data",
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
        row = parse_insert_rows(data)[0]
        self.driver.insert(self.state.table, [row])

        inserted_id = self.driver.last_insert_id()
        if not inserted_id:
            inserted_id = row.get(id_field)
        if inserted_id:
            return self._fetch({id_field: inserted_id})

        scalars = {
            column: value for column, value in row.items()
            if value is None or isinstance(value, (str, int, float, bool))
        }
        logger.debug("No insert id for '%s', reading the row back by its values", self.state.table)
        return self._fetch(scalars)

    def update(
        self,
        data: Mapping[str, Any],
        where: Predicate = None,
        id_field: str = DEFAULT_ID_FIELD,
    ) -> int:
        """Update matching rows and return the affected count.

        ``data`` keys may carry ``[+]``, ``[-]``, ``[*]``, ``[/]`` or
        ``[JSON]`` suffixes.
        """
        self.guard.check("update", self.state.table, normal=True)
        if not isinstance(data, Mapping):
            raise validation_error(
                "update() expects a mapping of column values",
                field="data",
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
        assignments = parse_assignments(data)
        state = self._scoped(self._coerce(where, id_field), "update")
        self._require_predicate(state, "update")
        return self.driver.update(state.table, assignments, self._clause(state))

    def delete(self, where: Predicate = None, id_field: str = DEFAULT_ID_FIELD) -> int:
        """Delete matching rows. Without any predicate nothing runs and an error is raised."""
        self.guard.check("delete", self.state.table, normal=True)
        state = self._scoped(self._coerce(where, id_field), "delete")
        self._require_predicate(state, "delete")
        return self.driver.delete(state.table, self._clause(state))

    def delete_all(self, where: Optional[Mapping[str, Any]] = None) -> int:
        self.guard.check("delete_all", self.state.table, normal=True)
        state = self._scoped(where, "delete_all")
        self._require_predicate(state, "delete_all")
        return self.driver.delete(state.table, self._clause(state))

    def delete_one(self, where: Predicate = None, id_field: str = DEFAULT_ID_FIELD) -> int:
        """Delete at most one matching row, located by its ``id_field``."""
        self.guard.check("delete_one", self.state.table, normal=True)
        state = self._scoped(self._coerce(where, id_field), "delete_one")
        self._require_predicate(state, "delete_one")
        row = self.driver.get(state.table, [id_field], self._clause(state), joins=self._joins)
        if not row:
            return 0
        clause = QueryClause(condition=parse_where({id_field: row[id_field]}))
        return self.driver.delete(state.table, clause)

    def delete_by_id(self, id: Any, id_field: str = DEFAULT_ID_FIELD) -> int:
        self.guard.check("delete_by_id", self.state.table, normal=True)
        return self.delete({id_field: id}, id_field)

    # ------------------------------------------------------------------
    # Materialization
    # ------------------------------------------------------------------

    def as_object(self) -> Any:
        self.guard.check("as_object", self.state.table, normal=True)
        return self.materializer.to_object(self.state.result_set)

    def as_json(self) -> Any:
        self.guard.check("as_json", self.state.table, normal=True)
        return self.materializer.to_json(self.state.result_set)

    def as_dataframe(self):
        """The last result set as a pandas ``DataFrame``."""
        self.guard.check("as_dataframe", self.state.table, normal=True)
        return self.materializer.to_dataframe(self.state.result_set)

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def count(self, column: Optional[str] = None, where: Optional[Mapping[str, Any]] = None) -> Any:
        return self.aggregates.count(column, where)

    def sum(self, column: str, where: Optional[Mapping[str, Any]] = None) -> Any:
        return self.aggregates.sum(column, where)

    def avg(self, column: str, where: Optional[Mapping[str, Any]] = None) -> Any:
        return self.aggregates.avg(column, where)

    def max(self, column: str, where: Optional[Mapping[str, Any]] = None) -> Any:
        return self.aggregates.max(column, where)

    def min(self, column: str, where: Optional[Mapping[str, Any]] = None) -> Any:
        return self.aggregates.min(column, where)

    # ------------------------------------------------------------------
    # Raw SQL, transactions, diagnostics
    # ------------------------------------------------------------------

    def raw(self, query: str, params: Optional[Any] = None) -> RawFragment:
        """Build a raw SQL fragment for use as a value or column expression."""
        self.guard.check("raw", self.state.table, normal=True, capability=Capability.RAW)
        return self.driver.raw(query, params)

    def in_transaction(self, callback: Callable[["QueryBuilder"], T]) -> T:
        """Run ``callback(self)`` inside a transaction.

        Every call the callback makes through this builder runs on the
        transaction's connection. The transaction rolls back when the
        callback raises or returns ``False``.
        """
        original = self.driver

        def run(transaction_driver: Driver) -> T:
            self._driver = transaction_driver
            try:
                return callback(self)
            finally:
                self._driver = original

        logger.debug("Starting transaction for '%s'", self.state.table)
        return original.action(run)

    def info(self) -> Dict[str, Any]:
        return self.driver.info()

    def logs(self) -> List[str]:
        return self.driver.log()

    def last_query(self) -> Optional[str]:
        return self.driver.last()

    @classmethod
    def raw_query(cls, sql: str, params: Optional[Any] = None, using: Any = None, *, resolver: Any = None) -> Any:
        """Run literal SQL.

        Returns:
            A single ``Record`` when exactly one row comes back, otherwise a
            list of records
        """
        if resolver is None:
            from querychain.connection.resolver import get_resolver
            resolver = get_resolver()
        rows = resolver.resolve(using).query(sql, params)
        materializer = ResultMaterializer()
        if rows and len(rows) == 1:
            return materializer.to_object(rows[0])
        return materializer.to_object(rows or [])


Table = QueryBuilder
