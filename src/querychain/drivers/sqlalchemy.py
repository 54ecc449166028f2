import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, TypeVar, Union

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.pool import StaticPool

from querychain.constants.sql import QueryType
from querychain.drivers.compiler import NAMED_PARAMETER_PATTERN, CompiledStatement, SQLCompiler
from querychain.logging import get_logger
from querychain.protocols.driver import Columns
from querychain.settings.connection import DIALECT_FAMILIES, ConnectionSettings
from querychain.types.predicates import Assignment, QueryClause, RawFragment, raw
from querychain.types.query import JoinSpec
from querychain.utils.decorators import traced

logger = get_logger(__name__)

T = TypeVar("T")

MAX_STATEMENT_ATTRIBUTE_LENGTH = 4096


def _all_rows(result: CursorResult) -> List[Dict[str, Any]]:
    return [dict(row) for row in result.mappings()]


def _first_row(result: CursorResult) -> Optional[Dict[str, Any]]:
    row = result.mappings().first()
    return dict(row) if row is not None else None


def _scalar(result: CursorResult) -> Any:
    return result.scalar()


def _rowcount(result: CursorResult) -> int:
    return result.rowcount


class SQLAlchemyDriver:
    """SQLAlchemy-backed implementation of the ``Driver`` protocol.

    Statements are rendered by ``SQLCompiler`` and executed with ``text()``.
    Outside a transaction every call runs on its own pooled connection inside
    ``engine.begin()``, so each statement commits on its own. ``action()``
    runs a callback on one connection inside an explicit transaction.

    Features:
        - Query log (every statement when logging is enabled, otherwise only
          the last one), rendered with literal values for readability
        - One OpenTelemetry span per statement
        - INFO log per statement with its duration, ERROR log on failure;
          SQLAlchemy errors propagate unchanged

    Example:
        >>> driver = SQLAlchemyDriver(create_engine("sqlite:///app.db"))
        >>> driver.select("users", ["id", "name"], QueryClause(limit=10))
    """

    def __init__(
        self,
        bind: Union[Engine, Connection],
        *,
        dialect: Optional[str] = None,
        prefix: str = "",
        logging: bool = False,
        settings: Optional[ConnectionSettings] = None,
    ):
        """Initialize the driver.

        Args:
            bind: Engine to draw connections from, or a connection to run
                every statement on. A bound connection is used as-is and its
                transaction belongs to the caller.
            dialect: Dialect family. Derived from the engine when omitted.
            prefix: Table name prefix.
            logging: Keep every executed statement in the query log.
            settings: Options this driver was built from, for ``info()``.
        """
        if isinstance(bind, Connection):
            self._engine: Engine = bind.engine
            self._connection: Optional[Connection] = bind
        else:
            self._engine = bind
            self._connection = None

        name = self._engine.dialect.name
        self.dialect = dialect or DIALECT_FAMILIES.get(name, name)
        self.compiler = SQLCompiler(self.dialect, prefix)
        self.logging = logging
        self.settings = settings
        self._in_transaction = False
        self._log: List[str] = []
        self._last_insert_id: Any = None

    @staticmethod
    def build_engine(settings: ConnectionSettings) -> Engine:
        """Create the engine described by ``settings``.

        In-memory SQLite databases share one connection through
        ``StaticPool`` so every statement sees the same database.
        """
        options = settings.engine_options()
        if settings.is_memory_sqlite:
            options.update(poolclass=StaticPool, connect_args={"check_same_thread": False})

        engine = create_engine(settings.sqlalchemy_url(), **options)
        logger.info(
            "Created %s engine",
            settings.dialect,
            extra={"db.system": settings.dialect, "db.prefix": settings.prefix},
        )
        return engine

    @classmethod
    def from_settings(cls, settings: ConnectionSettings, engine: Optional[Engine] = None) -> "SQLAlchemyDriver":
        """Wrap ``engine``, or a new engine built from ``settings``.

        Engines are disposed by whoever created them: the resolver for the
        engines it caches, the caller otherwise.
        """
        if engine is None:
            engine = cls.build_engine(settings)
        return cls(
            engine,
            dialect=settings.dialect,
            prefix=settings.prefix,
            logging=settings.logging,
            settings=settings,
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def _get_connection(self) -> Iterator[Connection]:
        """Yield the bound connection, or a pooled one inside ``engine.begin()``."""
        if self._connection is not None:
            yield self._connection
        else:
            with self._engine.begin() as conn:
                yield conn

    def _render_for_log(self, statement: CompiledStatement) -> str:
        return NAMED_PARAMETER_PATTERN.sub(
            lambda m: self.compiler.quote_literal(statement.params[m.group(1)])
            if m.group(1) in statement.params else m.group(0),
            statement.sql,
        )

    def _record(self, statement: CompiledStatement) -> None:
        rendered = self._render_for_log(statement)
        if self.logging:
            self._log.append(rendered)
        else:
            self._log[:] = [rendered]

    def _span_attributes(self, statement: CompiledStatement, *_: Any) -> Dict[str, Any]:
        """Build OpenTelemetry span attributes for one statement."""
        sql = statement.sql.strip()
        if len(sql) > MAX_STATEMENT_ATTRIBUTE_LENGTH:
            sql = f"{sql[:MAX_STATEMENT_ATTRIBUTE_LENGTH - 3]}..."
        return {
            "db.system": self.dialect,
            "db.operation": statement.query_type.value,
            "db.statement": sql,
            "db.statement.length": len(sql),
        }

    @traced(
        "querychain.driver.execute",
        attributes=lambda self, statement, *args, **kwargs: self._span_attributes(statement),
    )
    def _execute(self, statement: CompiledStatement, consume: Callable[[CursorResult], T]) -> T:
        """Execute one statement and hand its result to ``consume``.

        ``consume`` runs while the connection is still open.
        """
        start_time = time.time()
        payload = {"db.system": self.dialect, "db.operation": statement.query_type.value}
        self._record(statement)

        try:
            with self._get_connection() as conn:
                result = conn.execute(text(statement.sql), statement.params)
                value = consume(result)
                if statement.query_type is QueryType.INSERT:
                    self._last_insert_id = getattr(result, "lastrowid", None)

            duration = time.time() - start_time
            logger.info(
                "SQL statement executed",
                extra={**payload, "duration.seconds": f"{duration:.6f}"},
            )
            return value

        except Exception as exc:
            duration = time.time() - start_time
            logger.error(
                "SQL statement failed",
                extra={**payload, "duration.seconds": f"{duration:.6f}", "error": str(exc)},
                exc_info=True,
            )
            raise

    # ------------------------------------------------------------------
    # Driver protocol
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        columns: Columns,
        where: Optional[QueryClause],
        *,
        joins: Optional[Sequence[JoinSpec]] = None,
        callback: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> Any:
        statement = self.compiler.select(table, columns, where, joins)
        if callback is None:
            return self._execute(statement, _all_rows)

        def stream(result: CursorResult) -> None:
            for row in result.mappings():
                callback(dict(row))

        return self._execute(statement, stream)

    def get(
        self,
        table: str,
        columns: Columns,
        where: Optional[QueryClause],
        *,
        joins: Optional[Sequence[JoinSpec]] = None,
    ) -> Optional[Dict[str, Any]]:
        clause = (where or QueryClause()).with_window(1)
        return self._execute(self.compiler.select(table, columns, clause, joins), _first_row)

    def insert(self, table: str, rows: Sequence[Dict[str, Any]]) -> int:
        inserted = 0
        for row in rows:
            inserted += self._execute(self.compiler.insert(table, row), _rowcount)
        return inserted

    def update(self, table: str, assignments: Sequence[Assignment], where: Optional[QueryClause]) -> int:
        return self._execute(self.compiler.update(table, assignments, where), _rowcount)

    def delete(self, table: str, where: Optional[QueryClause]) -> int:
        return self._execute(self.compiler.delete(table, where), _rowcount)

    def has(
        self,
        table: str,
        where: Optional[QueryClause],
        *,
        joins: Optional[Sequence[JoinSpec]] = None,
    ) -> bool:
        return bool(self._execute(self.compiler.exists(table, where, joins), _scalar))

    def rand(
        self,
        table: str,
        columns: Columns,
        where: Optional[QueryClause],
        *,
        joins: Optional[Sequence[JoinSpec]] = None,
    ) -> List[Dict[str, Any]]:
        statement = self.compiler.select(table, columns, where, joins, random_order=True)
        return self._execute(statement, _all_rows)

    def _aggregate(self, function: str, table: str, column: Optional[str],
                   where: Optional[QueryClause], joins: Optional[Sequence[JoinSpec]]) -> Any:
        statement = self.compiler.aggregate(function, table, column, where, joins)
        return self._execute(statement, _scalar)

    def count(self, table: str, column: Optional[str], where: Optional[QueryClause], *,
              joins: Optional[Sequence[JoinSpec]] = None) -> int:
        return int(self._aggregate("COUNT", table, column, where, joins) or 0)

    def sum(self, table: str, column: str, where: Optional[QueryClause], *,
            joins: Optional[Sequence[JoinSpec]] = None) -> Any:
        return self._aggregate("SUM", table, column, where, joins)

    def avg(self, table: str, column: str, where: Optional[QueryClause], *,
            joins: Optional[Sequence[JoinSpec]] = None) -> Any:
        return self._aggregate("AVG", table, column, where, joins)

    def max(self, table: str, column: str, where: Optional[QueryClause], *,
            joins: Optional[Sequence[JoinSpec]] = None) -> Any:
        return self._aggregate("MAX", table, column, where, joins)

    def min(self, table: str, column: str, where: Optional[QueryClause], *,
            joins: Optional[Sequence[JoinSpec]] = None) -> Any:
        return self._aggregate("MIN", table, column, where, joins)

    def last_insert_id(self) -> Any:
        return self._last_insert_id

    def raw(self, query: str, params: Optional[Any] = None) -> RawFragment:
        return raw(query, params)

    def query(self, sql: str, params: Optional[Any] = None) -> List[Dict[str, Any]]:
        """Execute literal SQL. Statements that return no rows yield ``[]``."""

        def consume(result: CursorResult) -> List[Dict[str, Any]]:
            if not result.returns_rows:
                return []
            return _all_rows(result)

        return self._execute(self.compiler.raw_statement(sql, params), consume)

    def _scoped(self, conn: Connection) -> "SQLAlchemyDriver":
        """Driver bound to ``conn`` for the duration of a transaction."""
        scoped = SQLAlchemyDriver(
            conn,
            dialect=self.dialect,
            prefix=self.compiler.prefix,
            logging=self.logging,
            settings=self.settings,
        )
        scoped._log = self._log
        scoped._in_transaction = True
        return scoped

    def _run_transaction(self, conn: Connection, transaction: Any, callback: Callable[["SQLAlchemyDriver"], T]) -> T:
        try:
            result = callback(self._scoped(conn))
        except Exception:
            transaction.rollback()
            logger.warning("Transaction rolled back after an error", extra={"db.system": self.dialect})
            raise

        if result is False:
            transaction.rollback()
            logger.info("Transaction rolled back by callback", extra={"db.system": self.dialect})
        else:
            transaction.commit()
            logger.debug("Transaction committed", extra={"db.system": self.dialect})
        return result

    def action(self, callback: Callable[["SQLAlchemyDriver"], T]) -> T:
        """Run ``callback`` inside a transaction.

        Rolls back when the callback raises (the exception propagates) or
        returns ``False``; commits otherwise. Called on a driver that is
        already inside a transaction, the callback simply runs inline.
        """
        if self._in_transaction:
            return callback(self)

        if self._connection is not None:
            conn = self._connection
            transaction = conn.begin_nested() if conn.in_transaction() else conn.begin()
            return self._run_transaction(conn, transaction, callback)

        with self._engine.connect() as conn:
            return self._run_transaction(conn, conn.begin(), callback)

    def quote(self, value: Any) -> str:
        return self.compiler.quote_literal(value)

    def info(self) -> Dict[str, Any]:
        """Connection details. The password is never included."""
        if self.settings is not None:
            details = self.settings.describe()
        else:
            url = self._engine.url
            details = {
                "dialect": self.dialect,
                "host": url.host,
                "port": url.port,
                "database": url.database,
                "username": url.username,
                "url": url.render_as_string(hide_password=True),
                "prefix": self.compiler.prefix,
                "logging": self.logging,
            }
        details["driver"] = self._engine.dialect.driver
        details["in_transaction"] = self._in_transaction
        return details

    def log(self) -> List[str]:
        return list(self._log)

    def last(self) -> Optional[str]:
        return self._log[-1] if self._log else None
