"""SQL compiler.

Lowers the typed predicate tree and query clauses into parameterised SQL
text for SQLAlchemy's ``text()``. Values are always bound (``:p0``,
``:p1``, ...); only validated, quoted identifiers and raw fragments are
written into the statement itself.

Security Principles:
    1. Every identifier is validated before it is quoted
    2. Values never reach the SQL text, except through ``quote_literal``
    3. Raw fragments are passed through verbatim and are the caller's
       responsibility
"""

import json
import re
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple, Union

from querychain.common.exceptions import ErrorCode, validation_error
from querychain.constants.builder import UNBOUNDED_LIMIT
from querychain.constants.sql import AssignmentOperator, Connective, Operator, QueryType
from querychain.types.predicates import (
    Assignment,
    Comparison,
    Group,
    Match,
    OrderItem,
    QueryClause,
    RawFragment,
)
from querychain.types.query import JoinSpec


IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$\-]*$")
TABLE_PATTERN = re.compile(r"^\s*(?P<name>[^\s()]+)\s*(?:\(\s*(?P<alias>[^\s()]+)\s*\))?\s*$")
COLUMN_PATTERN = re.compile(r"^\s*(?P<column>[^\s()]+)\s*(?:\(\s*(?P<alias>[^\s()]+)\s*\))?\s*$")
RAW_IDENTIFIER_PATTERN = re.compile(r"<([A-Za-z_][A-Za-z0-9_$\-]*(?:\.[A-Za-z_*][A-Za-z0-9_$\-]*)?)>")
NAMED_PARAMETER_PATTERN = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")

MAX_IDENTIFIER_LENGTH = 128

_QUOTES = {
    "mysql": ("`", "`"),
    "mssql": ("[", "]"),
}

_RANDOM_FUNCTIONS = {
    "mysql": "RAND()",
    "mssql": "NEWID()",
    "oracle": "DBMS_RANDOM.VALUE",
}

_COMPARISON_SQL = {
    Operator.LT: "<",
    Operator.LTE: "<=",
    Operator.GT: ">",
    Operator.GTE: ">=",
}

_ARITHMETIC_SQL = {
    AssignmentOperator.ADD: "+",
    AssignmentOperator.SUBTRACT: "-",
    AssignmentOperator.MULTIPLY: "*",
    AssignmentOperator.DIVIDE: "/",
}

AGGREGATE_FUNCTIONS = frozenset({"COUNT", "SUM", "AVG", "MAX", "MIN"})


class CompiledStatement(NamedTuple):
    """A rendered statement with its bind parameters."""
    sql: str
    params: Dict[str, Any]
    query_type: QueryType


class ParameterBag:
    """Collects bind parameters for one statement."""

    def __init__(self) -> None:
        self.values: Dict[str, Any] = {}

    def bind(self, value: Any) -> str:
        name = f"p{len(self.values)}"
        self.values[name] = value
        return f":{name}"


def split_table(table: str) -> Tuple[str, Optional[str]]:
    """Split ``"name (alias)"`` into ``("name", "alias")``."""
    match = TABLE_PATTERN.match(table) if isinstance(table, str) else None
    if not match:
        raise validation_error(
            f"Invalid table reference: {table!r}",
            field="table",
            value=table,
            error_code=ErrorCode.INVALID_IDENTIFIER,
        )
    return match.group("name"), match.group("alias")


class SQLCompiler:
    """Render querychain clauses as SQL for one dialect family.

    Args:
        dialect: Dialect family (sqlite, mysql, postgresql, mssql, oracle).
            Selects identifier quoting, row windows and function names.
        prefix: Table name prefix. Prefixed tables are aliased with their
            unprefixed name so qualified columns keep working.
    """

    def __init__(self, dialect: str = "sqlite", prefix: str = ""):
        self.dialect = dialect
        self.prefix = prefix or ""

    # ------------------------------------------------------------------
    # Identifiers and literals
    # ------------------------------------------------------------------

    def _validate_identifier(self, identifier: str, identifier_type: str = "identifier") -> None:
        """Validate an identifier for SQL injection protection.

        Raises:
            QueryChainError: INVALID_IDENTIFIER if the identifier is unsafe
        """
        if not identifier or not isinstance(identifier, str):
            raise validation_error(
                f"Empty {identifier_type} name",
                field=identifier_type,
                error_code=ErrorCode.INVALID_IDENTIFIER,
            )
        if len(identifier) > MAX_IDENTIFIER_LENGTH:
            raise validation_error(
                f"{identifier_type} name too long: {identifier}",
                field=identifier_type,
                value=identifier,
                error_code=ErrorCode.INVALID_IDENTIFIER,
            )
        if not IDENTIFIER_PATTERN.match(identifier) or "--" in identifier:
            raise validation_error(
                f"Invalid {identifier_type} name: {identifier}",
                field=identifier_type,
                value=identifier,
                error_code=ErrorCode.INVALID_IDENTIFIER,
            )

    def quote_identifier(self, identifier: str, identifier_type: str = "identifier") -> str:
        self._validate_identifier(identifier, identifier_type)
        opening, closing = _QUOTES.get(self.dialect, ('"', '"'))
        return f"{opening}{identifier}{closing}"

    def quote_column(self, column: str) -> str:
        """Quote ``col``, ``table.col`` or ``table.*``."""
        if column == "*":
            return column
        parts = column.split(".")
        if len(parts) > 2:
            raise validation_error(
                f"Invalid column name: {column}",
                field="column",
                value=column,
                error_code=ErrorCode.INVALID_IDENTIFIER,
            )
        if len(parts) == 2:
            owner, name = parts
            name_sql = "*" if name == "*" else self.quote_identifier(name, "column")
            return f"{self.quote_identifier(owner, 'table')}.{name_sql}"
        return self.quote_identifier(column, "column")

    def quote_string(self, value: str) -> str:
        escaped = value.replace("'", "''")
        return f"'{escaped}'"

    def quote_literal(self, value: Any) -> str:
        """Render a Python value as a SQL literal."""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "1" if value else "0"
        if isinstance(value, (int, float)):
            return str(value)
        return self.quote_string(str(value))

    def table_name(self, name: str) -> str:
        return f"{self.prefix}{name}"

    def reference_name(self, table: str) -> str:
        """Name that columns of ``table`` are qualified with in a statement."""
        name, alias = split_table(table)
        return alias or name

    def table_ref(self, table: str, allow_alias: bool = True) -> str:
        """Render a ``FROM``/``JOIN`` target.

        ``"users (u)"`` becomes ``"users" AS "u"``. With a prefix, an
        unaliased table is aliased with its own name.
        """
        name, alias = split_table(table)
        rendered = self.quote_identifier(self.table_name(name), "table")
        if not allow_alias:
            return rendered
        if alias is None and self.prefix:
            alias = name
        if alias:
            rendered = f"{rendered} AS {self.quote_identifier(alias, 'alias')}"
        return rendered

    @property
    def random_function(self) -> str:
        return _RANDOM_FUNCTIONS.get(self.dialect, "RANDOM()")

    # ------------------------------------------------------------------
    # Raw fragments
    # ------------------------------------------------------------------

    def _replace_positional(self, sql: str, values: Sequence[Any], params: ParameterBag) -> str:
        pieces: List[str] = []
        remaining = list(values)
        in_string = False
        for char in sql:
            if char == "'":
                in_string = not in_string
            if char == "?" and not in_string:
                if not remaining:
                    raise validation_error(
                        "Raw SQL has more '?' placeholders than parameters",
                        field="params",
                        value=sql,
                        error_code=ErrorCode.INVALID_ARGUMENT,
                    )
                pieces.append(params.bind(remaining.pop(0)))
            else:
                pieces.append(char)
        if remaining:
            raise validation_error(
                "Raw SQL has fewer '?' placeholders than parameters",
                field="params",
                value=sql,
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
        return "".join(pieces)

    def raw_sql(self, fragment: RawFragment, params: ParameterBag) -> str:
        """Render a raw fragment, quoting ``<ident>`` and re-binding its parameters."""
        sql = RAW_IDENTIFIER_PATTERN.sub(lambda m: self.quote_column(m.group(1)), fragment.sql)

        if isinstance(fragment.params, dict):
            placeholders = {
                key.lstrip(":"): params.bind(value) for key, value in fragment.params.items()
            }
            return NAMED_PARAMETER_PATTERN.sub(
                lambda m: placeholders.get(m.group(1), m.group(0)),
                sql,
            )
        return self._replace_positional(sql, fragment.params, params)

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------

    def _operand(self, value: Any, params: ParameterBag) -> str:
        if isinstance(value, RawFragment):
            return self.raw_sql(value, params)
        return params.bind(value)

    def _comparison_sql(self, node: Comparison, params: ParameterBag) -> str:
        column = self.quote_column(node.column)
        value = node.value
        operator = Operator(node.operator)

        if operator in (Operator.EQ, Operator.NEQ):
            negate = operator is Operator.NEQ
            if value is None:
                return f"{column} IS NOT NULL" if negate else f"{column} IS NULL"
            if isinstance(value, (list, tuple, set, frozenset)):
                values = list(value)
                if not values:
                    return "1 = 1" if negate else "1 = 0"
                placeholders = ", ".join(self._operand(item, params) for item in values)
                return f"{column} {'NOT IN' if negate else 'IN'} ({placeholders})"
            return f"{column} {'!=' if negate else '='} {self._operand(value, params)}"

        if operator in _COMPARISON_SQL:
            return f"{column} {_COMPARISON_SQL[operator]} {self._operand(value, params)}"

        if operator in (Operator.LIKE, Operator.NOT_LIKE):
            keyword = "NOT LIKE" if operator is Operator.NOT_LIKE else "LIKE"
            if isinstance(value, (list, tuple)):
                joiner = " AND " if operator is Operator.NOT_LIKE else " OR "
                parts = [f"{column} {keyword} {self._operand(item, params)}" for item in value]
                return f"({joiner.join(parts)})" if parts else "1 = 1"
            return f"{column} {keyword} {self._operand(value, params)}"

        if operator in (Operator.BETWEEN, Operator.NOT_BETWEEN):
            low, high = value
            rendered = f"({column} BETWEEN {self._operand(low, params)} AND {self._operand(high, params)})"
            return f"NOT {rendered}" if operator is Operator.NOT_BETWEEN else rendered

        if operator is Operator.REGEXP:
            pattern = self._operand(value, params)
            if self.dialect == "postgresql":
                return f"{column} ~ {pattern}"
            if self.dialect == "oracle":
                return f"REGEXP_LIKE({column}, {pattern})"
            if self.dialect == "mssql":
                raise validation_error(
                    "REGEXP is not supported for mssql",
                    field=node.column,
                    error_code=ErrorCode.INVALID_ARGUMENT,
                )
            return f"{column} REGEXP {pattern}"

        raise validation_error(f"Unsupported operator: {operator}", field=node.column)

    def match_sql(self, node: Match, params: ParameterBag) -> str:
        if self.dialect != "mysql":
            raise validation_error(
                f"Full-text MATCH is only supported for mysql, not {self.dialect}",
                field="MATCH",
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
        columns = ", ".join(self.quote_column(col) for col in node.columns)
        return f"MATCH ({columns}) AGAINST ({params.bind(node.keyword)} {node.mode.clause})"

    def condition_sql(self, node: Any, params: ParameterBag) -> str:
        """Render one condition node. Empty groups render as an empty string."""
        if isinstance(node, Group):
            parts = [part for part in (self.condition_sql(c, params) for c in node.conditions) if part]
            if not parts:
                return ""
            if len(parts) == 1:
                return parts[0]
            connective = Connective(node.connective).value
            return "(" + f" {connective} ".join(parts) + ")"
        if isinstance(node, Comparison):
            return self._comparison_sql(node, params)
        if isinstance(node, RawFragment):
            return self.raw_sql(node, params)
        if isinstance(node, Match):
            return self.match_sql(node, params)
        raise validation_error(f"Unsupported condition node: {type(node).__name__}")

    # ------------------------------------------------------------------
    # Clauses
    # ------------------------------------------------------------------

    def columns_sql(self, columns: Union[str, List[str], Dict[str, Any]], params: ParameterBag) -> str:
        if columns is None or columns == "*":
            return "*"
        if isinstance(columns, str):
            columns = [columns]
        rendered: List[str] = []
        if isinstance(columns, dict):
            for alias, expression in columns.items():
                if isinstance(expression, RawFragment):
                    source = self.raw_sql(expression, params)
                else:
                    source = self.quote_column(str(expression))
                rendered.append(f"{source} AS {self.quote_identifier(alias, 'alias')}")
            return ", ".join(rendered)

        for column in columns:
            if isinstance(column, RawFragment):
                rendered.append(self.raw_sql(column, params))
                continue
            match = COLUMN_PATTERN.match(column)
            if not match:
                raise validation_error(
                    f"Invalid column name: {column}",
                    field="column",
                    value=column,
                    error_code=ErrorCode.INVALID_IDENTIFIER,
                )
            source = self.quote_column(match.group("column"))
            if match.group("alias"):
                source = f"{source} AS {self.quote_identifier(match.group('alias'), 'alias')}"
            rendered.append(source)
        return ", ".join(rendered)

    def joins_sql(self, table: str, joins: Optional[Sequence[JoinSpec]]) -> str:
        if not joins:
            return ""
        main_reference = self.reference_name(table)
        rendered: List[str] = []
        for join in joins:
            target = self.table_ref(join.target)
            if isinstance(join.on, str):
                condition = f"USING ({self.quote_identifier(join.on, 'column')})"
            elif isinstance(join.on, list):
                columns = ", ".join(self.quote_identifier(col, "column") for col in join.on)
                condition = f"USING ({columns})"
            else:
                pairs = []
                for left, right in join.on.items():
                    left_sql = self.quote_column(left if "." in left else f"{main_reference}.{left}")
                    right_sql = self.quote_column(right if "." in right else f"{join.reference}.{right}")
                    pairs.append(f"{left_sql} = {right_sql}")
                condition = "ON " + " AND ".join(pairs)
            rendered.append(f" {join.join_type.keyword} {target} {condition}")
        return "".join(rendered)

    def where_sql(self, clause: Optional[QueryClause], params: ParameterBag) -> str:
        if clause is None:
            return ""
        parts: List[str] = []
        if clause.condition is not None:
            rendered = self.condition_sql(clause.condition, params)
            if rendered:
                parts.append(rendered)
        if clause.match is not None:
            parts.append(self.match_sql(clause.match, params))
        if not parts:
            return ""
        return " WHERE " + " AND ".join(parts)

    def order_sql(self, order_by: Sequence[OrderItem]) -> str:
        if not order_by:
            return ""
        items = ", ".join(f"{self.quote_column(item.column)} {item.direction.value}" for item in order_by)
        return f" ORDER BY {items}"

    def window_sql(self, limit: Optional[int], offset: Optional[int], has_order: bool) -> str:
        if limit is None and offset is None:
            return ""
        count = UNBOUNDED_LIMIT if limit is None else limit
        if self.dialect in ("mssql", "oracle"):
            prefix = "" if has_order or self.dialect == "oracle" else " ORDER BY (SELECT NULL)"
            return f"{prefix} OFFSET {int(offset or 0)} ROWS FETCH NEXT {int(count)} ROWS ONLY"
        sql = f" LIMIT {int(count)}"
        if offset:
            sql += f" OFFSET {int(offset)}"
        return sql

    def tail_sql(
        self,
        clause: Optional[QueryClause],
        params: ParameterBag,
        *,
        order_override: Optional[str] = None,
    ) -> str:
        """Render ``WHERE ... GROUP BY ... HAVING ... ORDER BY ... LIMIT``."""
        if clause is None:
            return ""
        sql = self.where_sql(clause, params)
        if clause.group_by:
            sql += " GROUP BY " + ", ".join(self.quote_column(col) for col in clause.group_by)
        if clause.having is not None:
            having = self.condition_sql(clause.having, params)
            if having:
                sql += f" HAVING {having}"
        if order_override:
            sql += f" ORDER BY {order_override}"
        else:
            sql += self.order_sql(clause.order_by)
        has_order = bool(order_override or clause.order_by)
        return sql + self.window_sql(clause.limit, clause.offset, has_order)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        columns: Union[str, List[str], Dict[str, Any]],
        clause: Optional[QueryClause],
        joins: Optional[Sequence[JoinSpec]] = None,
        *,
        random_order: bool = False,
    ) -> CompiledStatement:
        params = ParameterBag()
        columns_sql = self.columns_sql(columns, params)
        sql = f"SELECT {columns_sql} FROM {self.table_ref(table)}{self.joins_sql(table, joins)}"
        sql += self.tail_sql(clause, params, order_override=self.random_function if random_order else None)
        return CompiledStatement(sql, params.values, QueryType.SELECT)

    def exists(
        self,
        table: str,
        clause: Optional[QueryClause],
        joins: Optional[Sequence[JoinSpec]] = None,
    ) -> CompiledStatement:
        params = ParameterBag()
        inner = f"SELECT 1 FROM {self.table_ref(table)}{self.joins_sql(table, joins)}"
        inner += self.tail_sql(clause, params)
        if self.dialect == "mssql":
            sql = f"SELECT CASE WHEN EXISTS ({inner}) THEN 1 ELSE 0 END"
        elif self.dialect == "oracle":
            sql = f"SELECT CASE WHEN EXISTS ({inner}) THEN 1 ELSE 0 END FROM DUAL"
        else:
            sql = f"SELECT EXISTS ({inner})"
        return CompiledStatement(sql, params.values, QueryType.EXISTS)

    def aggregate(
        self,
        function: str,
        table: str,
        column: Optional[str],
        clause: Optional[QueryClause],
        joins: Optional[Sequence[JoinSpec]] = None,
    ) -> CompiledStatement:
        """Render ``SELECT FN(column)`` over the WHERE part of ``clause``."""
        function = function.upper()
        if function not in AGGREGATE_FUNCTIONS:
            raise validation_error(
                f"Unsupported aggregate function: {function}",
                field="function",
                value=function,
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
        params = ParameterBag()
        target = "*" if column is None else self.quote_column(column)
        sql = f"SELECT {function}({target}) FROM {self.table_ref(table)}{self.joins_sql(table, joins)}"
        sql += self.where_sql(clause, params)
        return CompiledStatement(sql, params.values, QueryType.AGGREGATE)

    def insert(self, table: str, row: Dict[str, Any]) -> CompiledStatement:
        params = ParameterBag()
        columns = ", ".join(self.quote_identifier(col, "column") for col in row)
        values = ", ".join(self._operand(value, params) for value in row.values())
        sql = f"INSERT INTO {self.table_ref(table, allow_alias=False)} ({columns}) VALUES ({values})"
        return CompiledStatement(sql, params.values, QueryType.INSERT)

    def _assignment_sql(self, assignment: Assignment, params: ParameterBag) -> str:
        column = self.quote_identifier(assignment.column, "column")
        operator = AssignmentOperator(assignment.operator)
        value = assignment.value

        if operator in _ARITHMETIC_SQL:
            return f"{column} = {column} {_ARITHMETIC_SQL[operator]} {params.bind(value)}"
        if isinstance(value, RawFragment):
            return f"{column} = {self.raw_sql(value, params)}"
        if operator is AssignmentOperator.JSON or isinstance(value, (dict, list, tuple)):
            value = json.dumps(value, default=str)
        return f"{column} = {params.bind(value)}"

    def update(self, table: str, assignments: Sequence[Assignment], clause: Optional[QueryClause]) -> CompiledStatement:
        if not assignments:
            raise validation_error(
                "Update requires at least one assignment",
                field="data",
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
        params = ParameterBag()
        set_sql = ", ".join(self._assignment_sql(item, params) for item in assignments)
        sql = f"UPDATE {self.table_ref(table, allow_alias=False)} SET {set_sql}"
        sql += self.where_sql(clause, params)
        return CompiledStatement(sql, params.values, QueryType.UPDATE)

    def delete(self, table: str, clause: Optional[QueryClause]) -> CompiledStatement:
        params = ParameterBag()
        sql = f"DELETE FROM {self.table_ref(table, allow_alias=False)}"
        sql += self.where_sql(clause, params)
        return CompiledStatement(sql, params.values, QueryType.DELETE)

    def raw_statement(self, sql: str, params: Optional[Any] = None) -> CompiledStatement:
        """Prepare literal SQL: ``<ident>`` quoting plus named or positional binds."""
        bag = ParameterBag()
        if params is None:
            params = {}
        elif not isinstance(params, dict):
            params = list(params)
        rendered = self.raw_sql(RawFragment(sql=sql, params=params), bag)
        return CompiledStatement(rendered, bag.values, QueryType.RAW)
