"""Key-suffix parser.

Lowers the mapping conventions used by application code into the typed
predicate tree of ``querychain.types.predicates``:

- ``{"age[>]": 18}`` becomes ``Comparison("age", Operator.GT, 18)``
- ``{"OR": {...}}`` / ``{"AND #2": {...}}`` become ``Group`` nodes
- ``{"hits[+]": 1}`` (update data) becomes ``Assignment("hits", ADD, 1)``
- the reserved keys ``LIMIT``, ``ORDER``, ``GROUP``, ``HAVING`` and ``MATCH``
  are split off by ``split_reserved`` and parsed by their own functions
"""

import json
import re
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from querychain.common.exceptions import ErrorCode, validation_error
from querychain.constants.sql import (
    AssignmentOperator,
    Connective,
    MatchMode,
    Operator,
    RESERVED_KEYS,
    SortDirection,
)
from querychain.types.predicates import (
    Assignment,
    Comparison,
    Condition,
    Group,
    Match,
    OrderItem,
    RawFragment,
)


KEY_PATTERN = re.compile(r"^\s*(?P<column>[^\[\]]+?)\s*(?:\[(?P<suffix>[^\[\]]+)\])?\s*$")
GROUP_PATTERN = re.compile(r"^(?P<connective>AND|OR)(?:\s*#.*)?$")

_OPERATORS = {op.value: op for op in Operator}
_ASSIGNMENT_OPERATORS = {op.value: op for op in AssignmentOperator}
_ARITHMETIC = frozenset({
    AssignmentOperator.ADD,
    AssignmentOperator.SUBTRACT,
    AssignmentOperator.MULTIPLY,
    AssignmentOperator.DIVIDE,
})


def split_key(key: str) -> Tuple[str, Optional[str]]:
    """Split ``"column[suffix]"`` into ``("column", "suffix")``.

    Raises:
        QueryChainError: If the key is not of that form
    """
    match = KEY_PATTERN.match(key) if isinstance(key, str) else None
    if not match:
        raise validation_error(
            f"Invalid predicate key: {key!r}",
            field="key",
            value=key,
        )
    return match.group("column"), match.group("suffix")


def group_connective(key: str) -> Optional[Connective]:
    """Return the connective if ``key`` names an AND/OR group, else None."""
    match = GROUP_PATTERN.match(key) if isinstance(key, str) else None
    if match:
        return Connective(match.group("connective"))
    return None


def split_reserved(mapping: Optional[Mapping[str, Any]]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Separate the reserved keys of ``mapping`` from its plain predicate keys."""
    plain: Dict[str, Any] = {}
    reserved: Dict[str, Any] = {}
    for key, value in (mapping or {}).items():
        if key in RESERVED_KEYS:
            reserved[key] = value
        else:
            plain[key] = value
    return plain, reserved


def _wrap_like(value: Any) -> Any:
    if isinstance(value, str) and "%" not in value and "_" not in value:
        return f"%{value}%"
    if isinstance(value, (list, tuple)):
        return [_wrap_like(item) for item in value]
    return value


def parse_comparison(key: str, value: Any) -> Comparison:
    column, suffix = split_key(key)
    if suffix is None:
        operator = Operator.EQ
    elif suffix in _OPERATORS:
        operator = _OPERATORS[suffix]
    else:
        raise validation_error(
            f"Unknown comparison operator [{suffix}] in {key!r}",
            field=column,
            value=suffix,
        )

    if isinstance(value, tuple):
        value = list(value)

    if operator in (Operator.BETWEEN, Operator.NOT_BETWEEN):
        if not isinstance(value, list) or len(value) != 2:
            raise validation_error(
                f"[{suffix}] expects a pair of values for '{column}'",
                field=column,
                value=value,
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
    elif operator in (Operator.LIKE, Operator.NOT_LIKE):
        value = _wrap_like(value)

    return Comparison(column=column, operator=operator, value=value)


def parse_conditions(mapping: Mapping[str, Any]) -> List[Condition]:
    """Parse every entry of ``mapping`` into a condition node, in order."""
    conditions: List[Condition] = []
    for key, value in mapping.items():
        if key in RESERVED_KEYS:
            raise validation_error(
                f"Reserved key {key!r} is not allowed inside a condition group",
                field=key,
            )
        connective = group_connective(key)
        if connective is not None:
            if not isinstance(value, Mapping):
                raise validation_error(
                    f"Group {key!r} expects a mapping of conditions",
                    field=key,
                    value=value,
                    error_code=ErrorCode.INVALID_ARGUMENT,
                )
            conditions.append(Group(connective=connective, conditions=parse_conditions(value)))
        else:
            conditions.append(parse_comparison(key, value))
    return conditions


def parse_where(mapping: Optional[Mapping[str, Any]]) -> Optional[Group]:
    """Parse a plain predicate mapping into an AND group (None when empty)."""
    if not mapping:
        return None
    conditions = parse_conditions(mapping)
    if not conditions:
        return None
    return Group(connective=Connective.AND, conditions=conditions)


def parse_having(value: Any) -> Optional[Condition]:
    if value is None:
        return None
    if isinstance(value, RawFragment):
        return value
    if not isinstance(value, Mapping):
        raise validation_error(
            "HAVING expects a mapping of conditions or a raw fragment",
            field="HAVING",
            value=value,
            error_code=ErrorCode.INVALID_ARGUMENT,
        )
    return parse_where(value)


def parse_limit(value: Any) -> Tuple[Optional[int], int]:
    """Parse a LIMIT value into ``(offset, count)``.

    An integer sets the count only (offset None). A two-element sequence is
    ``[offset, count]``.
    """
    if isinstance(value, bool):
        value = None
    if isinstance(value, int):
        if value < 0:
            raise validation_error("LIMIT must not be negative", field="LIMIT", value=value)
        return None, value
    if isinstance(value, (list, tuple)) and len(value) == 2 and all(
        isinstance(part, int) and not isinstance(part, bool) and part >= 0 for part in value
    ):
        return value[0], value[1]
    raise validation_error(
        "LIMIT expects a count or an [offset, count] pair",
        field="LIMIT",
        value=value,
        error_code=ErrorCode.INVALID_ARGUMENT,
    )


def _direction(column: str, value: Any) -> SortDirection:
    try:
        return SortDirection(str(value).upper())
    except ValueError:
        raise validation_error(
            f"Unknown sort direction {value!r} for '{column}'",
            field=column,
            value=value,
            error_code=ErrorCode.INVALID_ARGUMENT,
        )


def parse_order(value: Any) -> List[OrderItem]:
    """Parse an ORDER value.

    Accepts ``"col"``, ``["a", "b"]``, ``{"col": "DESC"}`` or a list mixing
    names and single-entry mappings.
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [OrderItem(column=value)]
    if isinstance(value, Mapping):
        return [OrderItem(column=col, direction=_direction(col, d)) for col, d in value.items()]
    if isinstance(value, (list, tuple)):
        items: List[OrderItem] = []
        for entry in value:
            items.extend(parse_order(entry))
        return items
    raise validation_error(
        "ORDER expects a column name, a list or a mapping",
        field="ORDER",
        value=value,
        error_code=ErrorCode.INVALID_ARGUMENT,
    )


def parse_group(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)) and all(isinstance(col, str) for col in value):
        return list(value)
    raise validation_error(
        "GROUP expects a column name or a list of column names",
        field="GROUP",
        value=value,
        error_code=ErrorCode.INVALID_ARGUMENT,
    )


def parse_match(value: Any) -> Optional[Match]:
    """Parse ``{"columns": [...], "keyword": "...", "mode": "boolean"}``."""
    if value is None:
        return None
    if isinstance(value, Match):
        return value
    if not isinstance(value, Mapping) or "columns" not in value or "keyword" not in value:
        raise validation_error(
            "MATCH expects a mapping with 'columns' and 'keyword'",
            field="MATCH",
            value=value,
            error_code=ErrorCode.INVALID_ARGUMENT,
        )
    columns = value["columns"]
    if isinstance(columns, str):
        columns = [columns]
    return Match(
        columns=list(columns),
        keyword=str(value["keyword"]),
        mode=MatchMode(value.get("mode", MatchMode.NATURAL.value)),
    )


def parse_assignments(data: Mapping[str, Any]) -> List[Assignment]:
    """Parse update data into assignments.

    Raises:
        QueryChainError: On unknown suffixes, or non-numeric arithmetic operands
    """
    assignments: List[Assignment] = []
    for key, value in data.items():
        column, suffix = split_key(key)
        if suffix is None:
            operator = AssignmentOperator.SET
        elif suffix in _ASSIGNMENT_OPERATORS:
            operator = _ASSIGNMENT_OPERATORS[suffix]
        else:
            raise validation_error(
                f"Unknown update operator [{suffix}] in {key!r}",
                field=column,
                value=suffix,
            )

        if operator in _ARITHMETIC and (
            isinstance(value, bool) or not isinstance(value, (int, float))
        ):
            raise validation_error(
                f"[{suffix}] expects a number for '{column}'",
                field=column,
                value=value,
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
        assignments.append(Assignment(column=column, operator=operator, value=value))
    return assignments


def encode_value(value: Any, as_json: bool = False) -> Any:
    """Encode container values for storage in a single column."""
    if as_json or isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return value


def parse_insert_rows(data: Any) -> List[Dict[str, Any]]:
    """Normalize insert data into a list of plain column mappings.

    ``[JSON]`` suffixes are stripped and their values JSON-encoded; other
    suffixes are rejected.
    """
    if isinstance(data, Mapping):
        rows: Sequence[Any] = [data]
    elif isinstance(data, (list, tuple)) and data and all(isinstance(r, Mapping) for r in data):
        rows = data
    else:
        raise validation_error(
            "Insert data must be a mapping or a non-empty list of mappings",
            field="data",
            error_code=ErrorCode.INVALID_ARGUMENT,
        )

    normalized: List[Dict[str, Any]] = []
    for row in rows:
        if not row:
            raise validation_error(
                "Insert data must not be empty",
                field="data",
                error_code=ErrorCode.INVALID_ARGUMENT,
            )
        values: Dict[str, Any] = {}
        for key, value in row.items():
            column, suffix = split_key(key)
            if suffix is not None and suffix != AssignmentOperator.JSON.value:
                raise validation_error(
                    f"Operator [{suffix}] is not allowed in insert data",
                    field=column,
                    value=suffix,
                )
            if isinstance(value, RawFragment):
                values[column] = value
            else:
                values[column] = encode_value(value, as_json=suffix is not None)
        normalized.append(values)
    return normalized
