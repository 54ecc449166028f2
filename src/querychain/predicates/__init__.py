"""Predicate helpers and the key-suffix parser."""

from querychain.predicates import agg
from querychain.predicates.parser import (
    encode_value,
    group_connective,
    parse_assignments,
    parse_comparison,
    parse_conditions,
    parse_group,
    parse_having,
    parse_insert_rows,
    parse_limit,
    parse_match,
    parse_order,
    parse_where,
    split_key,
    split_reserved,
)

__all__ = [
    "agg",
    "encode_value",
    "group_connective",
    "parse_assignments",
    "parse_comparison",
    "parse_conditions",
    "parse_group",
    "parse_having",
    "parse_insert_rows",
    "parse_limit",
    "parse_match",
    "parse_order",
    "parse_where",
    "split_key",
    "split_reserved",
]
