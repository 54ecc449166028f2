"""Type definitions for querychain.

This module provides the base model, the typed predicate tree handed to
drivers and the query state accumulated by builder chains.
"""

from .base import QueryChainModel
from .predicates import (
    Assignment,
    Comparison,
    Condition,
    Group,
    Match,
    OrderItem,
    PredicateNode,
    QueryClause,
    RawFragment,
    raw,
)
from .query import JoinSpec, QueryState, render_table

__all__ = [
    # Base model
    'QueryChainModel',
    # Predicate tree
    'Assignment',
    'Comparison',
    'Condition',
    'Group',
    'Match',
    'OrderItem',
    'PredicateNode',
    'QueryClause',
    'RawFragment',
    'raw',
    # Query state
    'JoinSpec',
    'QueryState',
    'render_table',
]
