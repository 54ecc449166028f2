"""Query builder components.

``QueryBuilder`` (also exported as ``Table``) owns the chain's state and
delegates to:

- ``ModeGuard``: which calls are legal
- ``JoinComposer``: join validation
- ``AggregateOperations``: COUNT/SUM/AVG/MAX/MIN
- ``ResultMaterializer``: records, JSON and DataFrames
"""

from querychain.builder.aggregates import AggregateOperations
from querychain.builder.base import QueryBuilder, Table
from querychain.builder.guard import ModeGuard
from querychain.builder.joins import JOIN_MARKERS, JoinComposer
from querychain.builder.materializer import Record, ResultMaterializer

__all__ = [
    "AggregateOperations",
    "JOIN_MARKERS",
    "JoinComposer",
    "ModeGuard",
    "QueryBuilder",
    "Record",
    "ResultMaterializer",
    "Table",
]
