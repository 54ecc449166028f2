"""Bundled driver implementation.

``SQLAlchemyDriver`` satisfies ``querychain.protocols.Driver`` on top of
SQLAlchemy 2.x; ``SQLCompiler`` renders the typed clauses it receives.
"""

from querychain.drivers.compiler import CompiledStatement, ParameterBag, SQLCompiler, split_table
from querychain.drivers.sqlalchemy import SQLAlchemyDriver

__all__ = [
    "CompiledStatement",
    "ParameterBag",
    "SQLAlchemyDriver",
    "SQLCompiler",
    "split_table",
]
