"""Protocol definitions for querychain.

Protocols define the seams between the query builder and its external
collaborators so that implementations can be swapped without touching the
builder.
"""

from .driver import Columns, Driver
from .providers import ConfigProvider

__all__ = [
    "Columns",
    "ConfigProvider",
    "Driver",
]
