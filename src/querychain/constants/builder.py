"""Query builder constants."""

from enum import Enum


class BuilderMode(str, Enum):
    """State of a builder chain.

    ``NORMAL`` permits every operation. ``FILTER_ONLY`` is entered by
    ``filter()`` or ``join()`` and only allows chain-building and fetch
    operations from then on. There is no transition back.
    """

    NORMAL = "normal"
    FILTER_ONLY = "filter_only"


class Capability(str, Enum):
    """One-way capabilities that ``columns()`` revokes independently of the mode."""

    HAS = "has"
    RAW = "raw"


DEFAULT_CONNECTION = "db"
DEFAULT_ID_FIELD = "id"

# Row count used when an offset is set without a limit.
UNBOUNDED_LIMIT = 100_000_000

SERVER_SECTION = "SERVER"
