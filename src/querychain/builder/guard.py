from typing import Optional, Set

from querychain.common.exceptions import mode_violation_error
from querychain.constants.builder import BuilderMode, Capability
from querychain.logging import get_logger

logger = get_logger(__name__)


class ModeGuard:
    """Tracks which builder calls are still legal.

    Two independent one-way switches are kept:

    - the mode: ``NORMAL`` until ``filter()`` or ``join()`` switches it to
      ``FILTER_ONLY``
    - revoked capabilities: ``columns()`` revokes ``HAS`` and ``RAW``

    ``filtered`` records that ``filter()`` itself has run, after which
    neither ``filter()`` nor ``join()`` may be called again.
    """

    def __init__(self) -> None:
        self.mode = BuilderMode.NORMAL
        self.revoked: Set[Capability] = set()
        self.filtered = False

    def check(
        self,
        method: str,
        table: str,
        *,
        normal: bool = False,
        capability: Optional[Capability] = None,
        unfiltered: bool = False,
    ) -> None:
        """Fail unless ``method`` may run now.

        Args:
            method: Name of the builder method being called
            table: Table of the builder chain, for the error message
            normal: The method requires ``NORMAL`` mode
            capability: The method requires this capability to be intact
            unfiltered: The method requires ``filter()`` not to have run

        Raises:
            ModeViolationError: If any requirement is not met
        """
        if normal and self.mode is not BuilderMode.NORMAL:
            raise mode_violation_error(method, table, "the query is in filter-only mode")
        if capability is not None and capability in self.revoked:
            raise mode_violation_error(method, table, "columns() was already called")
        if unfiltered and self.filtered:
            raise mode_violation_error(method, table, "filter() was already called")

    def enter_filter_only(self, method: str, table: str) -> None:
        if self.mode is not BuilderMode.FILTER_ONLY:
            logger.debug("Query on '%s' switched to filter-only mode by %s()", table, method)
        self.mode = BuilderMode.FILTER_ONLY
        if method == "filter":
            self.filtered = True

    def revoke(self, *capabilities: Capability) -> None:
        self.revoked.update(capabilities)
