"""Provider protocol definitions.

This module defines the configuration provider interface consumed by the
connection resolver. Implementations live in ``querychain.settings``.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


@runtime_checkable
class ConfigProvider(Protocol):
    """Protocol for sectioned configuration providers.

    Each section holds the options of one named connection. A ``SERVER``
    section, when present, carries process-wide flags such as ``DEBUG``.
    Section names are matched case-insensitively.
    """

    def has_section(self, name: str) -> bool:
        ...

    def get_section(self, name: str) -> Optional[Dict[str, Any]]:
        """Retrieve a section's options.

        Args:
            name: Section name (case-insensitive)

        Returns:
            Mapping of option names to values, or None if the section does
            not exist
        """
        ...

    def sections(self) -> List[str]:
        ...
