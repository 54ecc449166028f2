"""Configuration providers.

Both providers satisfy ``querychain.protocols.ConfigProvider``:

- ``IniConfigProvider`` reads a sectioned ``.ini`` file (one section per
  named connection plus an optional ``SERVER`` section)
- ``MappingConfigProvider`` serves sections from an in-memory mapping,
  which is what tests and embedding applications usually want
"""

import configparser
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from querychain.common.exceptions import configuration_error
from querychain.logging import get_logger


logger = get_logger(__name__)


class MappingConfigProvider:
    """Serve connection sections from a mapping of mappings.

    Example:
        ```python
        provider = MappingConfigProvider({
            "db": {"type": "sqlite", "database": "app.db"},
            "SERVER": {"DEBUG": True},
        })
        provider.get_section("DB")  # {"type": "sqlite", "database": "app.db"}
        ```
    """

    def __init__(self, sections: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._sections: Dict[str, Dict[str, Any]] = {
            name: dict(options) for name, options in (sections or {}).items()
        }
        self._index = {name.lower(): name for name in self._sections}

    def _lookup(self, name: str) -> Optional[str]:
        if name in self._sections:
            return name
        return self._index.get(name.lower())

    def has_section(self, name: str) -> bool:
        return self._lookup(name) is not None

    def get_section(self, name: str) -> Optional[Dict[str, Any]]:
        key = self._lookup(name)
        if key is None:
            return None
        return dict(self._sections[key])

    def sections(self) -> List[str]:
        return list(self._sections)


class IniConfigProvider(MappingConfigProvider):
    """Serve connection sections from an ``.ini`` file.

    Option names are case-insensitive and returned in lower case, except in
    the ``SERVER`` section where the original spelling (``DEBUG``,
    ``LOG_REQUESTS``) is kept. Values are returned as strings; the
    connection settings model converts them.

    Raises:
        ConfigurationError: If the file does not exist or cannot be parsed
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        if not self.path.is_file():
            raise configuration_error(
                f"Settings file not found: {self.path}",
                details={"path": str(self.path)},
            )

        parser = configparser.ConfigParser(interpolation=None)
        parser.optionxform = str
        try:
            with self.path.open(encoding="utf-8") as handle:
                parser.read_file(handle)
        except configparser.Error as e:
            raise configuration_error(
                f"Settings file could not be parsed: {self.path}",
                details={"path": str(self.path)},
                cause=e,
            ) from e

        sections = {}
        for name in parser.sections():
            options = dict(parser.items(name))
            if name.upper() != "SERVER":
                options = {key.lower(): value for key, value in options.items()}
            sections[name] = options

        logger.debug(
            "Loaded %d configuration section(s) from %s", len(sections), self.path
        )
        super().__init__(sections)
