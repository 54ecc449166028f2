"""Settings for querychain.

Two configuration sources are involved:

1. Process settings (``main.py``): ``QUERYCHAIN_``-prefixed environment
   variables or a ``.env`` file, loaded through pydantic-settings.
2. Connection sections (``providers.py``): one section per named
   connection, served by a ``ConfigProvider``. By default this is the
   ``.ini`` file named by ``QUERYCHAIN_SETTINGS_FILE``.

Each resolved connection is validated by ``ConnectionSettings``
(``connection.py``).

Quick Start:
    >>> from querychain.settings import get_settings
    >>> provider = get_settings().get_config_provider()
    >>> provider.get_section("db")
"""

from .base import QueryChainBaseSettings
from .connection import DATABASE_TYPES, ConnectionSettings
from .main import _reload_settings, _Settings, get_settings
from .providers import IniConfigProvider, MappingConfigProvider

__all__ = [
    "ConnectionSettings",
    "DATABASE_TYPES",
    "IniConfigProvider",
    "MappingConfigProvider",
    "QueryChainBaseSettings",
    "_Settings",
    "_reload_settings",
    "get_settings",
]
