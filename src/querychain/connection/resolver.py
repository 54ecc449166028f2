"""Connection resolution.

Turns whatever a builder was given as its connection reference into a
ready driver:

====================================  =========================================
Reference                             Result
====================================  =========================================
``None``                              the default named connection (``db``)
object satisfying ``Driver``          returned unchanged
SQLAlchemy ``Engine``/``Connection``  wrapped in ``SQLAlchemyDriver``
``str``                               named configuration section
mapping                               explicit options over a section
====================================  =========================================

Explicit options win over the named section, which wins over defaults.
"""

from typing import Any, Dict, Mapping, Optional

from pydantic import ValidationError
from sqlalchemy.engine import Connection, Engine

from querychain.common.exceptions import (
    QueryChainError,
    configuration_error,
    connection_error,
)
from querychain.constants.builder import DEFAULT_CONNECTION, SERVER_SECTION
from querychain.drivers.sqlalchemy import SQLAlchemyDriver
from querychain.logging import get_logger
from querychain.protocols.driver import Driver
from querychain.protocols.providers import ConfigProvider
from querychain.settings.connection import ConnectionSettings

logger = get_logger(__name__)

USING_KEY = "using"
LOGGING_KEY = "logging"
_TRUE_STRINGS = frozenset({"1", "true", "yes", "on"})


def is_truthy(value: Any) -> bool:
    """Interpret configuration flags, which arrive as strings from INI files."""
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


class ConnectionResolver:
    """Resolve connection references into drivers.

    Every resolution yields a new driver with its own query log. Drivers
    built from identical options share one engine, and with it the
    connection pool (and the database itself for in-memory SQLite).

    Args:
        config: Provider of named connection sections.
        default_connection: Section used when no reference is given.
    """

    def __init__(self, config: ConfigProvider, default_connection: str = DEFAULT_CONNECTION):
        self.config = config
        self.default_connection = default_connection
        self._engines: Dict[str, Engine] = {}

    def dispose(self) -> None:
        """Dispose of every engine this resolver created."""
        for engine in self._engines.values():
            engine.dispose()
        self._engines.clear()

    def can_log(self) -> bool:
        """Default for the ``logging`` option when a connection does not set it.

        True when there is no ``SERVER`` section or when ``SERVER.DEBUG`` or
        ``SERVER.LOG_REQUESTS`` is truthy. Otherwise the ``logging`` flag of
        the ``db`` section decides.
        """
        server = self.config.get_section(SERVER_SECTION)
        if not server:
            return True
        if is_truthy(server.get("DEBUG")) or is_truthy(server.get("LOG_REQUESTS")):
            return True
        db_section = self.config.get_section(DEFAULT_CONNECTION) or {}
        return is_truthy(db_section.get(LOGGING_KEY, db_section.get("LOGGING", False)))

    def _section(self, name: str, required: bool) -> Dict[str, Any]:
        section = self.config.get_section(name)
        if section is None:
            if required:
                raise configuration_error(
                    f"Database connection '{name}' not found in the settings",
                    section=name,
                )
            logger.debug("Connection section '%s' not found, using explicit options only", name)
            return {}
        return section

    def _build(self, options: Dict[str, Any], label: str) -> SQLAlchemyDriver:
        if LOGGING_KEY not in options:
            options[LOGGING_KEY] = self.can_log()

        try:
            settings = ConnectionSettings.model_validate(options)
        except ValidationError as e:
            raise connection_error(
                f"Invalid options for connection '{label}'",
                connection=label,
                details={"errors": [err["msg"] for err in e.errors()]},
                cause=e,
            ) from e

        key = settings.engine_key()
        try:
            if key not in self._engines:
                self._engines[key] = SQLAlchemyDriver.build_engine(settings)
            driver = SQLAlchemyDriver.from_settings(settings, self._engines[key])
        except QueryChainError:
            raise
        except Exception as e:
            raise connection_error(
                f"Failed to create an engine for connection '{label}'",
                connection=label,
                cause=e,
            ) from e

        logger.debug(
            "Resolved connection '%s'",
            label,
            extra={"db.system": settings.dialect, "connection": label},
        )
        return driver

    def resolve(self, ref: Any = None) -> Driver:
        """Resolve ``ref`` into a driver.

        Raises:
            ConfigurationError: If a named section does not exist
            ConnectionResolutionError: If ``ref`` is of an unsupported kind,
                its options are invalid or the engine cannot be created
        """
        if ref is None:
            ref = self.default_connection

        if not isinstance(ref, (str, Mapping)) and isinstance(ref, Driver):
            return ref

        if isinstance(ref, (Engine, Connection)):
            return SQLAlchemyDriver(ref, logging=self.can_log())

        if isinstance(ref, str):
            return self._build(dict(self._section(ref, required=True)), ref)

        if isinstance(ref, Mapping):
            explicit = dict(ref)
            name = explicit.pop(USING_KEY, None) or self.default_connection
            options = {**self._section(name, required=False), **explicit}
            return self._build(options, name)

        raise connection_error(
            f"Unsupported connection reference of type {type(ref).__name__}",
            connection=type(ref).__name__,
        )


# Singleton instance
_resolver: Optional[ConnectionResolver] = None


def get_resolver(force_reload: bool = False) -> ConnectionResolver:
    """Get the resolver built from the process settings."""
    global _resolver

    if _resolver is None or force_reload:
        from querychain.settings import get_settings

        if _resolver is not None:
            _resolver.dispose()
        settings = get_settings(force_reload=force_reload)
        _resolver = ConnectionResolver(
            settings.get_config_provider(),
            default_connection=settings.default_connection,
        )

    return _resolver


def set_resolver(resolver: Optional[ConnectionResolver]) -> None:
    """Replace the process-wide resolver (None resets it).

    The engines of the replaced resolver are disposed of.
    """
    global _resolver
    if _resolver is not None and _resolver is not resolver:
        _resolver.dispose()
    _resolver = resolver


def resolve_connection(ref: Any = None) -> Driver:
    return get_resolver().resolve(ref)
