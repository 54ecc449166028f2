from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator

from querychain.constants.builder import DEFAULT_CONNECTION
from querychain.logging import get_logger
from querychain.protocols.providers import ConfigProvider
from .base import QueryChainBaseSettings
from .providers import IniConfigProvider, MappingConfigProvider


logger = get_logger(__name__)

DEFAULT_SETTINGS_FILE = "settings.ini"


class _Settings(QueryChainBaseSettings):
    """Process-wide querychain settings.

    Environment variables:
        QUERYCHAIN_SETTINGS_FILE: Path of the connection ``.ini`` file.
            Defaults to ``settings.ini`` in the working directory, used only
            when it exists.
        QUERYCHAIN_DEFAULT_CONNECTION: Section used when a builder is given
            no connection reference.
        QUERYCHAIN_LOG_LEVEL: Level passed to ``setup_logging``.
    """

    settings_file: Optional[Path] = Field(
        default=None,
        description="Path of the sectioned .ini file holding connection options"
    )
    default_connection: str = Field(
        default=DEFAULT_CONNECTION,
        min_length=1,
        description="Named connection used when none is given"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level for the querychain logger"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level '{v}'")
        return level

    def get_config_provider(self) -> ConfigProvider:
        """Create the configuration provider for these settings.

        An explicitly configured settings file must exist. Without one, the
        default ``settings.ini`` is used when present, otherwise an empty
        provider is returned.

        Raises:
            ConfigurationError: If the configured settings file is missing
        """
        if self.settings_file is not None:
            return IniConfigProvider(self.settings_file)

        default_path = Path.cwd() / DEFAULT_SETTINGS_FILE
        if default_path.is_file():
            return IniConfigProvider(default_path)

        logger.debug("No settings file found, using an empty configuration")
        return MappingConfigProvider({})


# Singleton instance
_settings: Optional[_Settings] = None


def get_settings(force_reload: bool = False) -> _Settings:
    """Get the singleton settings instance.

    Args:
        force_reload: If True, creates a new instance even if one already
            exists. Useful in tests or after environment changes.

    Returns:
        The singleton _Settings instance

    Example:
        ```python
        settings = get_settings()
        assert settings is get_settings()
        ```
    """
    global _settings

    if _settings is None or force_reload:
        _settings = _Settings()

    return _settings


def _reload_settings() -> _Settings:
    """Force reload of settings.

    This is primarily for testing purposes where you need to reset
    the singleton instance.
    """
    global _settings
    _settings = None
    return get_settings(force_reload=True)
