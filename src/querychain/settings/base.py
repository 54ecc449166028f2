from pydantic_settings import BaseSettings, SettingsConfigDict


class QueryChainBaseSettings(BaseSettings):
    """Base class for environment-driven querychain settings.

    Values are read from ``QUERYCHAIN_``-prefixed environment variables and
    from a ``.env`` file in the working directory when one exists.

    Example:
        ```python
        class MySettings(QueryChainBaseSettings):
            timeout: int = 30   # read from QUERYCHAIN_TIMEOUT
        ```
    """
    model_config = SettingsConfigDict(
        env_prefix="QUERYCHAIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__"
    )
