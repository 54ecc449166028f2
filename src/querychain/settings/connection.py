"""Connection options.

``ConnectionSettings`` validates the options of one named connection, after
the resolver has merged explicit options over the configured section. A section
of the ``settings.ini`` file looks like::

    [db]
    type = mysql
    host = localhost
    database = app
    username = app
    password = secret

``database_name`` is accepted as an alias of ``database``.
"""

from typing import Any, Dict, Optional

from pydantic import AliasChoices, ConfigDict, Field, SecretStr, field_validator
from sqlalchemy.engine import URL, make_url

from querychain.types.base import QueryChainModel


# Accepted ``type`` values -> (SQLAlchemy drivername, dialect family)
DATABASE_TYPES: Dict[str, tuple] = {
    "sqlite": ("sqlite", "sqlite"),
    "mysql": ("mysql", "mysql"),
    "mariadb": ("mariadb", "mysql"),
    "pgsql": ("postgresql", "postgresql"),
    "postgres": ("postgresql", "postgresql"),
    "postgresql": ("postgresql", "postgresql"),
    "mssql": ("mssql+pyodbc", "mssql"),
    "sqlsrv": ("mssql+pyodbc", "mssql"),
    "oracle": ("oracle", "oracle"),
}

DIALECT_FAMILIES = {
    "sqlite": "sqlite",
    "mysql": "mysql",
    "mariadb": "mysql",
    "postgresql": "postgresql",
    "mssql": "mssql",
    "oracle": "oracle",
}


class ConnectionSettings(QueryChainModel):
    """Validated options for one database connection.

    Attributes:
        type: Database type (sqlite, mysql, mariadb, pgsql, mssql, oracle, ...)
        host: Server host name
        port: Server port
        database: Database name, or file path for sqlite
        username: Login user
        password: Login password
        charset: Client character set (MySQL family)
        prefix: Table name prefix applied to every table reference
        url: Explicit SQLAlchemy URL. Wins over the individual parts.
        logging: Keep every executed statement in the driver's query log
        echo: Pass SQLAlchemy's ``echo`` flag through to the engine
        pool_size, max_overflow, pool_timeout, pool_pre_ping: Engine pool tuning
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str = Field(
        default="sqlite",
        validation_alias=AliasChoices("type", "database_type", "driver"),
    )
    host: Optional[str] = Field(default=None, validation_alias=AliasChoices("host", "server"))
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    database: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("database", "database_name", "name"),
    )
    username: Optional[str] = Field(default=None, validation_alias=AliasChoices("username", "user"))
    password: Optional[SecretStr] = None
    charset: Optional[str] = None
    prefix: str = ""
    url: Optional[str] = None

    logging: bool = False
    echo: bool = False
    pool_size: Optional[int] = Field(default=None, ge=1)
    max_overflow: Optional[int] = Field(default=None, ge=0)
    pool_timeout: Optional[float] = Field(default=None, gt=0)
    pool_pre_ping: bool = False

    @field_validator(
        "host", "port", "database", "username", "password", "charset", "url",
        "pool_size", "max_overflow", "pool_timeout",
        mode="before",
    )
    @classmethod
    def blank_as_unset(cls, v: Any) -> Any:
        """INI files express "no value" as an empty string."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v: Any) -> str:
        if v is None or not str(v).strip():
            return "sqlite"
        value = str(v).strip().lower()
        if value not in DATABASE_TYPES:
            raise ValueError(
                f"Unsupported database type '{v}'. "
                f"Expected one of: {', '.join(sorted(DATABASE_TYPES))}"
            )
        return value

    @field_validator("prefix", mode="before")
    @classmethod
    def default_prefix(cls, v: Any) -> str:
        return str(v).strip() if v else ""

    @field_validator("logging", "echo", "pool_pre_ping", mode="before")
    @classmethod
    def default_flag(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return False
        return v

    @property
    def dialect(self) -> str:
        """Dialect family used for identifier quoting and function names."""
        if self.url:
            backend = make_url(self.url).get_backend_name()
            return DIALECT_FAMILIES.get(backend, backend)
        return DATABASE_TYPES[self.type][1]

    @property
    def is_memory_sqlite(self) -> bool:
        if self.dialect != "sqlite":
            return False
        database = make_url(self.url).database if self.url else self.database
        return not database or database == ":memory:"

    def sqlalchemy_url(self) -> URL:
        """Build the SQLAlchemy URL for these options."""
        if self.url:
            return make_url(self.url)

        drivername, family = DATABASE_TYPES[self.type]
        query = {}
        if self.charset and family == "mysql":
            query["charset"] = self.charset
        return URL.create(
            drivername,
            username=self.username,
            password=self.password.get_secret_value() if self.password else None,
            host=self.host,
            port=self.port,
            database=self.database,
            query=query,
        )

    def engine_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``sqlalchemy.create_engine``."""
        options: Dict[str, Any] = {"echo": self.echo}
        if self.is_memory_sqlite:
            return options

        options["pool_pre_ping"] = self.pool_pre_ping
        for name in ("pool_size", "max_overflow", "pool_timeout"):
            value = getattr(self, name)
            if value is not None:
                options[name] = value
        return options

    def engine_key(self) -> str:
        """Identity of the engine these options describe. Contains the password."""
        options = ",".join(f"{name}={value}" for name, value in sorted(self.engine_options().items()))
        return f"{self.sqlalchemy_url().render_as_string(hide_password=False)}|{options}"

    def describe(self) -> Dict[str, Any]:
        """Connection details safe to log or display."""
        url = self.sqlalchemy_url()
        return {
            "type": self.type,
            "dialect": self.dialect,
            "host": url.host,
            "port": url.port,
            "database": url.database,
            "username": url.username,
            "url": url.render_as_string(hide_password=True),
            "prefix": self.prefix,
            "logging": self.logging,
        }
