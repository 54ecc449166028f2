from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Standard error codes for querychain operations.

    Codes are grouped by category so callers can branch on the kind of
    failure without matching on message text.

    Attributes:
        CONFIG_*: Configuration-related errors (1xxx)
        VALIDATION_*: Input validation errors (2xxx)
        CONNECTION_*: Connection resolution errors (3xxx)
        BUILDER_*: Query-builder contract violations (4xxx)
        EXECUTION_*: Runtime execution errors (5xxx)
    """
    # Configuration errors (1xxx)
    CONFIG_MISSING = "CONFIG_001"

    # Validation errors (2xxx)
    VALIDATION_ERROR = "VALIDATION_001"
    INVALID_ARGUMENT = "VALIDATION_002"
    INVALID_IDENTIFIER = "VALIDATION_003"

    # Connection errors (3xxx)
    CONNECTION_ERROR = "CONNECTION_001"

    # Builder errors (4xxx)
    MODE_VIOLATION = "BUILDER_001"
    INVALID_JOIN = "BUILDER_002"
    LIMIT_ALREADY_SET = "BUILDER_003"

    # Execution errors (5xxx)
    EXECUTION_ERROR = "EXECUTION_001"


class QueryChainError(Exception):
    """Base exception for all querychain errors.

    Attributes:
        message: Error message
        error_code: Error code from ErrorCode enum
        details: Additional error details
        cause: Optional underlying exception
    """

    default_code: ErrorCode = ErrorCode.EXECUTION_ERROR

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        self.cause = cause

        # Lazy import to avoid a circular dependency with the logging package
        from querychain.logging import get_logger
        logger = get_logger(__name__)
        logger.error(
            message,
            extra={
                "error_code": self.error_code.value,
                "error_details": self.details,
            },
            exc_info=cause is not None,
        )

    def __str__(self) -> str:
        msg = f"[{self.error_code.value}] {self.message}"
        if self.cause:
            msg = f"{msg} (caused by: {type(self.cause).__name__}: {str(self.cause)})"
        return msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "error_name": self.error_code.name,
            "details": self.details,
        }


class ConnectionResolutionError(QueryChainError):
    """A connection reference could not be turned into a driver."""

    default_code = ErrorCode.CONNECTION_ERROR


class ConfigurationError(ConnectionResolutionError):
    """A named connection section (or the settings file) does not exist."""

    default_code = ErrorCode.CONFIG_MISSING


class ModeViolationError(QueryChainError):
    """A builder method was called in a mode or state that forbids it."""

    default_code = ErrorCode.MODE_VIOLATION


class InvalidJoinError(QueryChainError):
    """Unknown join type, or a self-join without an alias."""

    default_code = ErrorCode.INVALID_JOIN


class LimitAlreadySetError(QueryChainError):
    """``limit()`` was called more than once on the same chain."""

    default_code = ErrorCode.LIMIT_ALREADY_SET


def _details(details: Optional[Dict[str, Any]], **fields: Any) -> Dict[str, Any]:
    """Copy ``details`` and add every field that was actually given."""
    merged = dict(details or {})
    merged.update({key: value for key, value in fields.items() if value is not None})
    return merged


def configuration_error(
    message: str,
    section: Optional[str] = None,
    *,
    details: Optional[Dict[str, Any]] = None,
    cause: Optional[Exception] = None,
) -> ConfigurationError:
    """Error for a missing connection section or settings file."""
    return ConfigurationError(message, details=_details(details, section=section), cause=cause)


def connection_error(
    message: str,
    connection: Optional[str] = None,
    *,
    details: Optional[Dict[str, Any]] = None,
    cause: Optional[Exception] = None,
) -> ConnectionResolutionError:
    """Error for a connection reference that cannot become a driver.

    Args:
        message: Error message
        connection: Section name or type name of the offending reference
        details: Additional error details
        cause: Underlying exception, e.g. a pydantic ``ValidationError``
    """
    return ConnectionResolutionError(message, details=_details(details, connection=connection), cause=cause)


def mode_violation_error(method: str, table: str, reason: str) -> ModeViolationError:
    """Error raised when a builder method is called out of turn.

    The message names the method and the table so the offending chain can be
    found from the log line alone.
    """
    return ModeViolationError(
        message=(
            f"You cannot call `{method}()` at this point in the query: {reason}. "
            f"Check the usage of `{method}()` in the query builder for '{table}'"
        ),
        details={"method": method, "table": table},
    )


def validation_error(
    message: str,
    field: Optional[str] = None,
    value: Any = None,
    *,
    error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    details: Optional[Dict[str, Any]] = None,
) -> QueryChainError:
    """Error for a malformed identifier, predicate key or argument.

    ``value`` is stored as text so details stay JSON friendly.
    """
    return QueryChainError(
        message,
        error_code=error_code,
        details=_details(details, field=field, value=None if value is None else str(value)),
    )
