from querychain.common.exceptions import (
    ConfigurationError,
    ConnectionResolutionError,
    ErrorCode,
    InvalidJoinError,
    LimitAlreadySetError,
    ModeViolationError,
    QueryChainError,
)

__all__ = [
    "ConfigurationError",
    "ConnectionResolutionError",
    "ErrorCode",
    "InvalidJoinError",
    "LimitAlreadySetError",
    "ModeViolationError",
    "QueryChainError",
]
