"""Tests for the exception hierarchy and its factory helpers."""

import pytest

from querychain.common.exceptions import (
    ConfigurationError,
    ConnectionResolutionError,
    ErrorCode,
    InvalidJoinError,
    LimitAlreadySetError,
    ModeViolationError,
    QueryChainError,
    configuration_error,
    connection_error,
    mode_violation_error,
    validation_error,
)


class TestHierarchy:
    """Error classes and their default codes."""

    @pytest.mark.parametrize("error_class,code", [
        (QueryChainError, ErrorCode.EXECUTION_ERROR),
        (ConnectionResolutionError, ErrorCode.CONNECTION_ERROR),
        (ConfigurationError, ErrorCode.CONFIG_MISSING),
        (ModeViolationError, ErrorCode.MODE_VIOLATION),
        (InvalidJoinError, ErrorCode.INVALID_JOIN),
        (LimitAlreadySetError, ErrorCode.LIMIT_ALREADY_SET),
    ])
    def test_default_codes(self, error_class, code):
        error = error_class("boom")

        assert error.error_code is code
        assert isinstance(error, QueryChainError)

    def test_configuration_error_is_connection_error(self):
        assert issubclass(ConfigurationError, ConnectionResolutionError)

    def test_str_includes_code_and_cause(self):
        error = QueryChainError("failed", cause=ValueError("inner"))

        assert str(error) == "[EXECUTION_001] failed (caused by: ValueError: inner)"

    def test_to_dict(self):
        error = InvalidJoinError("bad join", details={"table": "posts"})

        assert error.to_dict() == {
            "type": "InvalidJoinError",
            "message": "bad join",
            "error_code": "BUILDER_002",
            "error_name": "INVALID_JOIN",
            "details": {"table": "posts"},
        }


class TestFactories:
    """Factory helpers fill in details."""

    def test_configuration_error(self):
        error = configuration_error("missing", section="db")

        assert isinstance(error, ConfigurationError)
        assert error.details == {"section": "db"}

    def test_connection_error(self):
        cause = RuntimeError("refused")
        error = connection_error("no engine", connection="db", cause=cause)

        assert isinstance(error, ConnectionResolutionError)
        assert error.details == {"connection": "db"}
        assert error.cause is cause

    def test_mode_violation_error(self):
        error = mode_violation_error("save", "users", "the query is in filter-only mode")

        assert isinstance(error, ModeViolationError)
        assert error.message == (
            "You cannot call `save()` at this point in the query: the query is in filter-only mode. "
            "Check the usage of `save()` in the query builder for 'users'"
        )
        assert error.details == {"method": "save", "table": "users"}

    def test_validation_error(self):
        error = validation_error("bad", field="age", value=3)

        assert error.error_code is ErrorCode.VALIDATION_ERROR
        assert error.details == {"field": "age", "value": "3"}

    def test_validation_error_code_override(self):
        error = validation_error("bad", error_code=ErrorCode.INVALID_IDENTIFIER)

        assert error.error_code is ErrorCode.INVALID_IDENTIFIER
        assert error.details == {}
