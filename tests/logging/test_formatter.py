import json
import logging

import pytest

from querychain.logging import CustomJsonFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="querychain.drivers.sqlalchemy",
        level=logging.INFO,
        pathname=__file__,
        lineno=20,
        msg="SQL statement %s",
        args=("executed",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_with_extras():
    output = CustomJsonFormatter().format(_record(**{"db.system": "sqlite", "duration.seconds": "0.000100"}))

    payload = json.loads(output)
    assert payload["message"] == "SQL statement executed"
    assert payload["level"] == "INFO"
    assert payload["logger"] == "querychain.drivers.sqlalchemy"
    assert payload["db.system"] == "sqlite"
    assert payload["duration.seconds"] == "0.000100"
    assert "timestamp" in payload
    assert "trace_id" not in payload


def test_formatter_includes_exception():
    try:
        raise ValueError("bad value")
    except ValueError:
        import sys
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(CustomJsonFormatter().format(record))

    assert "ValueError: bad value" in payload["exception"]


def test_formatter_serializes_unknown_types():
    payload = json.loads(CustomJsonFormatter().format(_record(error_details={"value": object})))

    assert "object" in payload["error_details"]["value"]


@pytest.fixture
def restore_querychain_logger():
    logger = logging.getLogger("querychain")
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield logger
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def test_setup_logging_configures_library_logger(restore_querychain_logger):
    setup_logging("debug")

    logger = restore_querychain_logger
    assert logger.level == logging.DEBUG
    assert logger.propagate is False
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, CustomJsonFormatter)


def test_setup_logging_defaults_to_settings(restore_querychain_logger, monkeypatch):
    from querychain.settings import _reload_settings

    monkeypatch.setenv("QUERYCHAIN_LOG_LEVEL", "WARNING")
    _reload_settings()
    try:
        setup_logging()
    finally:
        monkeypatch.delenv("QUERYCHAIN_LOG_LEVEL")
        _reload_settings()

    assert restore_querychain_logger.level == logging.WARNING
