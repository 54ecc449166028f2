"""Tests for SQLAlchemyDriver on an in-memory SQLite engine."""

import pytest
from sqlalchemy.exc import OperationalError

from querychain.drivers import SQLAlchemyDriver
from querychain.settings import ConnectionSettings
from querychain.types import QueryClause


@pytest.fixture
def make_driver():
    drivers = []

    def factory(**options):
        driver = SQLAlchemyDriver.from_settings(ConnectionSettings(**options))
        driver.query("CREATE TABLE items (id INTEGER PRIMARY KEY, label TEXT)")
        drivers.append(driver)
        return driver

    yield factory
    for driver in drivers:
        driver.engine.dispose()


class TestQueryLog:
    """Statement log retention."""

    def test_keeps_only_last_without_logging(self, make_driver):
        driver = make_driver()
        driver.insert("items", [{"label": "a"}])
        driver.count("items", None, None)

        assert driver.log() == ['SELECT COUNT(*) FROM "items"']
        assert driver.last() == 'SELECT COUNT(*) FROM "items"'

    def test_keeps_everything_with_logging(self, make_driver):
        driver = make_driver(logging=True)
        driver.insert("items", [{"label": "it's"}])

        assert driver.log()[-1] == "INSERT INTO \"items\" (\"label\") VALUES ('it''s')"
        assert len(driver.log()) == 2

    def test_failed_statement_is_logged_and_raised(self, make_driver):
        driver = make_driver()

        with pytest.raises(OperationalError):
            driver.select("missing", "*", None)

        assert driver.last() == 'SELECT * FROM "missing"'


class TestStatements:
    """Protocol operations."""

    def test_insert_many_and_last_insert_id(self, make_driver):
        driver = make_driver()

        assert driver.insert("items", [{"label": "a"}, {"label": "b"}]) == 2
        assert driver.last_insert_id() == 2

    def test_get_applies_single_row_window(self, make_driver):
        driver = make_driver()
        driver.insert("items", [{"label": "a"}, {"label": "b"}])

        row = driver.get("items", ["label"], QueryClause(offset=1))

        assert row == {"label": "b"}
        assert driver.last().endswith("LIMIT 1 OFFSET 1")

    def test_query_without_rows(self, make_driver):
        assert make_driver().query("DELETE FROM items") == []

    def test_quote(self, make_driver):
        assert make_driver().quote("O'Neil") == "'O''Neil'"


class TestTransactions:
    """action() semantics."""

    def test_nested_action_runs_inline(self, make_driver):
        driver = make_driver()

        def outer(tx):
            tx.insert("items", [{"label": "a"}])
            return tx.action(lambda inner: inner is tx)

        assert driver.action(outer) is True
        assert driver.count("items", None, None) == 1

    def test_scoped_driver_shares_log(self, make_driver):
        driver = make_driver(logging=True)

        driver.action(lambda tx: tx.count("items", None, None))

        assert driver.last() == 'SELECT COUNT(*) FROM "items"'

    def test_rollback(self, make_driver):
        driver = make_driver()

        def work(tx):
            tx.insert("items", [{"label": "a"}])
            return False

        assert driver.action(work) is False
        assert driver.count("items", None, None) == 0


def test_info_without_settings():
    from sqlalchemy import create_engine

    engine = create_engine("sqlite://")
    try:
        info = SQLAlchemyDriver(engine).info()
    finally:
        engine.dispose()

    assert info["dialect"] == "sqlite"
    assert info["in_transaction"] is False
    assert info["driver"] == "pysqlite"
