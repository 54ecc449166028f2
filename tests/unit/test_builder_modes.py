"""Unit tests for the query builder's mode rules."""

import pytest
from unittest.mock import Mock

from querychain.builder import QueryBuilder
from querychain.common.exceptions import (
    ErrorCode,
    InvalidJoinError,
    ModeViolationError,
)
from querychain.constants import BuilderMode, JoinType


@pytest.fixture
def driver():
    driver = Mock()
    driver.get.return_value = None
    driver.select.return_value = []
    driver.rand.return_value = []
    return driver


@pytest.fixture
def make_builder(driver):
    resolver = Mock()
    resolver.resolve.return_value = driver

    def factory(name="users", alias=None):
        return QueryBuilder.from_(name, alias, resolver=resolver)

    return factory


FILTER_ONLY_FORBIDDEN = [
    ("has", lambda b: b.has(1)),
    ("random", lambda b: b.random()),
    ("save", lambda b: b.save({"name": "X"})),
    ("as_json", lambda b: b.as_json()),
    ("as_object", lambda b: b.as_object()),
    ("as_dataframe", lambda b: b.as_dataframe()),
    ("raw", lambda b: b.raw("NOW()")),
    ("update", lambda b: b.update({"name": "Y"}, 1)),
    ("delete", lambda b: b.delete(1)),
    ("delete_all", lambda b: b.delete_all({"name": "Y"})),
    ("delete_one", lambda b: b.delete_one({"name": "Y"})),
    ("delete_by_id", lambda b: b.delete_by_id(1)),
    ("columns", lambda b: b.columns(["id"])),
    ("using", lambda b: b.using("other")),
]


class TestFilterOnlyMode:
    """Calls that are illegal once filter() or join() has run."""

    @pytest.mark.parametrize("method,call", FILTER_ONLY_FORBIDDEN, ids=[m for m, _ in FILTER_ONLY_FORBIDDEN])
    def test_forbidden_after_filter(self, make_builder, driver, method, call):
        """Each NORMAL-only method fails after filter()."""
        builder = make_builder().filter({"last_name": "Doe"})

        with pytest.raises(ModeViolationError) as exc_info:
            call(builder)

        assert exc_info.value.error_code == ErrorCode.MODE_VIOLATION
        assert exc_info.value.details == {"method": method, "table": "users"}
        assert f"`{method}()`" in exc_info.value.message
        assert "'users'" in exc_info.value.message

    @pytest.mark.parametrize("method,call", FILTER_ONLY_FORBIDDEN[:3], ids=[m for m, _ in FILTER_ONLY_FORBIDDEN[:3]])
    def test_forbidden_after_join(self, make_builder, method, call):
        """join() switches the chain to filter-only mode as well."""
        builder = make_builder().join("LEFT", "posts", {"id": "user_id"})

        with pytest.raises(ModeViolationError):
            call(builder)

    def test_no_driver_call_on_violation(self, make_builder, driver):
        """A rejected call never reaches the driver."""
        builder = make_builder().filter()

        with pytest.raises(ModeViolationError):
            builder.has({"id": 1})

        driver.has.assert_not_called()

    def test_fetch_and_aggregates_allowed(self, make_builder, driver):
        """Fetching and aggregates stay available in filter-only mode."""
        driver.count.return_value = 3
        builder = make_builder().filter({"status": "active"})

        assert builder.all() == []
        assert builder.get() is None
        assert builder.first() is None
        assert builder.count() == 3

    def test_chain_building_allowed(self, make_builder):
        """where/limit/order/group remain chainable after filter()."""
        builder = (
            make_builder()
            .filter({"status": "active"})
            .where({"age[>]": 18})
            .limit(5)
            .start_at(10)
            .order_by({"created_at": "DESC"})
            .group("status")
        )

        assert builder.state.limit == 5
        assert builder.state.offset == 10
        assert builder.guard.mode is BuilderMode.FILTER_ONLY

    def test_filter_twice_fails(self, make_builder):
        builder = make_builder().filter({"a": 1})

        with pytest.raises(ModeViolationError):
            builder.filter({"b": 2})

    def test_join_after_filter_fails(self, make_builder):
        builder = make_builder().filter({"a": 1})

        with pytest.raises(ModeViolationError):
            builder.join("INNER", "posts", "user_id")

    def test_filter_after_join_allowed(self, make_builder):
        """Joins come first, then one filter()."""
        builder = (
            make_builder()
            .join("LEFT", "posts", {"id": "user_id"})
            .join("INNER", "teams", {"team_id": "id"})
            .filter({"posts.published": True})
        )

        assert [j.table for j in builder.state.joins] == ["posts", "teams"]
        assert builder.state.where == {"posts.published": True}

    def test_mode_never_returns_to_normal(self, make_builder):
        builder = make_builder().filter()
        builder.table("accounts")
        builder.where({"x": 1})

        assert builder.guard.mode is BuilderMode.FILTER_ONLY


class TestColumnsCapabilities:
    """columns() revokes has() and raw() without entering filter-only mode."""

    def test_has_after_columns_fails(self, make_builder):
        with pytest.raises(ModeViolationError):
            make_builder("t").columns(["a", "b"]).has(1)

    def test_raw_after_columns_fails(self, make_builder):
        with pytest.raises(ModeViolationError):
            make_builder().columns(["a"]).raw("NOW()")

    def test_other_normal_calls_survive_columns(self, make_builder, driver):
        driver.insert.return_value = 1
        driver.last_insert_id.return_value = 1
        driver.get.return_value = {"id": 1}

        builder = make_builder().columns(["id"])

        assert builder.guard.mode is BuilderMode.NORMAL
        assert builder.save({"name": "X"}) == {"id": 1}

    def test_has_allowed_in_normal_mode(self, make_builder, driver):
        driver.has.return_value = True

        assert make_builder().has({"email": "ann@example.com"}) is True


class TestJoins:
    """Join validation."""

    def test_self_join_without_alias_fails(self, make_builder):
        builder = make_builder()

        with pytest.raises(InvalidJoinError):
            builder.join("INNER", "users", {"manager_id": "id"})

        assert builder.state.joins == []
        assert builder.guard.mode is BuilderMode.NORMAL

    def test_self_join_with_alias(self, make_builder):
        builder = make_builder().join("INNER", "users", {"manager_id": "id"}, alias="manager")

        assert builder.state.joins[0].alias == "manager"
        assert builder.state.joins[0].target == "users (manager)"

    @pytest.mark.parametrize("value,expected", [
        ("inner", JoinType.INNER),
        ("Left", JoinType.LEFT),
        ("RIGHT JOIN", JoinType.RIGHT),
        ("full outer join", JoinType.FULL),
        ("[>]", JoinType.LEFT),
        ("[<]", JoinType.RIGHT),
        ("[<>]", JoinType.FULL),
        ("[><]", JoinType.INNER),
    ])
    def test_join_type_names(self, make_builder, value, expected):
        builder = make_builder().join(value, "posts", "user_id")

        assert builder.state.joins[0].join_type is expected

    def test_invalid_join_type(self, make_builder):
        with pytest.raises(InvalidJoinError) as exc_info:
            make_builder().join("CROSS", "posts", "user_id")

        assert exc_info.value.error_code == ErrorCode.INVALID_JOIN

    def test_invalid_join_condition(self, make_builder):
        with pytest.raises(InvalidJoinError):
            make_builder().join("LEFT", "posts", 42)

    def test_join_shortcuts(self, make_builder):
        builder = (
            make_builder()
            .inner_join("a", "x")
            .left_join("b", ["x", "y"])
            .right_join("c", {"id": "c_id"})
            .full_join("d", "z")
        )

        assert [j.join_type for j in builder.state.joins] == [
            JoinType.INNER, JoinType.LEFT, JoinType.RIGHT, JoinType.FULL,
        ]
        assert builder.state.joins[1].on == ["x", "y"]
