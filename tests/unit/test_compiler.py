"""SQL compiler tests.

Each test renders a statement for one dialect and checks the SQL text and
the bound parameters.
"""

import json

import pytest

from querychain.common.exceptions import ErrorCode, QueryChainError
from querychain.constants import JoinType, MatchMode, QueryType, SortDirection
from querychain.drivers.compiler import ParameterBag, SQLCompiler, split_table
from querychain.predicates.parser import parse_assignments, parse_having, parse_where
from querychain.types import Group, JoinSpec, Match, OrderItem, QueryClause, raw


def where(mapping, **kwargs) -> QueryClause:
    return QueryClause(condition=parse_where(mapping), **kwargs)


@pytest.fixture
def sqlite():
    return SQLCompiler("sqlite")


class TestIdentifiers:
    """Quoting and validation of identifiers."""

    @pytest.mark.parametrize("dialect,expected", [
        ("sqlite", '"users"'),
        ("postgresql", '"users"'),
        ("mysql", "`users`"),
        ("mssql", "[users]"),
    ])
    def test_quoting_per_dialect(self, dialect, expected):
        assert SQLCompiler(dialect).quote_identifier("users") == expected

    def test_quote_column(self, sqlite):
        assert sqlite.quote_column("name") == '"name"'
        assert sqlite.quote_column("users.name") == '"users"."name"'
        assert sqlite.quote_column("users.*") == '"users".*'
        assert sqlite.quote_column("*") == "*"

    @pytest.mark.parametrize("identifier", [
        "users; DROP TABLE users",
        "a--b",
        "1abc",
        "",
        "x" * 129,
    ])
    def test_invalid_identifier(self, sqlite, identifier):
        with pytest.raises(QueryChainError) as exc_info:
            sqlite.quote_identifier(identifier)

        assert exc_info.value.error_code == ErrorCode.INVALID_IDENTIFIER

    def test_three_part_column_rejected(self, sqlite):
        with pytest.raises(QueryChainError):
            sqlite.quote_column("db.users.name")

    def test_split_table(self):
        assert split_table("users") == ("users", None)
        assert split_table("users (u)") == ("users", "u")
        with pytest.raises(QueryChainError):
            split_table("users (u) x")

    def test_quote_literal(self, sqlite):
        assert sqlite.quote_literal(None) == "NULL"
        assert sqlite.quote_literal(True) == "1"
        assert sqlite.quote_literal(2.5) == "2.5"
        assert sqlite.quote_literal("O'Neil") == "'O''Neil'"

    def test_table_ref_alias_and_prefix(self, sqlite):
        prefixed = SQLCompiler("sqlite", prefix="app_")

        assert sqlite.table_ref("users (u)") == '"users" AS "u"'
        assert prefixed.table_ref("users") == '"app_users" AS "users"'
        assert prefixed.table_ref("users (u)") == '"app_users" AS "u"'
        assert prefixed.table_ref("users", allow_alias=False) == '"app_users"'


class TestSelect:
    """SELECT rendering."""

    def test_simple(self, sqlite):
        statement = sqlite.select("users", "*", where({"a": 1, "b[>]": 2}))

        assert statement.sql == 'SELECT * FROM "users" WHERE ("a" = :p0 AND "b" > :p1)'
        assert statement.params == {"p0": 1, "p1": 2}
        assert statement.query_type is QueryType.SELECT

    def test_single_condition_unwrapped(self, sqlite):
        statement = sqlite.select("users", "*", where({"a": 1}))

        assert statement.sql == 'SELECT * FROM "users" WHERE "a" = :p0'

    def test_no_clause(self, sqlite):
        assert sqlite.select("users", "*", None).sql == 'SELECT * FROM "users"'

    def test_empty_group_has_no_where(self, sqlite):
        statement = sqlite.select("users", "*", QueryClause(condition=Group(conditions=[])))

        assert statement.sql == 'SELECT * FROM "users"'

    def test_nested_or(self, sqlite):
        statement = sqlite.select("users", "*", where({
            "status": "active",
            "OR": {"age[<]": 18, "age[>]": 65},
        }))

        assert statement.sql == (
            'SELECT * FROM "users" WHERE ("status" = :p0 AND ("age" < :p1 OR "age" > :p2))'
        )
        assert statement.params == {"p0": "active", "p1": 18, "p2": 65}

    def test_columns(self, sqlite):
        statement = sqlite.select("users", ["id", "name (full_name)", "posts.title"], None)

        assert statement.sql == 'SELECT "id", "name" AS "full_name", "posts"."title" FROM "users"'

    def test_column_mapping_with_raw(self):
        compiler = SQLCompiler("mysql")
        statement = compiler.select("orders", {"total": raw("SUM(<amount>)"), "who": "customer"}, None)

        assert statement.sql == "SELECT SUM(`amount`) AS `total`, `customer` AS `who` FROM `orders`"

    def test_alias(self, sqlite):
        statement = sqlite.select("users (u)", ["u.id"], None)

        assert statement.sql == 'SELECT "u"."id" FROM "users" AS "u"'

    def test_order_group_having(self, sqlite):
        clause = where(
            {"status": "active"},
            group_by=["status"],
            having=parse_having({"total[>]": 10}),
            order_by=[OrderItem(column="status", direction=SortDirection.DESC)],
        )
        statement = sqlite.select("users", "*", clause)

        assert statement.sql == (
            'SELECT * FROM "users" WHERE "status" = :p0 GROUP BY "status" '
            'HAVING "total" > :p1 ORDER BY "status" DESC'
        )

    def test_random_order(self):
        clause = QueryClause(limit=1)

        assert SQLCompiler("sqlite").select("t", "*", clause, random_order=True).sql == (
            'SELECT * FROM "t" ORDER BY RANDOM() LIMIT 1'
        )
        assert SQLCompiler("mysql").select("t", "*", clause, random_order=True).sql == (
            "SELECT * FROM `t` ORDER BY RAND() LIMIT 1"
        )
        assert SQLCompiler("mssql").random_function == "NEWID()"
        assert SQLCompiler("oracle").random_function == "DBMS_RANDOM.VALUE"


class TestWindow:
    """Row windows per dialect."""

    def test_limit_offset(self, sqlite):
        statement = sqlite.select("users", "*", QueryClause(limit=5, offset=10))

        assert statement.sql == 'SELECT * FROM "users" LIMIT 5 OFFSET 10'

    def test_limit_only(self, sqlite):
        assert sqlite.select("users", "*", QueryClause(limit=5)).sql == 'SELECT * FROM "users" LIMIT 5'

    def test_offset_only(self, sqlite):
        statement = sqlite.select("users", "*", QueryClause(offset=3))

        assert statement.sql == 'SELECT * FROM "users" LIMIT 100000000 OFFSET 3'

    def test_mssql_without_order(self):
        statement = SQLCompiler("mssql").select("users", "*", QueryClause(limit=5, offset=10))

        assert statement.sql == (
            "SELECT * FROM [users] ORDER BY (SELECT NULL) OFFSET 10 ROWS FETCH NEXT 5 ROWS ONLY"
        )

    def test_mssql_with_order(self):
        clause = QueryClause(limit=5, order_by=[OrderItem(column="id")])
        statement = SQLCompiler("mssql").select("users", "*", clause)

        assert statement.sql == "SELECT * FROM [users] ORDER BY [id] ASC OFFSET 0 ROWS FETCH NEXT 5 ROWS ONLY"

    def test_oracle(self):
        statement = SQLCompiler("oracle").select("users", "*", QueryClause(limit=1))

        assert statement.sql == 'SELECT * FROM "users" OFFSET 0 ROWS FETCH NEXT 1 ROWS ONLY'


class TestComparisons:
    """Operator rendering."""

    @pytest.mark.parametrize("mapping,expected", [
        ({"a": None}, '"a" IS NULL'),
        ({"a[!]": None}, '"a" IS NOT NULL'),
        ({"a[!]": 1}, '"a" != :p0'),
        ({"a": [1, 2]}, '"a" IN (:p0, :p1)'),
        ({"a[!]": [1, 2]}, '"a" NOT IN (:p0, :p1)'),
        ({"a": []}, "1 = 0"),
        ({"a[!]": []}, "1 = 1"),
        ({"a[<=]": 1}, '"a" <= :p0'),
        ({"a[>=]": 1}, '"a" >= :p0'),
        ({"a[~]": "x"}, '"a" LIKE :p0'),
        ({"a[!~]": "x"}, '"a" NOT LIKE :p0'),
        ({"a[~]": ["x", "y"]}, '("a" LIKE :p0 OR "a" LIKE :p1)'),
        ({"a[!~]": ["x", "y"]}, '("a" NOT LIKE :p0 AND "a" NOT LIKE :p1)'),
        ({"a[<>]": [1, 5]}, '("a" BETWEEN :p0 AND :p1)'),
        ({"a[><]": [1, 5]}, 'NOT ("a" BETWEEN :p0 AND :p1)'),
        ({"a[REGEXP]": "^x"}, '"a" REGEXP :p0'),
    ])
    def test_operator(self, sqlite, mapping, expected):
        params = ParameterBag()

        assert sqlite.condition_sql(parse_where(mapping), params) == expected

    def test_like_value_bound_wrapped(self, sqlite):
        statement = sqlite.select("t", "*", where({"name[~]": "ann"}))

        assert statement.params == {"p0": "%ann%"}

    def test_regexp_dialects(self):
        clause = parse_where({"a[REGEXP]": "^x"})

        assert SQLCompiler("postgresql").condition_sql(clause, ParameterBag()) == '"a" ~ :p0'
        assert SQLCompiler("oracle").condition_sql(clause, ParameterBag()) == 'REGEXP_LIKE("a", :p0)'
        with pytest.raises(QueryChainError):
            SQLCompiler("mssql").condition_sql(clause, ParameterBag())

    def test_raw_value(self, sqlite):
        statement = sqlite.select("t", "*", where({"created_at[<]": raw("NOW()")}))

        assert statement.sql == 'SELECT * FROM "t" WHERE "created_at" < NOW()'
        assert statement.params == {}

    def test_match_mysql(self):
        clause = QueryClause(match=Match(columns=["title", "body"], keyword="py", mode=MatchMode.BOOLEAN))
        statement = SQLCompiler("mysql").select("posts", "*", clause)

        assert statement.sql == "SELECT * FROM `posts` WHERE MATCH (`title`, `body`) AGAINST (:p0 IN BOOLEAN MODE)"
        assert statement.params == {"p0": "py"}

    def test_match_other_dialects_rejected(self, sqlite):
        clause = QueryClause(match=Match(columns=["title"], keyword="py"))

        with pytest.raises(QueryChainError):
            sqlite.select("posts", "*", clause)


class TestRawFragments:
    """Identifier and parameter handling inside raw SQL."""

    def test_named_parameters(self, sqlite):
        bag = ParameterBag()
        bag.bind("existing")
        fragment = raw("<users.age> > :min AND <name> = :name AND x::text = :min", {"min": 18, ":name": "Ann"})

        sql = sqlite.raw_sql(fragment, bag)

        assert sql == '"users"."age" > :p1 AND "name" = :p2 AND x::text = :p1'
        assert bag.values == {"p0": "existing", "p1": 18, "p2": "Ann"}

    def test_positional_parameters(self, sqlite):
        bag = ParameterBag()
        sql = sqlite.raw_sql(raw("LOWER(<email>) = ? AND note != '?'", ["a@b.c"]), bag)

        assert sql == "LOWER(\"email\") = :p0 AND note != '?'"
        assert bag.values == {"p0": "a@b.c"}

    @pytest.mark.parametrize("sql,params", [
        ("a = ? AND b = ?", [1]),
        ("a = ?", [1, 2]),
    ])
    def test_positional_count_mismatch(self, sqlite, sql, params):
        with pytest.raises(QueryChainError):
            sqlite.raw_sql(raw(sql, params), ParameterBag())

    def test_raw_statement(self, sqlite):
        statement = sqlite.raw_statement("SELECT * FROM <users> WHERE id = :id", {"id": 1})

        assert statement.sql == 'SELECT * FROM "users" WHERE id = :p0'
        assert statement.params == {"p0": 1}
        assert statement.query_type is QueryType.RAW


class TestJoins:
    """JOIN rendering."""

    def test_on_mapping(self, sqlite):
        joins = [JoinSpec(join_type=JoinType.LEFT, table="posts", on={"id": "user_id"})]
        statement = sqlite.select("users", "*", None, joins)

        assert statement.sql == 'SELECT * FROM "users" LEFT JOIN "posts" ON "users"."id" = "posts"."user_id"'

    def test_using(self, sqlite):
        joins = [
            JoinSpec(join_type=JoinType.INNER, table="teams", on="team_id"),
            JoinSpec(join_type=JoinType.FULL, table="roles", on=["role_id", "org_id"]),
        ]
        statement = sqlite.select("users", "*", None, joins)

        assert statement.sql == (
            'SELECT * FROM "users" INNER JOIN "teams" USING ("team_id")'
            ' FULL OUTER JOIN "roles" USING ("role_id", "org_id")'
        )

    def test_aliases_qualify_columns(self, sqlite):
        joins = [JoinSpec(join_type=JoinType.INNER, table="users", on={"manager_id": "id"}, alias="m")]
        statement = sqlite.select("users (u)", "*", None, joins)

        assert statement.sql == 'SELECT * FROM "users" AS "u" INNER JOIN "users" AS "m" ON "u"."manager_id" = "m"."id"'

    def test_qualified_join_columns_kept(self, sqlite):
        joins = [JoinSpec(join_type=JoinType.RIGHT, table="posts", on={"teams.id": "posts.team_id"})]
        statement = sqlite.select("users", "*", None, joins)

        assert statement.sql.endswith('RIGHT JOIN "posts" ON "teams"."id" = "posts"."team_id"')

    def test_prefixed_join(self):
        compiler = SQLCompiler("sqlite", prefix="app_")
        joins = [JoinSpec(join_type=JoinType.LEFT, table="posts", on={"id": "user_id"})]

        statement = compiler.select("users", "*", None, joins)

        assert statement.sql == (
            'SELECT * FROM "app_users" AS "users" LEFT JOIN "app_posts" AS "posts" '
            'ON "users"."id" = "posts"."user_id"'
        )


class TestOtherStatements:
    """EXISTS, aggregates and writes."""

    def test_exists(self, sqlite):
        statement = sqlite.exists("users", where({"id": 1}))

        assert statement.sql == 'SELECT EXISTS (SELECT 1 FROM "users" WHERE "id" = :p0)'
        assert statement.query_type is QueryType.EXISTS

    def test_exists_mssql_and_oracle(self):
        mssql = SQLCompiler("mssql").exists("users", None)
        oracle = SQLCompiler("oracle").exists("users", None)

        assert mssql.sql == "SELECT CASE WHEN EXISTS (SELECT 1 FROM [users]) THEN 1 ELSE 0 END"
        assert oracle.sql == 'SELECT CASE WHEN EXISTS (SELECT 1 FROM "users") THEN 1 ELSE 0 END FROM DUAL'

    def test_aggregate_ignores_window(self, sqlite):
        clause = where({"status": "active"}, limit=5, order_by=[OrderItem(column="id")])
        statement = sqlite.aggregate("count", "users", None, clause)

        assert statement.sql == 'SELECT COUNT(*) FROM "users" WHERE "status" = :p0'
        assert statement.query_type is QueryType.AGGREGATE

    def test_aggregate_column(self, sqlite):
        assert sqlite.aggregate("sum", "orders", "amount", None).sql == 'SELECT SUM("amount") FROM "orders"'

    def test_aggregate_unknown_function(self, sqlite):
        with pytest.raises(QueryChainError):
            sqlite.aggregate("median", "orders", "amount", None)

    def test_insert(self):
        compiler = SQLCompiler("sqlite", prefix="app_")
        statement = compiler.insert("users", {"name": "Ann", "created_at": raw("CURRENT_TIMESTAMP")})

        assert statement.sql == 'INSERT INTO "app_users" ("name", "created_at") VALUES (:p0, CURRENT_TIMESTAMP)'
        assert statement.params == {"p0": "Ann"}

    def test_update(self, sqlite):
        assignments = parse_assignments({
            "hits[+]": 1,
            "stock[/]": 2,
            "name": "Bo",
            "meta[JSON]": {"a": 1},
            "touched": raw("CURRENT_TIMESTAMP"),
        })
        statement = sqlite.update("users", assignments, where({"id": 3}))

        assert statement.sql == (
            'UPDATE "users" SET "hits" = "hits" + :p0, "stock" = "stock" / :p1, '
            '"name" = :p2, "meta" = :p3, "touched" = CURRENT_TIMESTAMP WHERE "id" = :p4'
        )
        assert statement.params == {"p0": 1, "p1": 2, "p2": "Bo", "p3": json.dumps({"a": 1}), "p4": 3}

    def test_update_requires_assignments(self, sqlite):
        with pytest.raises(QueryChainError):
            sqlite.update("users", [], None)

    def test_delete_drops_alias(self, sqlite):
        statement = sqlite.delete("users (u)", where({"id": 1}))

        assert statement.sql == 'DELETE FROM "users" WHERE "id" = :p0'
        assert statement.query_type is QueryType.DELETE
