"""Tests for SELECT generation and where-like structures."""

import re
from typing import Any
from unittest.mock import MagicMock, call

import pytest

from dbmodel import FromJoin, JoinLeg, SQLBuilder, SQLBuilderError, TypedParameter
from dbmodel.builder import BuilderResult, merge_conditions


@pytest.fixture
def builder() -> SQLBuilder:
    return SQLBuilder()


def test_simple_select(builder: SQLBuilder) -> None:
    """Test a SELECT with a plain equality condition."""
    result = builder.select("employee", where={"dpt_id": 1})

    assert result.sql == "SELECT * FROM employee WHERE dpt_id = ?"
    assert result.bind == [1]
    assert result.aliased_tables == {}
    assert result.aliased_columns == {}


@pytest.mark.parametrize(
    ("where", "fragment", "bind"),
    [
        ({"d_birth": None}, "d_birth IS NULL", []),
        ({"emp_id": [1, 2]}, "emp_id IN (?, ?)", [1, 2]),
        ({"emp_id": {"in": [3]}}, "emp_id IN (?)", [3]),
        ({"salary": {">=": 4000, "<": 5000}}, "salary >= ? AND salary < ?", [4000, 5000]),
        ({"salary": {"between": (4000, 5000)}}, "salary BETWEEN ? AND ?", [4000, 5000]),
        ({"lastname": {"like": "M%"}}, "lastname LIKE ?", ["M%"]),
        ({"emp_id": {"in": []}}, "1 = 0", []),
        ("salary > 4000", "salary > 4000", []),
    ],
    ids=["null", "list", "in", "range", "between", "like", "empty-in", "raw-sql"],
)
def test_condition_operators(builder: SQLBuilder, where: Any, fragment: str, bind: "list[Any]") -> None:
    """Test the operators of where-like structures."""
    result = builder.select("employee", where=where)

    assert result.sql == f"SELECT * FROM employee WHERE {fragment}"
    assert result.bind == bind


def test_negated_operators(builder: SQLBuilder) -> None:
    """Test "not" operators negate their positive form."""
    result = builder.select("employee", where={"emp_id": {"not in": [1, 2]}, "d_birth": {"!=": None}})

    assert re.search(r"NOT emp_id IN \(\?, \?\)|emp_id NOT IN \(\?, \?\)", result.sql)
    assert re.search(r"NOT d_birth IS NULL|d_birth IS NOT NULL", result.sql)
    assert result.bind == [1, 2]


def test_or_and_not(builder: SQLBuilder) -> None:
    """Test -or / -and / -not combinators and OR-ed lists."""
    result = builder.select(
        "employee",
        where={"-or": [{"dpt_id": 1}, {"-and": {"dpt_id": 2, "salary": {">": 5000}}}], "-not": {"emp_id": 3}},
    )

    assert " OR " in result.sql
    assert "NOT emp_id = ?" in result.sql
    assert result.bind == [1, 2, 5000, 3]

    result = builder.select("employee", where=[{"dpt_id": 1}, {"dpt_id": 2}])
    assert result.sql == "SELECT * FROM employee WHERE dpt_id = ? OR dpt_id = ?"


@pytest.mark.parametrize(
    ("where", "match"),
    [
        ({"-xor": [{"a": 1}]}, "unknown condition operator: -xor"),
        ({"a": {"~~": 1}}, "unknown comparison operator"),
        ({"a": {"between": 1}}, "expects a pair"),
        (42, "unsupported condition type: int"),
    ],
)
def test_invalid_conditions(builder: SQLBuilder, where: Any, match: str) -> None:
    """Test malformed where-like structures are rejected."""
    with pytest.raises(SQLBuilderError, match=match):
        builder.select("employee", where=where)


def test_merge_conditions() -> None:
    """Test merging skips empty structures and ANDs the rest."""
    assert merge_conditions(None, {}, []) is None
    assert merge_conditions({"a": 1}, None) == {"a": 1}
    assert merge_conditions({"a": 1}, {"b": 2}) == {"-and": [{"a": 1}, {"b": 2}]}


def test_merged_conditions_keep_both_values(builder: SQLBuilder) -> None:
    """Test the same column constrained twice keeps both constraints."""
    where = builder.merge_conditions({"dpt_id": 1}, {"dpt_id": 2})

    result = builder.select("employee", where=where)

    assert result.bind == [1, 2]


@pytest.mark.parametrize(
    ("paramstyle", "expected"),
    [("qmark", "a = ? AND b = ?"), ("format", "a = %s AND b = %s"), ("numeric", "a = :1 AND b = :2")],
)
def test_paramstyles(paramstyle: str, expected: str) -> None:
    """Test positional markers follow the paramstyle."""
    builder = SQLBuilder(paramstyle=paramstyle)

    result = builder.select("t", where={"a": 1, "b": 2})

    assert result.sql.endswith(expected)
    assert builder.count_markers(result.sql) == 2


def test_aliases_are_recorded(builder: SQLBuilder) -> None:
    """Test table and column aliases are reported with the SQL."""
    result = builder.select("employee|e", columns=["e.lastname|name", "salary * 12 AS yearly", "emp_id"])

    assert result.aliased_tables == {"e": "employee"}
    assert result.aliased_columns == {"name": "e.lastname", "yearly": "salary * 12"}
    assert result.sql.startswith("SELECT e.lastname AS name, salary * 12 AS yearly, emp_id FROM employee AS e")


def test_concatenation_is_not_an_alias(builder: SQLBuilder) -> None:
    """Test "||" in a column expression is not read as an alias separator."""
    result = builder.select("employee", columns="firstname || lastname")

    assert result.aliased_columns == {}
    assert "firstname || lastname" in result.sql


def test_distinct(builder: SQLBuilder) -> None:
    """Test a leading "-distinct" column makes the query SELECT DISTINCT."""
    result = builder.select("employee", columns=["-distinct", "dpt_id"])

    assert result.sql == "SELECT DISTINCT dpt_id FROM employee"


@pytest.mark.parametrize(
    ("order_by", "expected"),
    [
        ("-salary", "ORDER BY salary DESC"),
        (["+dpt_id", "emp_id desc"], "ORDER BY dpt_id, emp_id DESC"),
        ("lastname", "ORDER BY lastname"),
    ],
)
def test_order_by(builder: SQLBuilder, order_by: Any, expected: str) -> None:
    """Test order_by direction prefixes and suffixes."""
    assert builder.select("employee", order_by=order_by).sql.endswith(expected)


def test_group_by_and_having(builder: SQLBuilder) -> None:
    """Test GROUP BY with a HAVING condition."""
    result = builder.select(
        "employee", columns=["dpt_id", "COUNT(*)|n"], group_by="dpt_id", having={"COUNT(*)": {">": 3}}
    )

    assert result.sql == "SELECT dpt_id, COUNT(*) AS n FROM employee GROUP BY dpt_id HAVING COUNT(*) > ?"
    assert result.bind == [3]


def test_join(builder: SQLBuilder) -> None:
    """Test joins render ON conditions, or USING when there is no condition."""
    on = FromJoin("employee", [JoinLeg("department", condition="employee.dpt_id = department.dpt_id")])
    using = FromJoin("employee|e", [JoinLeg("department|d", kind="left", using=["dpt_id"])])

    assert "JOIN department ON employee.dpt_id = department.dpt_id" in builder.select(on).sql
    result = builder.select(using)
    assert "LEFT JOIN department AS d USING (dpt_id)" in result.sql
    assert result.aliased_tables == {"e": "employee", "d": "department"}


def test_find_leg() -> None:
    """Test join legs are found by table name, alias or raw specification."""
    leg = JoinLeg("department|d")
    join = FromJoin("employee", [leg])

    assert join.find_leg("department") is leg
    assert join.find_leg("d") is leg
    assert join.find_leg("department|d") is leg
    assert join.find_leg("employee") is None
    assert join.tables == ["employee", "department|d"]


def test_union_keeps_bind_order(builder: SQLBuilder) -> None:
    """Test set operations collect bind values in SQL order."""
    result = builder.select(
        "employee",
        columns="emp_id",
        where={"dpt_id": 1},
        union={"where": {"dpt_id": 3}},
        order_by="emp_id",
        limit=5,
    )

    assert " UNION " in result.sql
    assert result.bind == [1, 3, 5, 0]


def test_unknown_select_arguments(builder: SQLBuilder) -> None:
    """Test unknown keyword arguments are rejected."""
    with pytest.raises(SQLBuilderError, match="unknown select arguments: window"):
        builder.select("employee", window="w")
    with pytest.raises(SQLBuilderError, match="unsupported arguments in 'union': limit"):
        builder.select("employee", union={"limit": 3})


def test_pagination(builder: SQLBuilder) -> None:
    """Test page_size and page_index become LIMIT and OFFSET."""
    result = builder.select("employee", page_size=3, page_index=2)

    assert result.sql == "SELECT * FROM employee LIMIT ? OFFSET ?"
    assert result.bind == [3, 3]


def test_offset_without_limit(builder: SQLBuilder) -> None:
    """Test an offset alone still renders a LIMIT."""
    result = builder.select("employee", offset=4)

    assert result.bind[1] == 4
    assert builder.limit_offset_pattern().search(result.sql)


def test_locking_clause(builder: SQLBuilder) -> None:
    """Test for_ appends a FOR clause."""
    assert builder.select("employee", for_="update").sql.endswith(" FOR UPDATE")


def test_limit_offset_fragment(builder: SQLBuilder) -> None:
    """Test the standalone LIMIT/OFFSET fragment and the pattern matching it."""
    fragment, bind = builder.limit_offset(5, 10)
    pattern = builder.limit_offset_pattern()

    assert fragment == "LIMIT ? OFFSET ?"
    assert bind == [5, 10]
    assert pattern.search("SELECT * FROM t   LIMIT  ?\n OFFSET ?")
    assert not pattern.search("SELECT * FROM t")


def test_count_query_drops_order_and_limit() -> None:
    """Test the count query keeps FROM and WHERE with their current bind values, renumbered."""
    builder = SQLBuilder(paramstyle="numeric")
    result = builder.select(
        "employee",
        columns=["emp_id", "lastname"],
        where={"dpt_id": 1, "salary": {">": 4000}},
        order_by="emp_id",
        limit=5,
        offset=10,
    )
    assert result.bind_slots == [0, 1, 2, 3]

    sql, bind = builder.count_query(result, ["first", "second", 5, 10])

    assert sql == "SELECT COUNT(*) FROM employee WHERE dpt_id = :1 AND salary > :2"
    assert bind == ["first", "second"]


def test_count_query_wraps_grouped_queries(builder: SQLBuilder) -> None:
    """Test GROUP BY queries are counted through a subquery."""
    result = builder.select(
        "employee", columns=["dpt_id", "COUNT(*)|n"], where={"salary": {">": 4000}}, group_by="dpt_id", limit=2
    )

    sql, bind = builder.count_query(result, result.bind)

    assert sql.startswith("SELECT COUNT(*) FROM (SELECT dpt_id, COUNT(*) AS n FROM employee WHERE salary > ? GROUP BY")
    assert sql.endswith(") AS count_wrapper")
    assert "LIMIT" not in sql
    assert bind == [4000]


def test_count_query_needs_an_expression(builder: SQLBuilder) -> None:
    """Test counting a result built from SQL text alone fails."""
    with pytest.raises(SQLBuilderError, match="without expression"):
        builder.count_query(BuilderResult(sql="SELECT 1"), [])


def test_table_alias() -> None:
    """Test subquery aliasing follows the dialect."""
    assert SQLBuilder().table_alias("(SELECT 1)", "w") == "(SELECT 1) AS w"
    assert SQLBuilder("oracle").table_alias("(SELECT 1)", "w") == "(SELECT 1) w"


def test_bind_params() -> None:
    """Test bind_params passes type metadata of typed parameters to the handle."""
    handle = MagicMock()

    SQLBuilder().bind_params(handle, [1, TypedParameter("x", {"type": str})])

    assert handle.bind_param.call_args_list == [call(0, 1), call(1, "x", {"type": str})]


def test_invalid_from(builder: SQLBuilder) -> None:
    """Test FROM must be a table specification or a join."""
    with pytest.raises(SQLBuilderError, match="invalid FROM specification"):
        builder.select(42)  # type: ignore[arg-type]
    with pytest.raises(SQLBuilderError, match="invalid table specification"):
        builder.select("|alias")
