"""Tests for named placeholders and bind values."""

import datetime

import pytest

from dbmodel import (
    ArgumentError,
    MissingParameterError,
    ParameterError,
    Schema,
    SchemaConfig,
    StatementStateError,
    StatementStatus,
    TypedParameter,
)


def test_named_placeholders_are_indexed(schema: Schema) -> None:
    """Test named placeholders are recorded by position and left in place."""
    statement = schema.statement("Employee", where={"dpt_id": "?:dpt", "salary": {">": 4000}}).sqlize()

    assert statement.param_indices == {"dpt": [0]}
    assert statement.bound_params == ["?:dpt", 4000]


def test_placeholder_used_twice_is_bound_once(schema: Schema) -> None:
    """Test binding a name fills every position where it appears."""
    statement = schema.statement(
        "Employee",
        where={"-or": [{"emp_id": "?:id"}, {"-and": {"dpt_id": 3, "emp_id": {">": "?:id"}}}]},
    ).sqlize()
    assert statement.param_indices == {"id": [0, 2]}

    statement.bind(id=8)

    assert statement.bound_params == [8, 3, 8]
    assert sorted(row["emp_id"] for row in statement.all()) == [8]


def test_custom_placeholder_prefix() -> None:
    """Test the placeholder prefix comes from the schema configuration."""
    schema = Schema("HR", config=SchemaConfig(placeholder_prefix="@@"))
    table = schema.define_table("Employee", db_name="employee")

    statement = table.statement(where={"dpt_id": "@@dpt", "lastname": "?:literal"}).sqlize()

    assert statement.param_indices == {"dpt": [0]}
    assert statement.bound_params == ["@@dpt", "?:literal"]


def test_bind_before_compilation_is_staged(schema: Schema) -> None:
    """Test values bound early are applied once the SQL exists."""
    statement = schema.statement("Employee", where={"emp_id": "?:id"})

    statement.bind(id=6)
    assert statement.pre_bound_params == {"id": 6}

    statement.sqlize()
    assert statement.bound_params == [6]
    assert statement.next()["firstname"] == "Frank"


def test_bind_shapes(schema: Schema) -> None:
    """Test the accepted argument shapes of bind()."""
    statement = schema.statement("Employee", where={"emp_id": "?:id", "dpt_id": "?:dpt"}).sqlize()

    statement.bind({"id": 1, "dpt": 1})
    assert statement.bound_params == [1, 1]

    statement.bind("id", 2, "dpt", 2)
    assert statement.bound_params == [2, 2]

    statement.bind([3, 4])
    assert statement.bound_params == [3, 4]

    statement.bind("id", 5, {"type": int})
    assert statement.bound_params[0] == TypedParameter(5, {"type": int})

    statement.bind(dpt=9)
    assert statement.bound_params[1] == 9


def test_bind_ignores_unknown_names(schema: Schema) -> None:
    """Test names without a placeholder are silently ignored after compilation."""
    statement = schema.statement("Employee", where={"emp_id": "?:id"}).sqlize()

    statement.bind(id=1, unused=2)

    assert statement.bound_params == [1]


@pytest.mark.parametrize(
    "args",
    [("id",), (1,), ("id", 1, "dpt", 2, "extra")],
    ids=["single-string", "single-int", "odd-count"],
)
def test_bind_invalid_shapes(schema: Schema, args: tuple) -> None:
    """Test unsupported argument shapes are rejected."""
    statement = schema.statement("Employee", where={"emp_id": "?:id"}).sqlize()

    with pytest.raises(ArgumentError):
        statement.bind(*args)


def test_bind_position_out_of_range(schema: Schema) -> None:
    """Test positional binding beyond the placeholders fails."""
    statement = schema.statement("Employee", where={"emp_id": 1}).sqlize()

    with pytest.raises(ParameterError, match="out of range"):
        statement.bind({3: "x"})


def test_failed_pre_bind_leaves_statement_refined(schema: Schema) -> None:
    """Test an early bind to a bad position fails compilation without half-compiling the statement."""
    statement = schema.statement("Employee", where={"emp_id": "?:id"})
    statement.bind({5: 99})

    with pytest.raises(ParameterError, match="bind position 5 out of range"):
        statement.sqlize()

    assert statement.status == StatementStatus.REFINED
    assert statement._sql is None
    assert statement.row_callback is None
    assert statement.bound_params == []
    assert statement.param_indices == {}
    with pytest.raises(StatementStateError):
        _ = statement.sql


def test_missing_placeholders_are_all_reported(schema: Schema) -> None:
    """Test execution lists every unbound placeholder."""
    statement = schema.statement("Employee", where={"dpt_id": "?:a", "salary": {">": "?:b"}, "emp_id": {"<": 100}})

    with pytest.raises(MissingParameterError, match=r"unbound placeholders \(probably a missing foreign key\) : a, b") as exc:
        statement.execute()

    assert exc.value.names == ("a", "b")
    assert statement.status == StatementStatus.PREPARED


def test_missing_placeholder_after_partial_bind(schema: Schema) -> None:
    """Test binding some names still reports the remaining ones."""
    statement = schema.statement("Employee", where={"dpt_id": "?:a", "salary": {">": "?:b"}})

    with pytest.raises(MissingParameterError) as exc:
        statement.execute(a=1)

    assert exc.value.names == ("b",)


def test_execute_with_late_binds(schema: Schema) -> None:
    """Test execute() accepts bind values like bind()."""
    statement = schema.statement("Employee", where={"dpt_id": "?:dpt"}, order_by="emp_id")

    rows = statement.execute({"dpt": 3}).all()

    assert [row["emp_id"] for row in rows] == [6, 7, 8]


def test_typed_parameter_is_coerced(schema: Schema) -> None:
    """Test type metadata selects the driver coercion when values are bound."""
    statement = schema.statement("Employee", where={"d_birth": "?:birth"})

    statement.bind("birth", datetime.date(1990, 12, 24), {"type": datetime.date})

    assert statement.select(result_as="firstrow")["firstname"] == "Carol"
    assert statement.handle.params == ("1990-12-24",)
