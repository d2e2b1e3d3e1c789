import pytest

from dbmodel.exceptions import (
    ArgumentError,
    DatabaseConnectionError,
    DBModelError,
    DriverError,
    ImproperConfigurationError,
    MissingParameterError,
    NotFoundError,
    ParameterError,
    SQLBuilderError,
    StatementStateError,
)


@pytest.mark.parametrize(
    "exc_class",
    [
        ArgumentError,
        DatabaseConnectionError,
        DriverError,
        NotFoundError,
        ParameterError,
        SQLBuilderError,
        StatementStateError,
    ],
)
def test_exception_hierarchy(exc_class: "type[Exception]") -> None:
    """Test every exception derives from DBModelError."""
    assert issubclass(exc_class, DBModelError)


def test_configuration_errors_are_argument_errors() -> None:
    """Test unknown configuration keys can be caught as argument errors."""
    assert issubclass(ImproperConfigurationError, ArgumentError)
    assert issubclass(MissingParameterError, ParameterError)


def test_exception_instantiation() -> None:
    """Test exceptions can be instantiated with messages."""
    exc = NotFoundError("unknown table name: x")
    assert str(exc) == "unknown table name: x"
    assert repr(exc) == "NotFoundError - unknown table name: x"


def test_default_messages() -> None:
    """Test exceptions raised without a message have a default one."""
    assert "statement status" in str(StatementStateError())
    assert str(SQLBuilderError()) == "Issues building SQL statement."


def test_missing_parameter_error() -> None:
    """Test missing placeholders are listed in the message and kept as names."""
    exc = MissingParameterError(["dpt", "floor"], sql="SELECT 1")

    assert exc.names == ("dpt", "floor")
    assert exc.sql == "SELECT 1"
    assert str(exc) == "unbound placeholders (probably a missing foreign key) : dpt, floor\nSQL: SELECT 1"


def test_exception_chaining() -> None:
    """Test exceptions support chaining with 'from'."""
    with pytest.raises(DriverError) as exc_info:
        try:
            raise ValueError("Original error")
        except ValueError as e:
            raise DriverError("Mapped error") from e

    assert isinstance(exc_info.value.__cause__, ValueError)
