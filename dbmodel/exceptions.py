from collections.abc import Sequence
from typing import Any, Optional

__all__ = (
    "ArgumentError",
    "DBModelError",
    "DatabaseConnectionError",
    "DriverError",
    "ImproperConfigurationError",
    "MissingParameterError",
    "NotFoundError",
    "ParameterError",
    "SQLBuilderError",
    "StatementStateError",
)


class DBModelError(Exception):
    """Base exception class from which all dbmodel exceptions inherit."""

    detail: str

    def __init__(self, *args: Any, detail: str = "") -> None:
        """Initialize ``DBModelError``.

        Args:
            *args: args are converted to :class:`str` before passing to :class:`Exception`
            detail: detail of the exception.
        """
        str_args = [str(arg) for arg in args if arg]
        if not detail:
            if str_args:
                detail, *str_args = str_args
            elif hasattr(self, "detail"):
                detail = self.detail
        self.detail = detail
        super().__init__(*str_args)

    def __repr__(self) -> str:
        if self.detail:
            return f"{self.__class__.__name__} - {self.detail}"
        return self.__class__.__name__

    def __str__(self) -> str:
        return " ".join((*self.args, self.detail)).strip()


class StatementStateError(DBModelError):
    """A statement method was called in a status that does not allow it."""

    def __init__(self, message: Optional[str] = None) -> None:
        if message is None:
            message = "Operation not allowed in the current statement status."
        super().__init__(message)


class ArgumentError(DBModelError):
    """Invalid arguments given to a statement."""


class ImproperConfigurationError(ArgumentError):
    """Unknown or misplaced configuration key."""


class SQLBuilderError(DBModelError):
    """Issues building or generating SQL statements."""

    def __init__(self, message: Optional[str] = None) -> None:
        if message is None:
            message = "Issues building SQL statement."
        super().__init__(message)


class ParameterError(DBModelError):
    """Base class for parameter-related errors."""

    sql: Optional[str]

    def __init__(self, message: str, sql: Optional[str] = None) -> None:
        detail_message = message
        if sql:
            detail_message = f"{message}\nSQL: {sql}"
        super().__init__(detail=detail_message)
        self.sql = sql


class MissingParameterError(ParameterError):
    """Raised when named placeholders are still unbound at execution time."""

    names: "tuple[str, ...]"

    def __init__(self, names: "Sequence[str]", sql: Optional[str] = None) -> None:
        self.names = tuple(names)
        message = "unbound placeholders (probably a missing foreign key) : " + ", ".join(self.names)
        super().__init__(message, sql)


class DatabaseConnectionError(DBModelError):
    """No live database connection is available."""


class DriverError(DBModelError):
    """An error raised by the underlying DB-API module."""


class NotFoundError(DBModelError):
    """A named table, column type or result shape does not exist."""
