"""Standard result shapes."""

from collections.abc import Iterator
from typing import TYPE_CHECKING, Any, Optional

from dbmodel.exceptions import ArgumentError
from dbmodel.result._base import ResultShape
from dbmodel.statement.status import StatementStatus

if TYPE_CHECKING:
    from dbmodel.statement import Statement

__all__ = (
    "Count",
    "FastStatement",
    "FirstRow",
    "FlatArrayRef",
    "HashRef",
    "IteratorResult",
    "Rows",
    "SubqueryResult",
    "Sql",
    "StatementResult",
)


def _executed(statement: "Statement") -> "Statement":
    if statement.status < StatementStatus.EXECUTED:
        statement.execute()
    return statement


def _sqlized(statement: "Statement") -> "Statement":
    if statement.status < StatementStatus.SQLIZED:
        statement.sqlize()
    return statement


class Rows(ResultShape):
    """List of all rows."""

    name = "rows"

    def get_result(self, statement: "Statement") -> "list[Any]":
        return _executed(statement).all()


class FirstRow(ResultShape):
    """First row, or ``None`` when there is none."""

    name = "firstrow"

    def get_result(self, statement: "Statement") -> Any:
        return _executed(statement)._next_and_finish()


class FlatArrayRef(ResultShape):
    """All values of all rows in one flat list, without row processing."""

    name = "flat_arrayref"

    def get_result(self, statement: "Statement") -> "list[Any]":
        statement._forbid_callbacks(self.name)
        handle = _executed(statement).handle
        values: list[Any] = []
        try:
            while (row := handle.fetch_array()) is not None:
                values.extend(row)
        finally:
            statement.finish()
        return values


class StatementResult(ResultShape):
    """The prepared statement itself; rows are fetched by the caller."""

    name = "statement"

    def get_result(self, statement: "Statement") -> "Statement":
        if statement.status < StatementStatus.PREPARED:
            statement.prepare()
        return statement


class FastStatement(ResultShape):
    """The executed statement in fast mode."""

    name = "fast_statement"

    def get_result(self, statement: "Statement") -> "Statement":
        return _executed(statement).make_fast()


class Sql(ResultShape):
    """The ``(sql, bind_values)`` pair, without running anything."""

    name = "sql"

    def get_result(self, statement: "Statement") -> "tuple[str, list[Any]]":
        statement._forbid_callbacks(self.name)
        _sqlized(statement)
        return statement.sql, statement.bind_values


class SubqueryResult(ResultShape):
    """The parenthesized SQL and its bind values, ready to embed in another query."""

    name = "subquery"

    def get_result(self, statement: "Statement") -> "tuple[str, list[Any]]":
        statement._forbid_callbacks(self.name)
        _sqlized(statement)
        return f"({statement.sql})", statement.bind_values


class Count(ResultShape):
    """Number of rows the query would return, ignoring LIMIT/OFFSET."""

    name = "count"

    def get_result(self, statement: "Statement") -> int:
        statement._forbid_callbacks(self.name)
        return statement.row_count()


class HashRef(ResultShape):
    """Rows in nested dicts keyed by one or more columns.

    Key columns default to the primary key of the source; with several
    columns, each one adds a level of nesting.
    """

    name = "hashref"

    def __init__(self, *key_columns: str) -> None:
        super().__init__(*key_columns)
        self.key_columns = key_columns

    def get_result(self, statement: "Statement") -> "dict[Any, Any]":
        key_columns = self.key_columns or statement.source.primary_key
        if not key_columns:
            msg = f"result_as='hashref': no key columns and no primary key in source {statement.source}"
            raise ArgumentError(msg)
        *outer, last = key_columns
        result: dict[Any, Any] = {}
        for row in _executed(statement).all():
            level = result
            for column in outer:
                level = level.setdefault(row[column], {})
            level[row[last]] = row
        return result


class IteratorResult(ResultShape):
    """A generator over rows; the handle is finished once it is exhausted."""

    name = "iterator"

    def get_result(self, statement: "Statement") -> "Iterator[Any]":
        return self._iterate(_executed(statement))

    @staticmethod
    def _iterate(statement: "Statement") -> "Iterator[Any]":
        row: Optional[Any] = statement.next()
        while row is not None:
            yield row
            row = statement.next()
        statement.finish()
