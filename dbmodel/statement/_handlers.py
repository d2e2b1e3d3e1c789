"""Resolution of the inbound column handlers applied to fetched rows."""

import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional

from dbmodel.exceptions import NotFoundError
from dbmodel.typing import ColumnHandler

if TYPE_CHECKING:
    from dbmodel.source import Source

__all__ = ("compute_from_db_handlers",)

# "table.column", where neither part contains parentheses
_QUALIFIED_COLUMN = re.compile(r"^([^()]+)\.(?=[^()]+$)")


def _find_table(source: "Source", table_name: str) -> "Source":
    table = source.schema.table(table_name)
    if table is not None:
        return table
    candidates = [source, *source.ancestors()]
    for candidate in candidates:
        if (candidate.db_name or "") == table_name:
            return candidate
    for candidate in candidates:
        if (candidate.db_name or "").upper() == table_name.upper():
            return candidate
    msg = f"unknown table name: {table_name}"
    raise NotFoundError(msg)


def compute_from_db_handlers(
    source: "Source",
    aliased_columns: "Mapping[str, str]",
    aliased_tables: "Optional[Mapping[str, str]]" = None,
    column_types: "Optional[Mapping[str, Any]]" = None,
) -> "dict[str, ColumnHandler]":
    """Collect the ``from_db`` handler of every column a statement may return.

    Handlers come from the source and its ancestors, then from the columns
    that aliased columns refer to, then from explicit ``column_types``
    overrides (``{type_name: column or [columns]}``).

    Raises:
        NotFoundError: When an aliased column names an unknown table, or an
            override names an unknown column type.
    """
    handlers: dict[str, Optional[Mapping[str, ColumnHandler]]] = dict(source.consolidated_column_handlers())
    aliased_tables = {**source.aliased_tables, **(aliased_tables or {})}

    for alias, column in aliased_columns.items():
        match = _QUALIFIED_COLUMN.match(column)
        if match is None:
            handlers[alias] = handlers.get(column)
            continue
        table_name = match.group(1).strip()
        table = _find_table(source, aliased_tables.get(table_name, table_name))
        handlers[alias] = table.column_handlers.get(column[match.end() :].strip())

    for type_name, columns in (column_types or {}).items():
        column_type = source.schema.type(type_name)
        if column_type is None:
            msg = f"no such column type: {type_name}"
            raise NotFoundError(msg)
        for column in [columns] if isinstance(columns, str) else columns:
            handlers[column] = column_type.handlers

    return {column: kinds["from_db"] for column, kinds in handlers.items() if kinds and kinds.get("from_db")}
