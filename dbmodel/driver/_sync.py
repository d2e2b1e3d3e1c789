"""Synchronous driver on top of any PEP 249 connection.

DB-API modules have no separate prepare step: a :class:`PreparedHandle`
keeps the SQL text and its bound values, and opens a cursor when executed.
"""

import contextlib
import datetime
import json
import sys
from collections.abc import Iterator, Mapping, MutableMapping, Sequence
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Callable, Optional

from dbmodel.exceptions import DatabaseConnectionError, DriverError, StatementStateError
from dbmodel.utils.logging import get_logger

__all__ = ("PreparedHandle", "RowFactory", "SyncDriver", "sqlite_type_coercion_map")

logger = get_logger("driver")

RowFactory = Callable[[Any], MutableMapping[str, Any]]

FETCH_BATCH_SIZE = 1000

sqlite_type_coercion_map: "dict[Any, Callable[[Any], Any]]" = {
    bool: int,
    datetime.datetime: lambda v: v.isoformat(),
    datetime.date: lambda v: v.isoformat(),
    Decimal: str,
    dict: json.dumps,
    list: json.dumps,
    tuple: lambda v: json.dumps(list(v)),
}


def _dbapi_module(connection: Any) -> Any:
    return sys.modules.get(type(connection).__module__.split(".")[0])


class PreparedHandle:
    """A prepared statement: SQL text, bound values and, once executed, a cursor."""

    __slots__ = ("_bound_row", "_column_names", "_cursor", "_params", "attrs", "driver", "sql")

    def __init__(self, driver: "SyncDriver", sql: str, attrs: "Optional[Mapping[str, Any]]" = None) -> None:
        self.driver = driver
        self.sql = sql
        self.attrs = dict(attrs or {})
        self._params: list[Any] = []
        self._cursor: Any = None
        self._bound_row: Optional[MutableMapping[str, Any]] = None
        self._column_names: Optional[list[str]] = None

    def bind_param(self, index: int, value: Any, data_type: Any = None) -> None:
        """Bind ``value`` at 0-based position ``index``."""
        if index >= len(self._params):
            self._params.extend([None] * (index + 1 - len(self._params)))
        self._params[index] = self.driver.coerce(value, data_type)

    @property
    def params(self) -> "tuple[Any, ...]":
        return tuple(self._params)

    @property
    def is_active(self) -> bool:
        return self._cursor is not None

    def execute(self, params: "Optional[Sequence[Any]]" = None) -> None:
        """Execute with the bound values, or with ``params`` when given."""
        if params is not None:
            self._params = [self.driver.coerce(value) for value in params]
        self.finish()
        connection = self.driver.connection
        with self.driver.handle_database_exceptions():
            cursor = connection.cursor()
            for name, value in self.attrs.items():
                setattr(cursor, name, value)
            cursor.execute(self.sql, tuple(self._params))
        self._cursor = cursor
        self._column_names = [column[0] for column in cursor.description or ()]

    @property
    def column_names(self) -> "list[str]":
        """Names of the result columns; kept after the cursor is finished."""
        if self._column_names is None:
            msg = "statement handle is not executed"
            raise StatementStateError(msg)
        return self._column_names

    def fetchrow(self, row_factory: "RowFactory" = dict) -> "Optional[MutableMapping[str, Any]]":
        """Fetch one row as a mapping built by ``row_factory``."""
        cursor = self._require_cursor()
        with self.driver.handle_database_exceptions():
            values = cursor.fetchone()
        if values is None:
            return None
        return row_factory(zip(self.column_names, values))

    def fetchmany(self, size: int, row_factory: "RowFactory" = dict) -> "list[MutableMapping[str, Any]]":
        """Fetch up to ``size`` rows; ``size`` may exceed what the DB-API module accepts at once."""
        cursor = self._require_cursor()
        names = self.column_names
        rows: list[Any] = []
        with self.driver.handle_database_exceptions():
            while len(rows) < size:
                batch = cursor.fetchmany(min(size - len(rows), FETCH_BATCH_SIZE))
                if not batch:
                    break
                rows.extend(batch)
        return [row_factory(zip(names, values)) for values in rows]

    def fetchall(self, row_factory: "RowFactory" = dict) -> "list[MutableMapping[str, Any]]":
        cursor = self._require_cursor()
        names = self.column_names
        with self.driver.handle_database_exceptions():
            rows = cursor.fetchall()
        return [row_factory(zip(names, values)) for values in rows]

    def fetch_array(self) -> "Optional[tuple[Any, ...]]":
        """Fetch one row as a plain tuple of values."""
        cursor = self._require_cursor()
        with self.driver.handle_database_exceptions():
            values = cursor.fetchone()
        return None if values is None else tuple(values)

    def bind_columns(self, row: "MutableMapping[str, Any]") -> None:
        """Make :meth:`fetch` write each fetched row into ``row``."""
        self._require_cursor()
        self._bound_row = row

    def fetch(self) -> bool:
        """Fetch the next row into the bound row; ``False`` at end of data."""
        if self._bound_row is None:
            msg = "fetch() requires bind_columns() first"
            raise StatementStateError(msg)
        values = self.fetch_array()
        if values is None:
            return False
        self._bound_row.update(zip(self.column_names, values))
        return True

    def finish(self) -> None:
        """Release the cursor."""
        cursor, self._cursor = self._cursor, None
        self._bound_row = None
        if cursor is not None:
            with contextlib.suppress(Exception):
                cursor.close()

    def _require_cursor(self) -> Any:
        if self._cursor is None:
            msg = "statement handle is not executed or already finished"
            raise StatementStateError(msg)
        return self._cursor


class SyncDriver:
    """Driver collaborator wrapping a PEP 249 connection."""

    def __init__(
        self,
        connection: Any,
        paramstyle: "Optional[str]" = None,
        type_coercion_map: "Optional[dict[Any, Callable[[Any], Any]]]" = None,
    ) -> None:
        module = _dbapi_module(connection)
        self._connection = connection
        self.paramstyle = paramstyle or getattr(module, "paramstyle", "qmark")
        if type_coercion_map is None:
            type_coercion_map = dict(sqlite_type_coercion_map) if module is not None and module.__name__ == "sqlite3" else {}
        self.type_coercion_map = type_coercion_map
        self._error_class: type[BaseException] = getattr(module, "Error", Exception)
        self._cache: dict[Any, PreparedHandle] = {}

    @property
    def connection(self) -> Any:
        if self._connection is None:
            msg = "driver has no database connection"
            raise DatabaseConnectionError(msg)
        return self._connection

    def prepare(self, sql: str, attrs: "Optional[Mapping[str, Any]]" = None) -> PreparedHandle:
        if self._connection is None:
            msg = "cannot prepare a statement: driver has no database connection"
            raise DatabaseConnectionError(msg)
        return PreparedHandle(self, sql, attrs)

    def prepare_cached(self, sql: str, attrs: "Optional[Mapping[str, Any]]" = None) -> PreparedHandle:
        """Like :meth:`prepare`, but reuse the handle of an identical earlier call."""
        key = (sql, tuple(sorted((attrs or {}).items())))
        handle = self._cache.get(key)
        if handle is None:
            handle = self._cache[key] = self.prepare(sql, attrs)
        else:
            logger.debug("reusing prepared handle for %s", sql)
            handle.finish()
        return handle

    def coerce(self, value: Any, data_type: Any = None) -> Any:
        """Apply the coercion registered for ``data_type`` (or the value's type)."""
        key = data_type.get("type") if isinstance(data_type, Mapping) else data_type
        converter = self.type_coercion_map.get(key) if key is not None else None
        if converter is None and value is not None:
            converter = self.type_coercion_map.get(type(value))
        return value if converter is None else converter(value)

    def close(self) -> None:
        for handle in self._cache.values():
            handle.finish()
        self._cache.clear()
        connection, self._connection = self._connection, None
        if connection is not None:
            connection.close()

    @contextmanager
    def handle_database_exceptions(self) -> "Iterator[None]":
        """Wrap errors raised by the DB-API module into :class:`DriverError`."""
        try:
            yield
        except self._error_class as e:
            msg = f"database error: {e}"
            raise DriverError(msg) from e
