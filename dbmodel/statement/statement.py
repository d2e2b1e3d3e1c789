"""The statement: one SELECT query carried from arguments to fetched rows.

A statement goes through ordered phases (see :class:`StatementStatus`).
Clause arguments are accumulated by :meth:`Statement.refine`, turned into SQL
once by :meth:`Statement.sqlize`, handed to the driver by
:meth:`Statement.prepare` and run by :meth:`Statement.execute`. Rows then
stream through a callback that gives them the row class of the source and
applies the inbound column handlers.
"""

import copy
import logging
import re
import sys
import weakref
from collections.abc import Iterator, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Callable, Optional

from mypy_extensions import mypyc_attr

from dbmodel.builder import FromJoin
from dbmodel.config import PREPARE_METHODS
from dbmodel.exceptions import (
    ArgumentError,
    ImproperConfigurationError,
    MissingParameterError,
    ParameterError,
    StatementStateError,
)
from dbmodel.parameters import TypedParameter
from dbmodel.statement._handlers import compute_from_db_handlers
from dbmodel.statement.status import StatementStatus
from dbmodel.utils.logging import get_logger, log_with_context

if TYPE_CHECKING:
    from dbmodel.builder import BuilderResult, SQLBuilder
    from dbmodel.config import SchemaConfig
    from dbmodel.driver import PreparedHandle
    from dbmodel.row import Row
    from dbmodel.schema import Schema
    from dbmodel.source import Source

__all__ = ("Statement",)

logger = get_logger("statement")

STORED_CLAUSES = frozenset(
    {
        "order_by",
        "group_by",
        "having",
        "for",
        "union",
        "union_all",
        "intersect",
        "intersect_all",
        "except",
        "except_all",
        "minus",
        "result_as",
        "post_sql",
        "pre_exec",
        "post_exec",
        "post_bless",
        "limit",
        "offset",
        "page_size",
        "page_index",
        "column_types",
        "prepare_attrs",
        "prepare_method",
        "_left_cols",
        "where_on",
        "join_with_using",
    }
)

# clause name -> keyword of SQLBuilder.select()
BUILDER_CLAUSES = {
    "columns": "columns",
    "where": "where",
    "union": "union",
    "union_all": "union_all",
    "intersect": "intersect",
    "intersect_all": "intersect_all",
    "except": "except_",
    "except_all": "except_all",
    "minus": "minus",
    "order_by": "order_by",
    "group_by": "group_by",
    "having": "having",
    "limit": "limit",
    "offset": "offset",
    "page_size": "page_size",
    "page_index": "page_index",
}

CALLBACK_CLAUSES = ("pre_exec", "post_exec", "post_bless")


def _clause_name(key: str) -> str:
    # "for_", "except_": keywords reserved by Python
    if key.endswith("_") and not key.startswith("_"):
        return key[:-1]
    return key


def _apply_params(
    params: "Mapping[Any, Any]", bound: "list[Any]", param_indices: "Mapping[str, list[int]]", sql: "Optional[str]"
) -> "list[Any]":
    """Copy of ``bound`` with ``params`` written at integer positions and named placeholders.

    Raises:
        ParameterError: On an integer key outside the bind positions.
    """
    bound = list(bound)
    for key, value in params.items():
        if isinstance(key, int):
            if not 0 <= key < len(bound):
                msg = f"bind position {key} out of range (statement has {len(bound)} placeholders)"
                raise ParameterError(msg, sql)
            bound[key] = value
            continue
        for index in param_indices.get(key, ()):
            bound[index] = value
    return bound


@mypyc_attr(allow_interpreted_subclasses=True)
class Statement:
    """A SELECT query on a source, driven through its lifecycle.

    Args:
        source: Table or join the statement reads from
        **args: Initial clause arguments, as accepted by :meth:`refine`
    """

    def __init__(self, source: "Source", **args: Any) -> None:
        self.status = StatementStatus.NEW
        self.source = source
        self.args: dict[str, Any] = {}
        self.pre_bound_params: dict[Any, Any] = {}
        self.bound_params: list[Any] = []
        self.param_indices: dict[str, list[int]] = {}
        self.aliased_tables: dict[str, str] = {}
        self.aliased_columns: dict[str, str] = {}
        self.row_callback: Optional[Callable[[Any], Any]] = None
        self.row_num = 0
        self._sql: Optional[str] = None
        self._compiled: Optional[BuilderResult] = None
        self._handle: Optional[PreparedHandle] = None
        self._row_count: Optional[int] = None
        self._reuse_row: Optional[Row] = None
        self._from_db_handlers: Optional[dict[str, Callable[[Any], Any]]] = None
        if args:
            self.refine(**args)

    def __str__(self) -> str:
        if self._sql is None:
            return object.__repr__(self)
        binds = ", ".join(repr(value) for value in self.bound_params)
        return f"Statement({self._sql} // {binds})"

    def __iter__(self) -> "Iterator[Any]":
        while True:
            row = self.next()
            if row is None:
                return
            yield row

    # ------------------------------------------------------------------
    # collaborators
    # ------------------------------------------------------------------

    @property
    def schema(self) -> "Schema":
        return self.source.schema

    @property
    def config(self) -> "SchemaConfig":
        return self.source.schema.config

    @property
    def builder(self) -> "SQLBuilder":
        return self.source.schema.builder

    # ------------------------------------------------------------------
    # arguments and binding
    # ------------------------------------------------------------------

    def arg(self, name: str) -> Any:
        """Current value of a clause argument."""
        return self.args.get(_clause_name(name))

    def refine(self, **args: Any) -> "Statement":
        """Merge clause arguments into the statement.

        ``where`` conditions are ANDed with earlier ones, ``fetch`` selects a
        single row by primary key, ``columns`` may only narrow an earlier list;
        other known clauses are stored, later values replacing earlier ones.

        Raises:
            StatementStateError: When the statement is already compiled.
            ArgumentError: On an invalid ``fetch`` or ``columns`` value.
            ImproperConfigurationError: On an unknown clause name.
        """
        if self.status > StatementStatus.REFINED:
            msg = f"can't refine() when in status {self.status}"
            raise StatementStateError(msg)

        new_args = dict(self.args)
        for key, value in args.items():
            name = _clause_name(key)
            if name == "where":
                new_args["where"] = self.builder.merge_conditions(new_args.get("where"), value)
            elif name == "fetch":
                new_args["where"] = self.builder.merge_conditions(new_args.get("where"), self._primary_key_where(value))
                new_args["result_as"] = "firstrow"
            elif name == "columns":
                new_args["columns"] = self._narrow_columns(new_args.get("columns"), value)
            elif name in STORED_CLAUSES:
                new_args[name] = value
            else:
                msg = f"invalid clause argument: {key}"
                raise ImproperConfigurationError(msg)

        self.args = new_args
        self.status = StatementStatus.REFINED
        return self

    def _primary_key_where(self, value: Any) -> "dict[str, Any]":
        source = self.source
        primary_key = source.primary_key
        if not primary_key:
            msg = f"fetch: no primary key in source {source}"
            raise ArgumentError(msg)
        values = list(value) if isinstance(value, (list, tuple)) else [value]
        if len(values) != len(primary_key):
            msg = f"fetch from {source}: primary key should have {len(primary_key)} values"
            raise ArgumentError(msg)
        if any(v is None for v in values):
            msg = f"fetch from {source}: undefined value in primary key"
            raise ArgumentError(msg)
        return dict(zip(primary_key, values))

    @staticmethod
    def _narrow_columns(previous: "Optional[list[Any]]", value: Any) -> "list[Any]":
        columns = [value] if isinstance(value, str) else list(value)
        if previous is not None and previous != ["*"]:
            for column in columns:
                if column not in previous:
                    msg = f"can't restrict columns on {column!r} (was not in the previous columns list)"
                    raise ArgumentError(msg)
        return columns

    def bind(self, *args: Any, **kwargs: Any) -> "Statement":
        """Give values to placeholders.

        Accepted shapes: ``bind(mapping)``, ``bind(sequence)`` (values by
        position), ``bind(name, value, data_type)``, ``bind(name1, value1,
        name2, value2, ...)`` and keyword arguments.

        Before compilation, values are kept and applied once the SQL exists.
        Afterwards, names without a matching placeholder are ignored and
        integer keys address bind positions directly.

        Raises:
            ArgumentError: On an unsupported argument shape.
            ParameterError: On a bind position out of range.
        """
        params: dict[Any, Any]
        if len(args) == 1:
            arg = args[0]
            if isinstance(arg, Mapping):
                params = dict(arg)
            elif isinstance(arg, Sequence) and not isinstance(arg, (str, bytes)):
                params = dict(enumerate(arg))
            else:
                msg = f"unexpected argument type to bind(): {type(arg).__name__}"
                raise ArgumentError(msg)
        elif len(args) == 3:
            params = {args[0]: TypedParameter(args[1], args[2])}
        elif len(args) % 2:
            msg = "odd number of arguments to bind()"
            raise ArgumentError(msg)
        else:
            params = dict(zip(args[::2], args[1::2]))
        params.update(kwargs)

        if self.status < StatementStatus.SQLIZED:
            self.pre_bound_params.update(params)
            return self

        self.bound_params = _apply_params(params, self.bound_params, self.param_indices, self._sql)
        return self

    # ------------------------------------------------------------------
    # compilation
    # ------------------------------------------------------------------

    def sqlize(self, **args: Any) -> "Statement":
        """Generate the SQL of the statement.

        Raises:
            StatementStateError: When the statement is already compiled.
            ArgumentError: On ``where_on`` used without a join, or naming a
                table that is not part of the join.
        """
        if self.status >= StatementStatus.SQLIZED:
            msg = f"can't sqlize() when in status {self.status}"
            raise StatementStateError(msg)
        if args:
            self.refine(**args)

        source = self.source
        config = self.config
        builder = self.builder
        clause_args = dict(self.args)
        result_as = clause_args.get("result_as") or ""
        if isinstance(result_as, (list, tuple)):
            result_as = result_as[0] if result_as else ""

        if source.where:
            clause_args["where"] = builder.merge_conditions(clause_args.get("where"), source.where)

        db_from = copy.deepcopy(source.db_from)
        select_args = {
            keyword: clause_args[name] for name, keyword in BUILDER_CLAUSES.items() if clause_args.get(name) is not None
        }
        if not select_args.get("columns"):
            select_args["columns"] = source.default_columns
        if result_as == "firstrow" and config.autolimit_firstrow and not select_args.get("limit"):
            select_args["limit"] = 1

        if result_as != "subquery":
            if clause_args.get("for"):
                select_args["for_"] = clause_args["for"]
            elif "for" not in clause_args:
                select_args["for_"] = config.select_implicitly_for

        where_on = clause_args.get("where_on")
        if where_on:
            if not isinstance(db_from, FromJoin):
                msg = "datasource for 'where_on' was not a join"
                raise ArgumentError(msg)
            for table, condition in where_on.items():
                leg = db_from.find_leg(table)
                if leg is None:
                    msg = f"where_on {{{table!r}: ...}}: this table is not in the join"
                    raise ArgumentError(msg)
                leg.condition = builder.merge_conditions(leg.condition, condition)
                leg.using = None

        if isinstance(db_from, FromJoin):
            join_with_using = clause_args.get("join_with_using", config.join_with_using)
            for leg in db_from.legs:
                if not join_with_using:
                    leg.using = None
                elif leg.using:
                    leg.condition = None

        result = builder.select(db_from, **select_args)
        sql, bind = result.sql, list(result.bind)
        post_sql = clause_args.get("post_sql")
        if post_sql:
            sql, bind = post_sql(sql, bind)
            bind = list(bind)

        placeholder = re.compile("^" + re.escape(config.placeholder_prefix) + "(.+)", re.DOTALL)
        param_indices: dict[str, list[int]] = {}
        for index, value in enumerate(bind):
            match = placeholder.match(value) if isinstance(value, str) else None
            if match is not None:
                param_indices.setdefault(match.group(1), []).append(index)
        if self.pre_bound_params:
            bind = _apply_params(self.pre_bound_params, bind, param_indices, sql)
        row_callback = self._make_row_callback(clause_args.get("post_bless"))

        self.args = clause_args
        self._sql = sql
        self._compiled = result
        self.bound_params = bind
        self.param_indices = param_indices
        self.aliased_tables = dict(result.aliased_tables)
        self.aliased_columns = dict(result.aliased_columns)
        self.row_callback = row_callback
        self.status = StatementStatus.SQLIZED
        return self

    compile = sqlize

    def _make_row_callback(self, post_bless: "Optional[Callable[[Any], Any]]") -> "Callable[[Any], Any]":
        statement_ref = weakref.ref(self)

        def row_callback(row: Any) -> Any:
            statement = statement_ref()
            if statement is None:
                msg = "row callback outlived its statement"
                raise StatementStateError(msg)
            row = statement.bless_from_db(row)
            if post_bless is not None:
                post_bless(row)
            return row

        return row_callback

    @property
    def sql(self) -> str:
        """The generated SQL text."""
        if self._sql is None:
            msg = f"can't get sql when in status {self.status}"
            raise StatementStateError(msg)
        return self._sql

    @property
    def bind_values(self) -> "list[Any]":
        """Current bind values, aligned with the placeholders of :attr:`sql`."""
        if self._sql is None:
            msg = f"can't get bind values when in status {self.status}"
            raise StatementStateError(msg)
        return list(self.bound_params)

    # ------------------------------------------------------------------
    # preparation and execution
    # ------------------------------------------------------------------

    def prepare(self, **args: Any) -> "Statement":
        """Hand the SQL to the driver, compiling it first if needed."""
        if args or self.status < StatementStatus.SQLIZED:
            self.sqlize(**args)
        if self.status != StatementStatus.SQLIZED:
            msg = f"can't prepare() when in status {self.status}"
            raise StatementStateError(msg)

        sql = self.sql
        self._log_prepare(sql, self.bound_params)
        self._handle = self._prepare_method(self.args.get("prepare_method"))(sql, self.args.get("prepare_attrs"))
        self.status = StatementStatus.PREPARED
        return self

    def _prepare_method(self, method: "Optional[str]" = None) -> "Callable[..., PreparedHandle]":
        driver = self.schema.driver
        method = method or self.config.prepare_method
        if method not in PREPARE_METHODS:
            msg = f"unknown prepare method: {method!r}"
            raise ImproperConfigurationError(msg)
        return getattr(driver, method)  # type: ignore[no-any-return]

    def _log_prepare(self, sql: str, bind: "Sequence[Any]") -> None:
        log_with_context(
            logger,
            logging.DEBUG,
            f"PREPARE {sql} / {' '.join(repr(value) for value in bind)}",
            sql=sql,
            bind_count=len(bind),
        )

    @property
    def handle(self) -> "PreparedHandle":
        """The prepared driver handle; prepares the statement if needed."""
        if self.status < StatementStatus.PREPARED:
            self.prepare()
        assert self._handle is not None
        return self._handle

    def execute(self, *bind_args: Any, **bind_kwargs: Any) -> "Statement":
        """Bind late values and run the query.

        May be called again on an executed statement to run it with new bind
        values, without compiling or preparing again.

        Raises:
            MissingParameterError: When named placeholders have no value.
        """
        handle = self.handle
        if bind_args or bind_kwargs:
            self.bind(*bind_args, **bind_kwargs)

        self._reuse_row = None
        self._row_count = None
        self.row_num = self.offset

        pre_exec = self.args.get("pre_exec")
        if pre_exec:
            pre_exec(handle)

        self._check_bound()
        self.builder.bind_params(handle, self.bound_params)
        handle.execute()

        post_exec = self.args.get("post_exec")
        if post_exec:
            post_exec(handle)

        self.status = StatementStatus.EXECUTED
        return self

    def _check_bound(self) -> None:
        prefix = self.config.placeholder_prefix
        unbound = [
            name for name, indices in self.param_indices.items() if self.bound_params[indices[0]] == prefix + name
        ]
        if unbound:
            raise MissingParameterError(unbound, self._sql)

    # ------------------------------------------------------------------
    # results
    # ------------------------------------------------------------------

    def select(self, **args: Any) -> Any:
        """Run the statement and return its result in the ``result_as`` shape.

        ``result_as`` is a shape name, or a sequence of a shape name followed
        by arguments for the shape; it defaults to ``"rows"``.
        """
        from dbmodel.result import get_result_shape

        if args:
            self.refine(**args)
        result_as = self.args.get("result_as") or "rows"
        name, *shape_args = result_as if isinstance(result_as, (list, tuple)) else [result_as]
        shape = get_result_shape(name)(*shape_args)
        return shape.get_result(self)

    def row_count(self) -> int:
        """Number of rows the query returns without its LIMIT/OFFSET clause."""
        if self._row_count is None:
            if self.status < StatementStatus.SQLIZED:
                self.sqlize()
            self._check_bound()
            sql, bind = self._count_query()
            self._log_prepare(sql, bind)
            handle = self._prepare_method()(sql)
            self.builder.bind_params(handle, bind)
            try:
                handle.execute()
                values = handle.fetch_array()
            finally:
                handle.finish()
            self._row_count = int(values[0]) if values else 0
        return self._row_count

    def _count_query(self) -> "tuple[str, list[Any]]":
        builder = self.builder
        sql = self.sql
        compiled = self._compiled
        if compiled is not None and compiled.sql == sql and len(compiled.bind) == len(self.bound_params):
            return builder.count_query(compiled, self.bound_params)

        # rewritten by post_sql: strip the trailing LIMIT/OFFSET and count the rest as a subquery
        bind = list(self.bound_params)
        matches = list(builder.limit_offset_pattern().finditer(sql))
        if matches:
            match = matches[-1]
            first = builder.count_markers(sql[: match.start()])
            del bind[first : first + builder.count_markers(match.group(0))]
            sql = sql[: match.start()] + sql[match.end() :]
        return "SELECT COUNT(*) FROM " + builder.table_alias(f"( {sql} )", "count_wrapper"), bind

    def next(self, n_rows: "Optional[int]" = None) -> Any:
        """Fetch one row (or ``None`` at end of data), or a list of up to ``n_rows`` rows.

        Raises:
            ArgumentError: When ``n_rows`` is not positive.
            StatementStateError: When asking for several rows in fast mode.
        """
        if self.status < StatementStatus.EXECUTED:
            self.execute()
        handle = self.handle
        callback = self.row_callback
        assert callback is not None
        row_class = self.source.row_class

        if n_rows is None:
            if self._reuse_row is not None:
                row = self._reuse_row if handle.fetch() else None
            else:
                row = handle.fetchrow(row_class)
            if row is not None:
                row = callback(row)
                self.row_num += 1
            return row

        if n_rows <= 0:
            msg = f"next(): invalid argument {n_rows}"
            raise ArgumentError(msg)
        if self._reuse_row is not None:
            msg = "reusable row, cannot retrieve several"
            raise StatementStateError(msg)
        rows = [callback(row) for row in handle.fetchmany(n_rows, row_class)]
        self.row_num += len(rows)
        return rows

    def all(self) -> "list[Any]":
        """All remaining rows; the handle is finished afterwards."""
        return self._next_and_finish(sys.maxsize)  # type: ignore[no-any-return]

    def _next_and_finish(self, n_rows: "Optional[int]" = None) -> Any:
        row_or_rows = self.next(n_rows)
        self.finish()
        return row_or_rows

    def finish(self) -> None:
        """Release the cursor of the driver handle."""
        if self._handle is not None:
            self._handle.finish()

    def headers(self, *bind_args: Any, **bind_kwargs: Any) -> "list[str]":
        """Column names of the result; executes the statement if needed."""
        if self.status != StatementStatus.EXECUTED:
            self.execute(*bind_args, **bind_kwargs)
        return self.handle.column_names

    def make_fast(self) -> "Statement":
        """Fetch all following rows into one reused row object."""
        if self.status != StatementStatus.EXECUTED:
            msg = f"cannot make_fast() when in status {self.status}"
            raise StatementStateError(msg)
        row = self.source.row_class.fromkeys(self.headers())
        self.handle.bind_columns(row)
        self._reuse_row = row
        return self

    def reset(self, **args: Any) -> "Statement":
        """Start over from a fresh statement on the same source."""
        fresh = type(self)(self.source, **args)
        self.finish()
        self.__dict__.clear()
        self.__dict__.update(fresh.__dict__)
        return self

    # ------------------------------------------------------------------
    # pagination
    # ------------------------------------------------------------------

    @property
    def page_size(self) -> int:
        return self.args.get("page_size") or sys.maxsize

    @property
    def page_index(self) -> int:
        return self.args.get("page_index") or 1

    @property
    def offset(self) -> int:
        """Rows skipped before the first returned row."""
        offset = self.args.get("offset")
        if offset is not None:
            return int(offset)
        if self.args.get("page_size"):
            return (self.page_index - 1) * self.page_size
        return 0

    def page_count(self) -> int:
        row_count = self.row_count()
        if not row_count:
            return 0
        return (row_count - 1) // (self.page_size or 1) + 1

    def page_boundaries(self) -> "tuple[int, int]":
        """1-based positions of the first and last rows of the current page."""
        first = self.offset + 1
        last = min(self.row_count(), first + self.page_size - 1)
        return first, last

    def page_rows(self) -> "list[Any]":
        """Rows of the current page; the handle is finished afterwards."""
        return self._next_and_finish(self.page_size)  # type: ignore[no-any-return]

    # ------------------------------------------------------------------
    # rows
    # ------------------------------------------------------------------

    @property
    def from_db_handlers(self) -> "dict[str, Callable[[Any], Any]]":
        if self._from_db_handlers is None:
            self._from_db_handlers = compute_from_db_handlers(
                self.source, self.aliased_columns, self.aliased_tables, self.args.get("column_types")
            )
        return self._from_db_handlers

    def bless_from_db(self, row: Any) -> "Row":
        """Give a fetched row the row class of the source and apply column handlers."""
        row_class = self.source.row_class
        if not isinstance(row, row_class):
            row = row_class(row)
        schema = self.schema
        if not schema.is_singleton or schema.db_schema:
            row._schema = schema
        for column, handler in self.from_db_handlers.items():
            if column in row:
                row[column] = handler(row[column])
        return row

    def _forbid_callbacks(self, shape_name: str) -> None:
        callbacks = [name for name in CALLBACK_CLAUSES if self.args.get(name)]
        if callbacks:
            msg = f"{', '.join(callbacks)} incompatible with result_as={shape_name!r}"
            raise ArgumentError(msg)
