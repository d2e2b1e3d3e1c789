# ruff: noqa: PLR0913
"""SELECT generation on top of sqlglot.

The builder renders statements with named placeholders and then rewrites
them into the positional markers of the DB-API module, collecting bind
values in the order the markers appear in the final SQL text.
"""

import re
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Union

from sqlglot import exp
from sqlglot.errors import ParseError

from dbmodel.builder._conditions import ConditionBuilder, merge_conditions
from dbmodel.builder._join import FromJoin, split_table_spec
from dbmodel.exceptions import SQLBuilderError
from dbmodel.parameters import TypedParameter
from dbmodel.typing import ColumnsArg, Condition
from dbmodel.utils.logging import get_logger

if TYPE_CHECKING:
    from sqlglot.dialects.dialect import DialectType

    from dbmodel.driver import PreparedHandle

__all__ = ("MAX_LIMIT", "BuilderResult", "SQLBuilder")

logger = get_logger("builder")

MAX_LIMIT = sys.maxsize

BIND_NAME_PREFIX = "dbm_bind_"
_BIND_PATTERN = re.compile(rf"%\({BIND_NAME_PREFIX}(\d+)\)s|[:@$]?{BIND_NAME_PREFIX}(\d+)\b")

SET_OPERATIONS: "tuple[tuple[str, type[exp.Expression], bool], ...]" = (
    ("union", exp.Union, True),
    ("union_all", exp.Union, False),
    ("intersect", exp.Intersect, True),
    ("intersect_all", exp.Intersect, False),
    ("except_", exp.Except, True),
    ("except_all", exp.Except, False),
    ("minus", exp.Except, True),
)

_NO_AS_TABLE_ALIAS_DIALECTS = frozenset({"oracle"})
_ALIAS_PATTERN = re.compile(r"^\w+$")


def _loose_whitespace(text: str) -> str:
    """Escape ``text`` for a regex, letting any run of whitespace match any other."""
    return "".join(r"\s+" if token.isspace() else re.escape(token) for token in re.split(r"(\s+)", text) if token)


@dataclass
class BuilderResult:
    """Generated SQL with its positional bind values and alias maps.

    ``expression`` is the query before the locking clause, with named
    placeholders; ``bind_slots`` gives, for each positional marker of ``sql``,
    the placeholder it was rendered from.
    """

    sql: str
    bind: "list[Any]" = field(default_factory=list)
    aliased_tables: "dict[str, str]" = field(default_factory=dict)
    aliased_columns: "dict[str, str]" = field(default_factory=dict)
    expression: "Optional[exp.Expression]" = None
    bind_slots: "list[int]" = field(default_factory=list)


class _BindCollector:
    __slots__ = ("values",)

    def __init__(self) -> None:
        self.values: list[Any] = []

    def __call__(self, value: Any) -> exp.Expression:
        self.values.append(value)
        return exp.Placeholder(this=f"{BIND_NAME_PREFIX}{len(self.values) - 1}")


class SQLBuilder:
    """Turns structured clause arguments into SQL text and bind values."""

    __slots__ = ("dialect", "paramstyle")

    def __init__(self, dialect: "Optional[DialectType]" = None, paramstyle: str = "qmark") -> None:
        self.dialect = dialect
        self.paramstyle = paramstyle

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------

    def merge_conditions(self, *conditions: Any) -> Any:
        """AND together where-like structures."""
        return merge_conditions(*conditions)

    def select(
        self,
        from_: "Union[str, FromJoin]",
        columns: "Optional[ColumnsArg]" = None,
        where: "Condition" = None,
        order_by: Any = None,
        group_by: Any = None,
        having: "Condition" = None,
        limit: "Optional[int]" = None,
        offset: "Optional[int]" = None,
        page_size: "Optional[int]" = None,
        page_index: "Optional[int]" = None,
        for_: "Optional[str]" = None,
        **set_operations: Any,
    ) -> BuilderResult:
        """Generate a SELECT statement.

        Args:
            from_: Table specification (``"table"`` or ``"table|alias"``) or join descriptor
            columns: Column list; ``"expr|alias"`` entries declare column aliases and a leading
                ``"-distinct"`` entry makes the query ``SELECT DISTINCT``
            where: Where-like structure
            order_by: Column or list of columns, prefixed by ``-`` for descending order
            group_by: Column or list of columns
            having: Where-like structure
            limit: Maximum number of rows
            offset: Number of rows to skip
            page_size: Rows per page, sets ``limit`` when no explicit limit is given
            page_index: 1-based page number, sets ``offset`` together with ``page_size``
            for_: Locking clause such as ``"update"`` or ``"read only"``
            **set_operations: ``union``, ``union_all``, ``intersect``, ``intersect_all``,
                ``except_``, ``except_all``, ``minus``; each a mapping of clause arguments
                (or a list of such mappings) describing the other SELECT

        Raises:
            SQLBuilderError: On malformed arguments.

        Returns:
            The generated SQL, bind values and alias maps.
        """
        unknown = set(set_operations) - {name for name, _, _ in SET_OPERATIONS}
        if unknown:
            msg = f"unknown select arguments: {', '.join(sorted(unknown))}"
            raise SQLBuilderError(msg)

        collector = _BindCollector()
        conditions = ConditionBuilder(collector, self.dialect)
        result = BuilderResult(sql="")

        query: exp.Expression = self._build_select(conditions, result, from_, columns, where, group_by, having)

        for name, node_type, distinct in SET_OPERATIONS:
            others = set_operations.get(name)
            if not others:
                continue
            if isinstance(others, Mapping):
                others = [others]
            for other in others:
                other_args = dict(other)
                other_select = self._build_select(
                    conditions,
                    result,
                    other_args.pop("from_", other_args.pop("from", from_)),
                    other_args.pop("columns", columns),
                    other_args.pop("where", None),
                    other_args.pop("group_by", None),
                    other_args.pop("having", None),
                )
                if other_args:
                    msg = f"unsupported arguments in '{name}': {', '.join(sorted(other_args))}"
                    raise SQLBuilderError(msg)
                query = node_type(this=query, expression=other_select, distinct=distinct)

        if order_by:
            query.set("order", exp.Order(expressions=self._order_items(conditions, order_by)))

        if page_size:
            if limit is None:
                limit = page_size
            if offset is None:
                offset = ((page_index or 1) - 1) * page_size
        if limit is not None or offset:
            query.set("limit", exp.Limit(expression=collector(MAX_LIMIT if limit is None else limit)))
            query.set("offset", exp.Offset(expression=collector(offset or 0)))

        sql, slots = self._render(query)
        if for_:
            sql = f"{sql} FOR {for_.upper()}"
        result.sql = sql
        result.bind = [collector.values[slot] for slot in slots]
        result.expression = query
        result.bind_slots = slots
        logger.debug("generated %s", sql)
        return result

    def count_query(self, result: BuilderResult, bind: "Sequence[Any]") -> "tuple[str, list[Any]]":
        """Build the query counting the rows of a generated SELECT.

        ORDER BY, LIMIT and OFFSET are dropped. A plain SELECT keeps its FROM,
        joins and WHERE under a ``COUNT(*)`` select list; set operations,
        DISTINCT, GROUP BY and HAVING queries are counted as a subquery.

        Args:
            result: The generated statement
            bind: Current bind values, aligned with the markers of ``result.sql``

        Raises:
            SQLBuilderError: When ``result`` carries no expression.

        Returns:
            The SQL of the count query and its bind values, in marker order.
        """
        if result.expression is None:
            msg = "cannot count rows of a statement without expression"
            raise SQLBuilderError(msg)
        query = result.expression.copy()
        for key in ("order", "limit", "offset"):
            query.set(key, None)

        count_star = exp.Count(this=exp.Star())
        if isinstance(query, exp.Select) and not any(query.args.get(key) for key in ("distinct", "group", "having")):
            count = query.select(count_star, append=False, copy=False)
        else:
            count = exp.select(count_star).from_(query.subquery(alias="count_wrapper", copy=False), copy=False)

        sql, slots = self._render(count)
        position = {slot: index for index, slot in enumerate(result.bind_slots)}
        return sql, [bind[position[slot]] for slot in slots]

    def limit_offset(self, limit: int, offset: int) -> "tuple[str, list[Any]]":
        """Render the dialect-specific LIMIT/OFFSET clause on its own.

        Returns:
            The SQL fragment and its bind values, in marker order.
        """
        collector = _BindCollector()
        query = exp.select(exp.Star()).from_(exp.to_table("t"))
        query.set("limit", exp.Limit(expression=collector(limit)))
        query.set("offset", exp.Offset(expression=collector(offset)))
        base = exp.select(exp.Star()).from_(exp.to_table("t")).sql(dialect=self.dialect)
        sql, slots = self._render(query)
        return sql[len(base) :].strip(), [collector.values[slot] for slot in slots]

    def limit_offset_pattern(self) -> "re.Pattern[str]":
        """A regex matching the LIMIT/OFFSET clause of generated SQL.

        Whitespace inside the clause is matched loosely so that SQL rewritten
        by a post-processing hook is still recognized.
        """
        fragment, _ = self.limit_offset(0, 0)
        pieces = [_loose_whitespace(piece) for piece in re.split(self.marker_pattern, fragment)]
        pattern = self.marker_pattern.join(pieces)
        return re.compile(rf"\s*\b{pattern}", re.IGNORECASE)

    @property
    def marker_pattern(self) -> str:
        """Regex source matching one positional marker."""
        if self.paramstyle == "format":
            return r"%s"
        if self.paramstyle == "numeric":
            return r":\d+"
        return r"\?"

    def count_markers(self, sql: str) -> int:
        """Count positional markers in a piece of generated SQL."""
        return len(re.findall(self.marker_pattern, sql))

    def table_alias(self, table_sql: str, alias: str) -> str:
        """Alias a table or subquery expression."""
        dialect_name = self.dialect if isinstance(self.dialect, str) else None
        if dialect_name in _NO_AS_TABLE_ALIAS_DIALECTS:
            return f"{table_sql} {alias}"
        return f"{table_sql} AS {alias}"

    def bind_params(self, handle: "PreparedHandle", params: "Sequence[Any]") -> None:
        """Bind positional values on a prepared handle, honouring type metadata."""
        for index, value in enumerate(params):
            if isinstance(value, TypedParameter):
                handle.bind_param(index, value.value, value.data_type)
            else:
                handle.bind_param(index, value)

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------

    def _marker(self, position: int) -> str:
        if self.paramstyle == "format":
            return "%s"
        if self.paramstyle == "numeric":
            return f":{position}"
        return "?"

    def _render(self, query: exp.Expression) -> "tuple[str, list[int]]":
        """Render ``query`` with positional markers.

        Returns:
            The SQL and the placeholder number behind each marker, in order.
        """
        rendered = query.sql(dialect=self.dialect)
        slots: list[int] = []

        def replace(match: "re.Match[str]") -> str:
            slots.append(int(match.group(1) or match.group(2)))
            return self._marker(len(slots))

        return _BIND_PATTERN.sub(replace, rendered), slots

    def _parse(self, sql: str) -> exp.Expression:
        try:
            return exp.maybe_parse(sql, dialect=self.dialect)
        except ParseError as e:
            msg = f"cannot parse SQL fragment {sql!r}: {e}"
            raise SQLBuilderError(msg) from e

    def _table(self, spec: str, result: BuilderResult) -> exp.Expression:
        name, alias = split_table_spec(spec)
        if not name:
            msg = f"invalid table specification: {spec!r}"
            raise SQLBuilderError(msg)
        table = exp.to_table(name, dialect=self.dialect)
        if alias:
            result.aliased_tables[alias] = name
            return exp.alias_(table, alias, table=True)
        return table

    def _build_select(
        self,
        conditions: ConditionBuilder,
        result: BuilderResult,
        from_: "Union[str, FromJoin]",
        columns: Any,
        where: Any,
        group_by: Any,
        having: Any,
    ) -> exp.Select:
        select = exp.Select()

        column_list = [columns] if isinstance(columns, str) else list(columns or ["*"])
        if column_list and isinstance(column_list[0], str) and column_list[0].lower() == "-distinct":
            select.set("distinct", exp.Distinct())
            column_list = column_list[1:] or ["*"]
        select = select.select(*(self._column(column, result) for column in column_list), copy=False)

        if isinstance(from_, FromJoin):
            select = select.from_(self._table(from_.first, result), copy=False)
            for leg in from_.legs:
                on = conditions.build(leg.condition)
                select = select.join(
                    self._table(leg.table, result),
                    on=on,
                    using=list(leg.using) if leg.using and on is None else None,
                    join_type=leg.kind,
                    copy=False,
                )
        elif isinstance(from_, str):
            select = select.from_(self._table(from_, result), copy=False)
        else:
            msg = f"invalid FROM specification: {from_!r}"
            raise SQLBuilderError(msg)

        where_expr = conditions.build(where)
        if where_expr is not None:
            select = select.where(where_expr, copy=False)
        if group_by:
            items = [group_by] if isinstance(group_by, str) else list(group_by)
            select = select.group_by(*(self._parse(item) for item in items), copy=False)
        having_expr = conditions.build(having)
        if having_expr is not None:
            select = select.having(having_expr, copy=False)
        return select

    def _column(self, column: Any, result: BuilderResult) -> exp.Expression:
        if isinstance(column, exp.Expression):
            return column
        text = str(column).strip()
        expression, sep, alias = text.rpartition("|")
        alias = alias.strip()
        # "a || b" is a concatenation, not an alias
        if not sep or not _ALIAS_PATTERN.match(alias) or expression.endswith("|"):
            expression, alias = text, ""
        expression = expression.strip()
        parsed = exp.Star() if expression == "*" else self._parse(expression)
        if alias:
            result.aliased_columns[alias] = expression
            return exp.alias_(parsed, alias)
        if isinstance(parsed, exp.Alias):
            result.aliased_columns[parsed.alias] = parsed.this.sql(dialect=self.dialect)
        return parsed

    def _order_items(self, conditions: ConditionBuilder, order_by: Any) -> "list[exp.Expression]":
        items = [order_by] if isinstance(order_by, (str, exp.Expression)) else list(order_by)
        ordered: list[exp.Expression] = []
        for item in items:
            if isinstance(item, exp.Expression):
                ordered.append(item if isinstance(item, exp.Ordered) else exp.Ordered(this=item))
                continue
            text = item.strip()
            if text.startswith(("-", "+")):
                ordered.append(exp.Ordered(this=conditions.column(text[1:].strip()), desc=text.startswith("-")))
                continue
            parts = text.rsplit(None, 1)
            if len(parts) == 2 and parts[1].upper() in {"ASC", "DESC"}:
                ordered.append(exp.Ordered(this=conditions.column(parts[0]), desc=parts[1].upper() == "DESC"))
            else:
                ordered.append(exp.Ordered(this=conditions.column(text)))
        return ordered
