"""Translation of where-like structures into sqlglot conditions.

Supported structures:

* ``{"col": value}``: equality, ``IS NULL`` for ``None``, ``IN`` for lists;
* ``{"col": {"op": operand, ...}}``: comparison operators, ANDed together;
* ``{"-and": [...]}``, ``{"-or": [...]}``, ``{"-not": cond}``;
* a list or tuple of conditions: ORed together;
* a sqlglot expression or SQL text, used as is.

Every value becomes a named placeholder so that bind values can later be
collected in the order they appear in the rendered SQL.
"""

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Optional

from sqlglot import exp
from sqlglot.errors import ParseError

from dbmodel.exceptions import SQLBuilderError
from dbmodel.typing import Condition

if TYPE_CHECKING:
    from sqlglot.dialects.dialect import DialectType

__all__ = ("ConditionBuilder", "merge_conditions")

_COMPARISONS: "dict[str, type[exp.Binary]]" = {
    "=": exp.EQ,
    "==": exp.EQ,
    "!=": exp.NEQ,
    "<>": exp.NEQ,
    "<": exp.LT,
    "<=": exp.LTE,
    ">": exp.GT,
    ">=": exp.GTE,
    "like": exp.Like,
    "ilike": exp.ILike,
}

_NEGATED = {"not like": "like", "not ilike": "ilike", "not in": "in", "not between": "between"}


def _is_empty(condition: Any) -> bool:
    if condition is None:
        return True
    if isinstance(condition, (Mapping, list, tuple, str)):
        return not condition
    return False


def merge_conditions(*conditions: "Condition") -> "Condition":
    """AND together several where-like structures, skipping empty ones."""
    kept = [condition for condition in conditions if not _is_empty(condition)]
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return {"-and": kept}


class ConditionBuilder:
    """Builds sqlglot conditions, turning every value into a bind placeholder."""

    __slots__ = ("_bind", "dialect")

    def __init__(self, bind: "Callable[[Any], exp.Expression]", dialect: "Optional[DialectType]" = None) -> None:
        self._bind = bind
        self.dialect = dialect

    def build(self, condition: "Condition") -> "Optional[exp.Expression]":
        if _is_empty(condition):
            return None
        if isinstance(condition, exp.Expression):
            return condition
        if isinstance(condition, str):
            return self._parse(condition)
        if isinstance(condition, Mapping):
            return self._build_mapping(condition)
        if isinstance(condition, (list, tuple)):
            return self._combine([self.build(item) for item in condition], exp.or_)
        msg = f"unsupported condition type: {type(condition).__name__}"
        raise SQLBuilderError(msg)

    def column(self, name: str) -> exp.Expression:
        return self._parse(name)

    def _parse(self, sql: str) -> exp.Expression:
        try:
            return exp.maybe_parse(sql, dialect=self.dialect)
        except ParseError as e:
            msg = f"cannot parse SQL fragment {sql!r}: {e}"
            raise SQLBuilderError(msg) from e

    @staticmethod
    def _combine(parts: "list[Optional[exp.Expression]]", connector: Any) -> "Optional[exp.Expression]":
        kept = [part for part in parts if part is not None]
        if not kept:
            return None
        if len(kept) == 1:
            return kept[0]
        return connector(*kept)

    def _build_mapping(self, condition: "Mapping[str, Any]") -> "Optional[exp.Expression]":
        parts: "list[Optional[exp.Expression]]" = []
        for key, value in condition.items():
            if key == "-and":
                items = list(value.items()) if isinstance(value, Mapping) else value
                parts.append(self._combine([self._build_item(item) for item in items], exp.and_))
            elif key == "-or":
                items = list(value.items()) if isinstance(value, Mapping) else value
                parts.append(self._combine([self._build_item(item) for item in items], exp.or_))
            elif key == "-not":
                inner = self.build(value)
                if inner is not None:
                    parts.append(exp.not_(inner))
            elif key.startswith("-"):
                msg = f"unknown condition operator: {key}"
                raise SQLBuilderError(msg)
            else:
                parts.append(self._build_column_condition(key, value))
        return self._combine(parts, exp.and_)

    def _build_item(self, item: Any) -> "Optional[exp.Expression]":
        # items of a mapping given to -and / -or come as (key, value) pairs
        if isinstance(item, tuple) and len(item) == 2 and isinstance(item[0], str):
            return self._build_mapping({item[0]: item[1]})
        return self.build(item)

    def _build_column_condition(self, key: str, value: Any) -> "Optional[exp.Expression]":
        column = self.column(key)
        if isinstance(value, Mapping):
            return self._combine(
                [self._build_operator(column.copy(), op, operand) for op, operand in value.items()], exp.and_
            )
        return self._build_operator(column, "=", value)

    def _build_operator(self, column: exp.Expression, op: str, operand: Any) -> exp.Expression:
        op = " ".join(op.lower().split())
        if op in _NEGATED:
            return exp.not_(self._build_operator(column, _NEGATED[op], operand))
        if op == "in" or (op == "=" and isinstance(operand, (list, tuple))):
            values = list(operand) if isinstance(operand, (list, tuple)) else [operand]
            if not values:
                return exp.EQ(this=exp.Literal.number(1), expression=exp.Literal.number(0))
            return exp.In(this=column, expressions=[self._value(v) for v in values])
        if op == "between":
            if not isinstance(operand, (list, tuple)) or len(operand) != 2:
                msg = "'between' expects a pair of values"
                raise SQLBuilderError(msg)
            return exp.Between(this=column, low=self._value(operand[0]), high=self._value(operand[1]))
        if op in {"is", "is not"} or (operand is None and op in {"=", "==", "!=", "<>"}):
            target = exp.Null() if operand is None else self._value(operand)
            is_expr = exp.Is(this=column, expression=target)
            return exp.not_(is_expr) if op in {"is not", "!=", "<>"} else is_expr
        comparison = _COMPARISONS.get(op)
        if comparison is None:
            msg = f"unknown comparison operator: {op!r}"
            raise SQLBuilderError(msg)
        return comparison(this=column, expression=self._value(operand))

    def _value(self, value: Any) -> exp.Expression:
        if isinstance(value, exp.Expression):
            return value
        return self._bind(value)
