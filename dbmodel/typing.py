from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Callable, Union

from typing_extensions import TypeAlias

if TYPE_CHECKING:
    from sqlglot import exp

__all__ = (
    "ColumnHandler",
    "ColumnsArg",
    "Condition",
)


Condition: TypeAlias = Union[None, str, "exp.Expression", Mapping[str, Any], list, tuple]
"""A where-like condition: mapping, sequence of alternatives, sqlglot expression or SQL text."""

ColumnsArg: TypeAlias = Union[str, "list[str]", "tuple[str, ...]"]

ColumnHandler: TypeAlias = Callable[[Any], Any]
"""Transforms one column value; receives the stored value, returns the new one."""
