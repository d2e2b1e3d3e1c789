"""Result shapes: what ``select()`` returns for each ``result_as`` value.

Applications add their own shapes with :func:`register_result_shape`.
"""

from typing import Any

from dbmodel.result._base import ResultShape
from dbmodel.result.registry import SHAPE_ALIASES, ResultShapeRegistry
from dbmodel.result.shapes import (
    Count,
    FastStatement,
    FirstRow,
    FlatArrayRef,
    HashRef,
    IteratorResult,
    Rows,
    Sql,
    StatementResult,
    SubqueryResult,
)

__all__ = (
    "SHAPE_ALIASES",
    "ResultShape",
    "ResultShapeRegistry",
    "get_result_shape",
    "register_result_shape",
    "result_shape_registry",
)

result_shape_registry = ResultShapeRegistry()

for _shape in (
    Rows,
    FirstRow,
    FlatArrayRef,
    StatementResult,
    FastStatement,
    Sql,
    SubqueryResult,
    Count,
    HashRef,
    IteratorResult,
):
    result_shape_registry.register(_shape.name, _shape)


def register_result_shape(name: str, shape: "type[ResultShape]", *, replace: bool = False) -> None:
    """Make ``shape`` available as ``result_as=name`` in every statement."""
    result_shape_registry.register(name, shape, replace=replace)


def get_result_shape(name: Any) -> "type[ResultShape]":
    return result_shape_registry.get(name)
