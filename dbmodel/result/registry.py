"""Registry of result shapes selectable through ``result_as``."""

from typing import TYPE_CHECKING, Any, Final

from mypy_extensions import mypyc_attr

from dbmodel.exceptions import ImproperConfigurationError, NotFoundError
from dbmodel.utils.logging import get_logger

if TYPE_CHECKING:
    from dbmodel.result._base import ResultShape

__all__ = ("SHAPE_ALIASES", "ResultShapeRegistry")

logger = get_logger("result")

SHAPE_ALIASES: Final[dict[str, str]] = {
    "flat": "flat_arrayref",
    "flat_array": "flat_arrayref",
    "arrayref": "rows",
    "fast-statement": "fast_statement",
}


@mypyc_attr(allow_interpreted_subclasses=True)
class ResultShapeRegistry:
    """Maps shape names to the classes producing them.

    Examples:
        registry.register("first_value", FirstValue)
        shape_class = registry.get("first_value")
        value = shape_class().get_result(statement)
    """

    __slots__ = ("_shapes",)

    def __init__(self) -> None:
        self._shapes: dict[str, type[ResultShape]] = {}

    @staticmethod
    def canonical_name(name: str) -> str:
        """Collapse historical aliases (``flat``, ``arrayref`` ...) to the registered name."""
        return SHAPE_ALIASES.get(name, name)

    def register(self, name: str, shape: "type[ResultShape]", *, replace: bool = False) -> None:
        """Register ``shape`` under ``name``.

        Raises:
            ImproperConfigurationError: If the name is already taken and ``replace`` is false.
        """
        name = self.canonical_name(name)
        if name in self._shapes and not replace:
            msg = f"result shape {name!r} is already registered"
            raise ImproperConfigurationError(msg)
        self._shapes[name] = shape
        logger.debug("registered result shape %s", name)

    def unregister(self, name: str) -> None:
        self._shapes.pop(self.canonical_name(name), None)

    def get(self, name: Any) -> "type[ResultShape]":
        """Find the shape class for ``name``.

        Raises:
            NotFoundError: When no shape is registered under the name.
        """
        canonical = self.canonical_name(str(name))
        shape = self._shapes.get(canonical)
        if shape is None:
            msg = f"didn't find any result shape to implement result_as={name!r}"
            raise NotFoundError(msg)
        return shape

    def __contains__(self, name: str) -> bool:
        return self.canonical_name(name) in self._shapes

    def list_shapes(self) -> "list[str]":
        return sorted(self._shapes)
