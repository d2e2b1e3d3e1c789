"""Bind values carrying explicit type metadata."""

from typing import Any

__all__ = ("TypedParameter",)


class TypedParameter:
    """Container for a bind value with type metadata.

    ``data_type`` is handed to the driver when the value is bound, where it
    selects a coercion (see :attr:`dbmodel.driver.SyncDriver.type_coercion_map`).
    It may be a Python type, a type name or a mapping of driver attributes
    holding a ``"type"`` key.
    """

    __slots__ = ("data_type", "value")

    def __init__(self, value: Any, data_type: Any) -> None:
        self.value = value
        self.data_type = data_type

    def __hash__(self) -> int:
        try:
            value_hash = hash(self.value)
        except TypeError:
            value_hash = hash(repr(self.value))
        return hash((value_hash, repr(self.data_type)))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return False
        return self.value == other.value and self.data_type == other.data_type

    def __repr__(self) -> str:
        return f"{type(self).__name__}(value={self.value!r}, data_type={self.data_type!r})"
