"""Row objects produced by statements."""

from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from dbmodel.schema import Schema

__all__ = ("Row",)


class Row(dict):  # type: ignore[type-arg]
    """A fetched row.

    Columns are stored as mapping items and are also readable as attributes.
    Each source derives its own subclass, so ``isinstance(row, Employee)``
    tells where a row came from.
    """

    _schema: "Optional[Schema]" = None

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            msg = f"{type(self).__name__!r} row has no column {name!r}"
            raise AttributeError(msg) from None

    @property
    def schema(self) -> "Optional[Schema]":
        """The schema the row was fetched through, in multi-connection mode."""
        return self._schema
