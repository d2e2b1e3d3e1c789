"""Join descriptors consumed by the SQL builder."""

from dataclasses import dataclass, field
from typing import Any, Optional

__all__ = ("FromJoin", "JoinLeg", "split_table_spec")


def split_table_spec(spec: str) -> "tuple[str, Optional[str]]":
    """Split a ``"table|alias"`` specification into its table name and alias."""
    name, sep, alias = spec.partition("|")
    name = name.strip()
    return name, (alias.strip() or None) if sep else None


@dataclass
class JoinLeg:
    """One joined table, with the condition linking it to the tables before it.

    A leg may carry both an explicit ``condition`` and a ``using`` column
    list; the statement keeps only one of them when the SQL is generated.
    """

    table: str
    kind: str = "inner"
    condition: Any = None
    using: "Optional[list[str]]" = None

    @property
    def table_name(self) -> str:
        return split_table_spec(self.table)[0]

    @property
    def alias(self) -> "Optional[str]":
        return split_table_spec(self.table)[1]

    def matches(self, name: str) -> bool:
        return name in {self.table, self.table_name, self.alias}


@dataclass
class FromJoin:
    """A ``FROM`` clause made of a first table followed by join legs."""

    first: str
    legs: "list[JoinLeg]" = field(default_factory=list)

    def find_leg(self, table: str) -> "Optional[JoinLeg]":
        """Find the leg whose destination is ``table`` (name, alias or raw spec)."""
        for leg in self.legs:
            if leg.matches(table):
                return leg
        return None

    @property
    def tables(self) -> "list[str]":
        return [self.first, *(leg.table for leg in self.legs)]
