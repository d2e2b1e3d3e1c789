"""Lifecycle states of a statement."""

from enum import IntEnum

__all__ = ("StatementStatus",)


class StatementStatus(IntEnum):
    """Ordered phases of a statement.

    Members compare by phase order; ``str()`` gives the lowercase label used
    in error messages.
    """

    NEW = 1
    REFINED = 2
    SQLIZED = 3
    PREPARED = 4
    EXECUTED = 5

    def __str__(self) -> str:
        return self.name.lower()
