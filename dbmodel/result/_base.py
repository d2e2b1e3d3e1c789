from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from dbmodel.statement import Statement

__all__ = ("ResultShape",)


class ResultShape(ABC):
    """Turns a statement into the value returned by ``select()``.

    Constructor arguments come from a ``result_as`` sequence:
    ``result_as=["hashref", "id"]`` calls ``HashRef("id")``.
    """

    name: ClassVar[str] = ""

    def __init__(self, *args: Any) -> None:
        self.args = args

    @abstractmethod
    def get_result(self, statement: "Statement") -> Any:
        """Run what is needed on ``statement`` and return the result."""
