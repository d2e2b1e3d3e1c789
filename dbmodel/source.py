"""Data sources: tables and joins, with the metadata statements need."""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional, Union

from dbmodel.builder import FromJoin, JoinLeg, split_table_spec
from dbmodel.exceptions import ArgumentError, NotFoundError
from dbmodel.row import Row
from dbmodel.typing import ColumnHandler

if TYPE_CHECKING:
    from dbmodel.schema import Schema
    from dbmodel.statement import Statement

__all__ = ("ColumnType", "Join", "Source", "Table")

HANDLER_KINDS = frozenset({"from_db", "to_db"})


class ColumnType:
    """A named bundle of column handlers.

    ``from_db`` handlers transform values read from the database, ``to_db``
    handlers transform values about to be written.
    """

    __slots__ = ("handlers", "name")

    def __init__(self, name: str, **handlers: "ColumnHandler") -> None:
        unknown = set(handlers) - HANDLER_KINDS
        if unknown:
            msg = f"unknown handler kinds for column type {name}: {', '.join(sorted(unknown))}"
            raise ArgumentError(msg)
        self.name = name
        self.handlers = dict(handlers)

    def __repr__(self) -> str:
        return f"ColumnType({self.name!r}, handlers={sorted(self.handlers)!r})"


class Source(ABC):
    """Common behaviour of tables and joins."""

    def __init__(
        self,
        schema: "Schema",
        name: str,
        primary_key: "Sequence[str]" = (),
        default_columns: "Union[str, Sequence[str]]" = "*",
        where: Any = None,
        parents: "Sequence[Source]" = (),
        row_class: "Optional[type[Row]]" = None,
    ) -> None:
        self.schema = schema
        self.name = name
        self.primary_key: tuple[str, ...] = tuple(primary_key)
        self.default_columns = default_columns
        self.where = where
        self.parents: tuple[Source, ...] = tuple(parents)
        self.column_handlers: dict[str, dict[str, ColumnHandler]] = {}
        if row_class is None:
            bases = tuple(parent.row_class for parent in self.parents) or (Row,)
            row_class = type(name, bases, {"__module__": __name__})
        self.row_class = row_class

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def __str__(self) -> str:
        return self.name

    @property
    def db_name(self) -> "Optional[str]":
        return None

    @property
    @abstractmethod
    def db_from(self) -> "Union[str, FromJoin]":
        """Table name or join descriptor used in the FROM clause."""

    @property
    def aliased_tables(self) -> "dict[str, str]":
        return {}

    def ancestors(self) -> "list[Source]":
        """All parents, transitively, nearest first, without duplicates."""
        seen: list[Source] = []
        pending = list(self.parents)
        while pending:
            parent = pending.pop(0)
            if parent not in seen:
                seen.append(parent)
                pending.extend(parent.parents)
        return seen

    def consolidated_column_handlers(self) -> "dict[str, dict[str, ColumnHandler]]":
        """Column handlers of this source and its ancestors; nearer sources win."""
        handlers: dict[str, dict[str, ColumnHandler]] = {}
        for source in [*reversed(self.ancestors()), self]:
            handlers.update(source.column_handlers)
        return handlers

    def define_column_type(self, type_name: str, *columns: str) -> "Source":
        """Attach the handlers of a schema column type to some columns."""
        column_type = self.schema.type(type_name)
        if column_type is None:
            msg = f"no such column type: {type_name}"
            raise NotFoundError(msg)
        for column in columns:
            self.column_handlers[column] = dict(column_type.handlers)
        return self

    def define_column_handlers(self, column: str, **handlers: "ColumnHandler") -> "Source":
        unknown = set(handlers) - HANDLER_KINDS
        if unknown:
            msg = f"unknown handler kinds for column {column}: {', '.join(sorted(unknown))}"
            raise ArgumentError(msg)
        self.column_handlers.setdefault(column, {}).update(handlers)
        return self

    def statement(self, **args: Any) -> "Statement":
        """Create a new statement on this source."""
        from dbmodel.statement import Statement

        return Statement(self, **args)

    def select(self, **args: Any) -> Any:
        """Shortcut for ``self.statement().select(**args)``."""
        return self.statement().select(**args)

    def fetch(self, *key: Any, **args: Any) -> Any:
        """Fetch a single row by primary key."""
        value = key[0] if len(key) == 1 else list(key)
        return self.statement().select(fetch=value, **args)


class Table(Source):
    """A database table."""

    def __init__(self, schema: "Schema", name: str, db_name: "Optional[str]" = None, **kwargs: Any) -> None:
        super().__init__(schema, name, **kwargs)
        self._db_name = db_name or name

    @property
    def db_name(self) -> str:
        return self._db_name

    @property
    def db_from(self) -> str:
        return self._db_name


class Join(Source):
    """A join between tables of the same schema.

    The joined tables become the ancestors of the join, so their column
    handlers apply to rows fetched through it.
    """

    def __init__(
        self,
        schema: "Schema",
        name: str,
        first: str,
        legs: "Sequence[Union[JoinLeg, Mapping[str, Any]]]",
        **kwargs: Any,
    ) -> None:
        self.join = FromJoin(first=first, legs=[leg if isinstance(leg, JoinLeg) else JoinLeg(**leg) for leg in legs])
        if not self.join.legs:
            msg = f"join {name} needs at least one leg"
            raise ArgumentError(msg)
        parents = kwargs.pop("parents", None)
        if parents is None:
            parents = [self._lookup(schema, spec) for spec in self.join.tables]
        super().__init__(schema, name, parents=parents, **kwargs)

    @staticmethod
    def _lookup(schema: "Schema", spec: str) -> Source:
        name = split_table_spec(spec)[0]
        table = schema.table(name)
        if table is None:
            msg = f"unknown table in join: {name}"
            raise NotFoundError(msg)
        return table

    @property
    def db_from(self) -> FromJoin:
        return self.join

    @property
    def aliased_tables(self) -> "dict[str, str]":
        aliases: dict[str, str] = {}
        for spec in self.join.tables:
            name, alias = split_table_spec(spec)
            if alias:
                aliases[alias] = name
        return aliases
