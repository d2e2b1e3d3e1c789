"""Schema: registry of sources and column types, owner of the driver."""

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Optional, Union

from dbmodel.builder import JoinLeg, SQLBuilder
from dbmodel.config import PARAMSTYLES, SchemaConfig
from dbmodel.exceptions import DatabaseConnectionError, ImproperConfigurationError
from dbmodel.source import ColumnType, Join, Source, Table
from dbmodel.typing import ColumnHandler
from dbmodel.utils.logging import get_logger

if TYPE_CHECKING:
    from dbmodel.driver import SyncDriver
    from dbmodel.statement import Statement

__all__ = ("Schema",)

logger = get_logger("schema")


class Schema:
    """A set of tables and joins sharing one driver and one configuration.

    Args:
        name: Schema name, used in diagnostics
        driver: Driver collaborator; may be attached later through :attr:`driver`
        config: Schema configuration; when omitted, the paramstyle is taken from the driver
        is_singleton: ``False`` when several instances of the schema are connected to
            different databases; rows then keep a reference to the schema they come from
        db_schema: Database schema name; also enables the row back-reference
    """

    def __init__(
        self,
        name: str,
        driver: "Optional[SyncDriver]" = None,
        config: "Optional[SchemaConfig]" = None,
        is_singleton: bool = True,
        db_schema: "Optional[str]" = None,
    ) -> None:
        if config is None:
            paramstyle = getattr(driver, "paramstyle", "qmark")
            config = SchemaConfig(paramstyle=paramstyle if paramstyle in PARAMSTYLES else "qmark")
        self.name = name
        self.config = config
        self.is_singleton = is_singleton
        self.db_schema = db_schema
        self.builder = SQLBuilder(dialect=config.dialect, paramstyle=config.paramstyle)
        self._driver = driver
        self._tables: dict[str, Source] = {}
        self._types: dict[str, ColumnType] = {}

    def __repr__(self) -> str:
        return f"Schema({self.name!r})"

    @property
    def driver(self) -> "SyncDriver":
        if self._driver is None:
            msg = f"schema {self.name} has no driver"
            raise DatabaseConnectionError(msg)
        return self._driver

    @driver.setter
    def driver(self, driver: "Optional[SyncDriver]") -> None:
        self._driver = driver

    @property
    def has_driver(self) -> bool:
        return self._driver is not None

    def _register(self, source: Source) -> Source:
        if source.name in self._tables:
            msg = f"{source.name} is already defined in schema {self.name}"
            raise ImproperConfigurationError(msg)
        self._tables[source.name] = source
        logger.debug("defined %s %s", type(source).__name__.lower(), source.name)
        return source

    def define_table(
        self,
        name: str,
        db_name: "Optional[str]" = None,
        primary_key: "Union[str, Sequence[str]]" = (),
        **kwargs: Any,
    ) -> Table:
        """Declare a table.

        Args:
            name: Name of the table within the schema
            db_name: Name of the table in the database, defaults to ``name``
            primary_key: Primary key column(s)
            **kwargs: ``default_columns``, ``where`` (base filter) and ``row_class``

        Returns:
            The new table.
        """
        if isinstance(primary_key, str):
            primary_key = [primary_key]
        table = Table(self, name, db_name=db_name, primary_key=primary_key, **kwargs)
        self._register(table)
        return table

    def define_join(
        self,
        name: str,
        first: str,
        legs: "Sequence[Union[JoinLeg, Mapping[str, Any]]]",
        **kwargs: Any,
    ) -> Join:
        """Declare a join of already defined tables.

        Each leg is a :class:`~dbmodel.builder.JoinLeg` or a mapping of its
        fields (``table``, ``kind``, ``condition``, ``using``).
        """
        join = Join(self, name, first, legs, **kwargs)
        self._register(join)
        return join

    def define_type(self, name: str, **handlers: "ColumnHandler") -> ColumnType:
        if name in self._types:
            msg = f"column type {name} is already defined in schema {self.name}"
            raise ImproperConfigurationError(msg)
        column_type = self._types[name] = ColumnType(name, **handlers)
        return column_type

    def table(self, name: str) -> "Optional[Source]":
        """Find a source by schema name, then by database name."""
        source = self._tables.get(name)
        if source is not None:
            return source
        for candidate in self._tables.values():
            if candidate.db_name == name:
                return candidate
        return None

    def type(self, name: str) -> "Optional[ColumnType]":
        return self._types.get(name)

    @property
    def tables(self) -> "list[Source]":
        return list(self._tables.values())

    def statement(self, source: "Union[str, Source]", **args: Any) -> "Statement":
        """Create a statement on a source given by name or object."""
        from dbmodel.statement import Statement

        if isinstance(source, str):
            found = self.table(source)
            if found is None:
                msg = f"no such table or join in schema {self.name}: {source}"
                raise ImproperConfigurationError(msg)
            source = found
        return Statement(source, **args)

    def select(self, source: "Union[str, Source]", **args: Any) -> Any:
        """Run a SELECT on a source and return it in the requested result shape."""
        return self.statement(source).select(**args)
