"""Schema-level defaults consumed by statements."""

from typing import TYPE_CHECKING, Any, Optional

from dbmodel.exceptions import ImproperConfigurationError

if TYPE_CHECKING:
    from sqlglot.dialects.dialect import DialectType

__all__ = ("PARAMSTYLES", "PREPARE_METHODS", "SchemaConfig")

SCHEMA_CONFIG_SLOTS = (
    "autolimit_firstrow",
    "dialect",
    "join_with_using",
    "paramstyle",
    "placeholder_prefix",
    "prepare_method",
    "select_implicitly_for",
)

PARAMSTYLES = frozenset({"qmark", "format", "numeric"})
PREPARE_METHODS = frozenset({"prepare", "prepare_cached"})


class SchemaConfig:
    """Configuration shared by all statements of a schema.

    Instances are treated as immutable: use :meth:`replace` to derive a
    modified copy.
    """

    __slots__ = SCHEMA_CONFIG_SLOTS

    def __init__(
        self,
        placeholder_prefix: str = "?:",
        autolimit_firstrow: bool = False,
        select_implicitly_for: Optional[str] = None,
        join_with_using: bool = False,
        prepare_method: str = "prepare",
        dialect: "Optional[DialectType]" = None,
        paramstyle: str = "qmark",
    ) -> None:
        """Initialize the configuration.

        Args:
            placeholder_prefix: Prefix of bind values acting as named placeholders
            autolimit_firstrow: Add ``LIMIT 1`` to queries returning a single row
            select_implicitly_for: Locking clause used when a statement does not give one
            join_with_using: Prefer ``USING (...)`` over ``ON ...`` in joins
            prepare_method: Driver method used to prepare statements
            dialect: sqlglot dialect used to render SQL
            paramstyle: Positional placeholder style of the DB-API module

        Raises:
            ImproperConfigurationError: On an unknown prepare method or paramstyle.
        """
        if not placeholder_prefix:
            msg = "placeholder_prefix must be a non-empty string"
            raise ImproperConfigurationError(msg)
        if prepare_method not in PREPARE_METHODS:
            msg = f"unknown prepare method: {prepare_method!r}"
            raise ImproperConfigurationError(msg)
        if paramstyle not in PARAMSTYLES:
            msg = f"unsupported paramstyle: {paramstyle!r}"
            raise ImproperConfigurationError(msg)
        self.placeholder_prefix = placeholder_prefix
        self.autolimit_firstrow = autolimit_firstrow
        self.select_implicitly_for = select_implicitly_for
        self.join_with_using = join_with_using
        self.prepare_method = prepare_method
        self.dialect = dialect
        self.paramstyle = paramstyle

    def replace(self, **changes: Any) -> "SchemaConfig":
        """Create a new config with the given fields changed."""
        for key in changes:
            if key not in SCHEMA_CONFIG_SLOTS:
                msg = f"{key!r} is not a field in {type(self).__name__}"
                raise TypeError(msg)
        kwargs = {slot: getattr(self, slot) for slot in SCHEMA_CONFIG_SLOTS}
        kwargs.update(changes)
        return type(self)(**kwargs)

    def __repr__(self) -> str:
        field_strs = [f"{slot}={getattr(self, slot)!r}" for slot in SCHEMA_CONFIG_SLOTS]
        return f"{self.__class__.__name__}({', '.join(field_strs)})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, type(self)):
            return False
        return all(getattr(self, slot) == getattr(other, slot) for slot in SCHEMA_CONFIG_SLOTS)

    def __hash__(self) -> int:
        return hash(tuple(getattr(self, slot) for slot in SCHEMA_CONFIG_SLOTS))
