"""dbmodel: statement lifecycle engine for a relational object layer."""

from dbmodel import builder, driver, exceptions, result, typing, utils
from dbmodel.__metadata__ import __version__
from dbmodel.builder import FromJoin, JoinLeg, SQLBuilder
from dbmodel.config import SchemaConfig
from dbmodel.driver import SyncDriver
from dbmodel.exceptions import (
    ArgumentError,
    DatabaseConnectionError,
    DBModelError,
    DriverError,
    ImproperConfigurationError,
    MissingParameterError,
    NotFoundError,
    ParameterError,
    SQLBuilderError,
    StatementStateError,
)
from dbmodel.parameters import TypedParameter
from dbmodel.result import register_result_shape
from dbmodel.row import Row
from dbmodel.schema import Schema
from dbmodel.source import ColumnType, Join, Source, Table
from dbmodel.statement import Statement, StatementStatus

__all__ = (
    "ArgumentError",
    "ColumnType",
    "DBModelError",
    "DatabaseConnectionError",
    "DriverError",
    "FromJoin",
    "ImproperConfigurationError",
    "Join",
    "JoinLeg",
    "MissingParameterError",
    "NotFoundError",
    "ParameterError",
    "Row",
    "SQLBuilder",
    "SQLBuilderError",
    "Schema",
    "SchemaConfig",
    "Source",
    "Statement",
    "StatementStateError",
    "StatementStatus",
    "SyncDriver",
    "Table",
    "TypedParameter",
    "__version__",
    "builder",
    "driver",
    "exceptions",
    "register_result_shape",
    "result",
    "typing",
    "utils",
)
