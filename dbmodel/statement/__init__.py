from dbmodel.statement.statement import Statement
from dbmodel.statement.status import StatementStatus

__all__ = ("Statement", "StatementStatus")
