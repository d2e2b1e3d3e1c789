"""SQL builder collaborator: structured clauses in, SQL text and bind values out."""

from dbmodel.builder._conditions import ConditionBuilder, merge_conditions
from dbmodel.builder._join import FromJoin, JoinLeg, split_table_spec
from dbmodel.builder._select import MAX_LIMIT, BuilderResult, SQLBuilder

__all__ = (
    "MAX_LIMIT",
    "BuilderResult",
    "ConditionBuilder",
    "FromJoin",
    "JoinLeg",
    "SQLBuilder",
    "merge_conditions",
    "split_table_spec",
)
