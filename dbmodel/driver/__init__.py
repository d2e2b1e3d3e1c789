"""Driver collaborator: prepare, execute and fetch over a DB-API connection."""

from dbmodel.driver._sync import PreparedHandle, RowFactory, SyncDriver, sqlite_type_coercion_map

__all__ = ("PreparedHandle", "RowFactory", "SyncDriver", "sqlite_type_coercion_map")
