"""Services behind the table engine."""

from .catalog_service import CatalogService
from .import_service import ImportService
from .migration_service import TableMigrationService
from .row_service import RowService
from .table_store import TableStore

__all__ = [
    "CatalogService",
    "ImportService",
    "RowService",
    "TableMigrationService",
    "TableStore",
]
