"""Single entry point over the catalog, migration, row and import services."""

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..core.config import QuerySettings
from ..core.db.database import create_session_factory
from ..schemas.table import (
    CatalogReport,
    ColumnDefinition,
    ColumnSummary,
    ExportFormat,
    ExportResult,
    QueryOptions,
    RowPage,
    TableSchema,
    TableSchemaRead,
)
from .catalog_service import CatalogService
from .import_service import ImportService
from .migration_service import TableMigrationService
from .row_service import RowService


class TableStore:
    """Operation surface of the table engine.

    Owns one instance of each component, all sharing the same engine. Call
    :meth:`open` once before use and :meth:`close` on shutdown.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        query_settings: QuerySettings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        query_settings = query_settings or QuerySettings()
        self.engine = engine
        self.session_factory = session_factory or create_session_factory(engine)
        self.logger = logger or logging.getLogger(__name__)

        self.catalog = CatalogService(engine, self.session_factory, logger=self.logger.getChild("catalog"))
        self.migrations = TableMigrationService(engine, self.catalog, logger=self.logger.getChild("migration"))
        self.rows = RowService(
            engine,
            self.catalog,
            default_page_size=query_settings.DEFAULT_PAGE_SIZE,
            max_page_size=query_settings.MAX_PAGE_SIZE,
            logger=self.logger.getChild("rows"),
        )
        self.imports = ImportService(self.catalog, self.rows, logger=self.logger.getChild("import"))

    async def open(self) -> None:
        await self.catalog.ensure_catalog()
        self.logger.info("Table store ready")

    async def close(self) -> None:
        await self.engine.dispose()
        self.logger.info("Table store closed")

    # Schema operations

    async def list_schemas(self) -> list[TableSchemaRead]:
        return await self.catalog.list_schemas()

    async def get_schema(self, table: str) -> TableSchema:
        return await self.catalog.require_schema(table)

    async def create_schema(self, schema: TableSchema) -> TableSchema:
        return await self.migrations.create_table(schema)

    async def update_schema(self, table: str, schema: TableSchema) -> TableSchema:
        return await self.migrations.update_table(table, schema)

    async def drop_schema(self, table: str) -> None:
        await self.migrations.drop_table(table)

    async def add_columns(self, table: str, fields: Sequence[ColumnDefinition]) -> list[ColumnDefinition]:
        return await self.migrations.add_columns(table, fields)

    async def drop_columns(self, table: str, names: Iterable[str]) -> list[str]:
        return await self.migrations.drop_columns(table, names)

    async def rename_table(self, table: str, new_name: str) -> None:
        await self.migrations.rename_table(table, new_name)

    async def rename_column(self, table: str, old_name: str, new_name: str) -> None:
        await self.migrations.rename_column(table, old_name, new_name)

    async def consistency_report(self) -> CatalogReport:
        return await self.catalog.consistency_report()

    # Row operations

    async def query(self, table: str, options: QueryOptions | None = None) -> RowPage:
        return await self.rows.query(table, options)

    async def insert_row(self, table: str, data: Mapping[str, Any]) -> int:
        return await self.rows.insert_row(table, data)

    async def update_row(self, table: str, row_id: int, data: Mapping[str, Any]) -> bool:
        return await self.rows.update_row(table, row_id, data)

    async def delete_row(self, table: str, row_id: int) -> int:
        return await self.rows.delete_row(table, row_id)

    async def delete_rows(self, table: str, ids: Sequence[int]) -> int:
        return await self.rows.delete_rows(table, ids)

    async def clear_rows(self, table: str) -> int:
        return await self.rows.clear_rows(table)

    async def export_rows(
        self,
        table: str,
        options: QueryOptions | None = None,
        ids: Sequence[int] | None = None,
        all_rows: bool = False,
        fmt: ExportFormat = ExportFormat.XLSX,
    ) -> ExportResult:
        return await self.rows.export_rows(table, options, ids=ids, all_rows=all_rows, fmt=fmt)

    async def summary(self, table: str, column: str) -> ColumnSummary:
        return await self.rows.summary(table, column)

    # Import

    async def import_rows(
        self,
        table: str,
        headers: Sequence[Any],
        records: Iterable[Sequence[Any]],
        allow_unknown: bool = False,
        aliases: Mapping[str, str] | None = None,
    ) -> int:
        return await self.imports.import_records(table, headers, records, aliases, allow_unknown)

    async def import_csv(
        self,
        table: str,
        data: bytes | str,
        allow_unknown: bool = False,
        aliases: Mapping[str, str] | None = None,
    ) -> int:
        return await self.imports.import_csv(table, data, aliases, allow_unknown)

    async def import_xlsx(
        self,
        table: str,
        data: bytes,
        allow_unknown: bool = False,
        aliases: Mapping[str, str] | None = None,
    ) -> int:
        return await self.imports.import_xlsx(table, data, aliases, allow_unknown)
