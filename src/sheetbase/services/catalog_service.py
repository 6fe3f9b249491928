"""Schema metadata store: the catalog of managed tables and columns."""

import logging
import time
from collections.abc import Sequence

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..core.db.database import Base
from ..core.db.introspection import list_tables, physical_columns, table_exists
from ..core.exceptions import StorageFailureError, TableNotFoundError
from ..models.catalog import CATALOG_TABLES, ColumnMeta, TableMeta
from ..schemas.table import CatalogReport, ColumnDefinition, TableSchema, TableSchemaRead


class CatalogService:
    """Reads and writes the ``table_meta`` / ``column_meta`` catalog.

    The catalog is the source of truth for type hints, labels, nullability
    and display order. Physical introspection is only used to report drift.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession],
        logger: logging.Logger | None = None,
    ) -> None:
        self.engine = engine
        self.session_factory = session_factory
        self.logger = logger or logging.getLogger(__name__)

    async def ensure_catalog(self) -> None:
        """Create the catalog relations if missing and backfill older layouts."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
                result = await conn.execute(
                    text("SELECT COUNT(1) FROM pragma_table_info('column_meta') WHERE name = 'allow_null'")
                )
                if result.scalar_one() == 0:
                    self.logger.info("Backfilling column_meta.allow_null")
                    await conn.execute(text("ALTER TABLE column_meta ADD COLUMN allow_null INTEGER DEFAULT 1"))
        except SQLAlchemyError as exc:
            self.logger.error("Catalog bootstrap failed: %s", exc)
            raise StorageFailureError(f"catalog bootstrap failed: {exc}") from exc

    async def upsert(self, schema: TableSchema) -> None:
        """Write the table row and replace all its column rows in field order.

        Runs in one transaction; on failure the previous catalog state stays.
        """
        start = time.perf_counter()
        try:
            async with self.session_factory() as session, session.begin():
                existing = await session.get(TableMeta, schema.name)
                if existing is None:
                    session.add(
                        TableMeta(
                            table_name=schema.name,
                            display_name=schema.display_name,
                            description=schema.description,
                        )
                    )
                else:
                    existing.display_name = schema.display_name
                    existing.description = schema.description
                await session.execute(delete(ColumnMeta).where(ColumnMeta.table_name == schema.name))
                session.add_all(self._column_rows(schema.name, schema.fields, start_order=0))
        except SQLAlchemyError as exc:
            self.logger.error("Catalog upsert failed for %s: %s", schema.name, exc)
            raise StorageFailureError(f"catalog upsert failed: {exc}", table=schema.name) from exc
        self.logger.info(
            "Catalog upsert done for %s (%d fields, %.1f ms)",
            schema.name,
            len(schema.fields),
            (time.perf_counter() - start) * 1000,
        )

    async def append_columns(self, table: str, fields: Sequence[ColumnDefinition]) -> None:
        """Add column rows after the current last display position."""
        try:
            async with self.session_factory() as session, session.begin():
                result = await session.execute(
                    select(func.max(ColumnMeta.display_order)).where(ColumnMeta.table_name == table)
                )
                last = result.scalar_one_or_none()
                start_order = 0 if last is None else last + 1
                session.add_all(self._column_rows(table, fields, start_order=start_order))
        except SQLAlchemyError as exc:
            self.logger.error("Catalog append failed for %s: %s", table, exc)
            raise StorageFailureError(f"catalog append failed: {exc}", table=table) from exc

    async def delete_columns(self, table: str, names: Sequence[str]) -> None:
        if not names:
            return
        try:
            async with self.session_factory() as session, session.begin():
                await session.execute(
                    delete(ColumnMeta).where(ColumnMeta.table_name == table, ColumnMeta.column_name.in_(list(names)))
                )
        except SQLAlchemyError as exc:
            raise StorageFailureError(f"catalog column delete failed: {exc}", table=table) from exc

    async def rename_table(self, old: str, new: str) -> None:
        try:
            async with self.session_factory() as session, session.begin():
                await session.execute(update(TableMeta).where(TableMeta.table_name == old).values(table_name=new))
                await session.execute(update(ColumnMeta).where(ColumnMeta.table_name == old).values(table_name=new))
        except SQLAlchemyError as exc:
            raise StorageFailureError(f"catalog table rename failed: {exc}", table=old) from exc

    async def rename_column(self, table: str, old: str, new: str) -> None:
        try:
            async with self.session_factory() as session, session.begin():
                await session.execute(
                    update(ColumnMeta)
                    .where(ColumnMeta.table_name == table, ColumnMeta.column_name == old)
                    .values(column_name=new)
                )
        except SQLAlchemyError as exc:
            raise StorageFailureError(f"catalog column rename failed: {exc}", table=table, column=old) from exc

    async def purge(self, table: str) -> None:
        try:
            async with self.session_factory() as session, session.begin():
                await session.execute(delete(TableMeta).where(TableMeta.table_name == table))
                await session.execute(delete(ColumnMeta).where(ColumnMeta.table_name == table))
        except SQLAlchemyError as exc:
            raise StorageFailureError(f"catalog purge failed: {exc}", table=table) from exc

    async def list_schemas(self) -> list[TableSchemaRead]:
        """Every managed table ordered by name, each with its stale columns."""
        start = time.perf_counter()
        try:
            async with self.session_factory() as session:
                tables = (await session.execute(select(TableMeta).order_by(TableMeta.table_name))).scalars().all()
                columns = (
                    await session.execute(
                        select(ColumnMeta).order_by(ColumnMeta.table_name, ColumnMeta.display_order, ColumnMeta.id)
                    )
                ).scalars().all()
            drift = await self._stale_columns_by_table()
        except SQLAlchemyError as exc:
            self.logger.error("List schemas failed: %s", exc)
            raise StorageFailureError(f"list schemas failed: {exc}") from exc

        by_table: dict[str, list[ColumnDefinition]] = {}
        for column in columns:
            by_table.setdefault(column.table_name, []).append(self._to_definition(column))

        schemas = []
        for table in tables:
            fields = by_table.get(table.table_name, [])
            stale = drift.get(table.table_name, [])
            if stale:
                self.logger.warning("Catalog lists columns missing from %s: %s", table.table_name, ", ".join(stale))
            schemas.append(
                TableSchemaRead(
                    name=table.table_name,
                    display_name=table.display_name or "",
                    description=table.description or "",
                    fields=fields,
                    stale_columns=stale,
                )
            )
        self.logger.info("List schemas done (%d tables, %.1f ms)", len(schemas), (time.perf_counter() - start) * 1000)
        return schemas

    async def get_schema(self, table: str) -> TableSchema | None:
        try:
            async with self.session_factory() as session:
                meta = await session.get(TableMeta, table)
                if meta is None:
                    return None
                columns = (
                    await session.execute(
                        select(ColumnMeta)
                        .where(ColumnMeta.table_name == table)
                        .order_by(ColumnMeta.display_order, ColumnMeta.id)
                    )
                ).scalars().all()
        except SQLAlchemyError as exc:
            raise StorageFailureError(f"catalog read failed: {exc}", table=table) from exc
        return TableSchema(
            name=meta.table_name,
            display_name=meta.display_name or "",
            description=meta.description or "",
            fields=[self._to_definition(column) for column in columns],
        )

    async def require_schema(self, table: str) -> TableSchema:
        schema = await self.get_schema(table)
        if schema is None:
            raise TableNotFoundError(f"unknown table {table}", table=table)
        return schema

    async def physical_column_names(self, table: str) -> list[str]:
        try:
            async with self.engine.connect() as conn:
                return [column.name for column in await physical_columns(conn, table)]
        except SQLAlchemyError as exc:
            raise StorageFailureError(f"table introspection failed: {exc}", table=table) from exc

    async def consistency_report(self) -> CatalogReport:
        """Compare the catalog with what physically exists."""
        try:
            async with self.session_factory() as session:
                catalog_tables = set((await session.execute(select(TableMeta.table_name))).scalars().all())
            stale = await self._stale_columns_by_table()
            async with self.engine.connect() as conn:
                physical = await list_tables(conn)
        except SQLAlchemyError as exc:
            raise StorageFailureError(f"consistency check failed: {exc}") from exc
        orphans = [name for name in physical if name not in catalog_tables and name not in CATALOG_TABLES]
        for name in orphans:
            self.logger.warning("Physical table %s has no catalog entry", name)
        return CatalogReport(stale_columns=stale, orphan_tables=orphans)

    async def _stale_columns_by_table(self) -> dict[str, list[str]]:
        async with self.session_factory() as session:
            rows = (
                await session.execute(
                    select(ColumnMeta.table_name, ColumnMeta.column_name).order_by(
                        ColumnMeta.table_name, ColumnMeta.display_order
                    )
                )
            ).all()
        declared: dict[str, list[str]] = {}
        for table_name, column_name in rows:
            declared.setdefault(table_name, []).append(column_name)

        drift: dict[str, list[str]] = {}
        async with self.engine.connect() as conn:
            for table_name, names in declared.items():
                if not await table_exists(conn, table_name):
                    drift[table_name] = names
                    continue
                present = {column.name.lower() for column in await physical_columns(conn, table_name)}
                missing = [name for name in names if name.lower() not in present]
                if missing:
                    drift[table_name] = missing
        return drift

    @staticmethod
    def _column_rows(table: str, fields: Sequence[ColumnDefinition], *, start_order: int) -> list[ColumnMeta]:
        return [
            ColumnMeta(
                table_name=table,
                column_name=field.name,
                type_hint=field.type_hint,
                labels=list(field.labels),
                allow_null=field.allow_null,
                display_order=start_order + index,
            )
            for index, field in enumerate(fields)
        ]

    @staticmethod
    def _to_definition(column: ColumnMeta) -> ColumnDefinition:
        return ColumnDefinition(
            name=column.column_name,
            labels=list(column.labels or []),
            type_hint=column.type_hint or "",
            allow_null=bool(column.allow_null) if column.allow_null is not None else True,
        )
