"""Structural changes to managed tables.

This is the only component that issues DDL against managed tables. Each
operation validates its whole input before the first statement runs; once
DDL has started, a failure leaves whatever statements already ran in place
(SQLite applies ``ALTER TABLE`` per statement), so callers should re-read
the schema before retrying.
"""

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.db.introspection import PhysicalColumn, physical_columns, table_exists
from ..core.exceptions import (
    ColumnNotFoundError,
    DuplicateFieldError,
    EmptyFieldSetError,
    InvalidValueError,
    SchemaValidationError,
    StorageFailureError,
    TableExistsError,
    TableNotFoundError,
    TypeChangeForbiddenError,
    UnsupportedTypeError,
)
from ..schemas.table import ColumnDefinition, TableSchema
from .catalog_service import CatalogService
from .identifiers import validate_column_name, validate_table_name
from .value_coercion import physical_type, resolve_category, sql_literal

HOUSEKEEPING_DDL_HEAD = "id INTEGER PRIMARY KEY AUTOINCREMENT"
HOUSEKEEPING_DDL_TAIL = (
    "created_at DATETIME DEFAULT CURRENT_TIMESTAMP",
    "updated_at DATETIME DEFAULT CURRENT_TIMESTAMP",
)


@dataclass
class _PlannedColumn:
    definition: ColumnDefinition
    ddl: str


class TableMigrationService:
    """Create, evolve and drop managed tables, keeping the catalog in step."""

    def __init__(self, engine: AsyncEngine, catalog: CatalogService, logger: logging.Logger | None = None) -> None:
        self.engine = engine
        self.catalog = catalog
        self.logger = logger or logging.getLogger(__name__)

    async def create_table(self, schema: TableSchema) -> TableSchema:
        name = validate_table_name(schema.name)
        planned = self._plan_columns(name, schema.fields)
        if await self._table_taken(name):
            raise TableExistsError(f"table {name} already exists", table=name)

        self.logger.info("Create table %s with %d fields", name, len(planned))
        columns = [HOUSEKEEPING_DDL_HEAD, *(column.ddl for column in planned), *HOUSEKEEPING_DDL_TAIL]
        await self._execute(
            [f"CREATE TABLE IF NOT EXISTS {name} ({', '.join(columns)})"],
            table=name,
        )

        created = TableSchema(
            name=name,
            display_name=schema.display_name,
            description=schema.description,
            fields=[column.definition for column in planned],
        )
        # A failure here leaves the table without catalog coverage; it shows
        # up as an orphan in the consistency report.
        await self.catalog.upsert(created)
        return created

    async def add_columns(self, table: str, fields: Sequence[ColumnDefinition]) -> list[ColumnDefinition]:
        table = validate_table_name(table)
        current = await self.catalog.require_schema(table)
        physical = await self._physical_columns(table)
        taken = {field.name for field in current.fields} | {column.name for column in physical}
        planned = self._plan_columns(table, fields, taken=taken, adding=True)

        for column in planned:
            self.logger.info("Add column %s.%s", table, column.definition.name)
            await self._execute(
                [f"ALTER TABLE {table} ADD COLUMN {column.ddl}"],
                table=table,
                column=column.definition.name,
            )
        added = [column.definition for column in planned]
        await self.catalog.append_columns(table, added)
        return added

    async def drop_columns(self, table: str, names: Iterable[str]) -> list[str]:
        """Drop columns by rebuilding the table without them.

        Returns the physical columns that were removed. Names the catalog
        lists but the table no longer has are only removed from the catalog.
        """
        table = validate_table_name(table)
        requested = {name.strip().lower() for name in names if name and name.strip()}
        if not requested:
            return []
        current = await self.catalog.require_schema(table)
        physical = await self._physical_columns(table)

        keep = [column for column in physical if column.name.lower() not in requested]
        dropped = [column.name for column in physical if column.name.lower() in requested]
        stale = [
            field.name
            for field in current.fields
            if field.name.lower() in requested and field.name not in dropped
        ]

        if dropped:
            if not keep:
                raise EmptyFieldSetError("at least one field must remain", table=table)
            await self._rebuild_without(table, keep, current)
        await self.catalog.delete_columns(table, dropped + stale)
        return dropped

    async def rename_table(self, table: str, new_name: str) -> None:
        table = validate_table_name(table)
        new_name = validate_table_name(new_name)
        await self.catalog.require_schema(table)
        if new_name == table:
            return
        if new_name.lower() != table.lower() and await self._table_taken(new_name):
            raise TableExistsError(f"table {new_name} already exists", table=new_name)
        self.logger.info("Rename table %s to %s", table, new_name)
        await self._rename_table_physical(table, new_name)
        await self.catalog.rename_table(table, new_name)

    async def rename_column(self, table: str, old_name: str, new_name: str) -> None:
        table = validate_table_name(table)
        new_name = validate_column_name(new_name, table=table)
        current = await self.catalog.require_schema(table)
        source = next((field for field in current.fields if field.name.lower() == (old_name or "").strip().lower()), None)
        if source is None:
            raise ColumnNotFoundError(f"unknown field {old_name}", table=table, column=old_name)
        if source.name == new_name:
            return
        if any(field.name.lower() == new_name.lower() for field in current.fields if field is not source):
            raise DuplicateFieldError(f"duplicate field name: {new_name}", table=table, column=new_name)
        await self._rename_physical(table, [(source.name, new_name)])
        await self.catalog.rename_column(table, source.name, new_name)

    async def update_table(self, table: str, schema: TableSchema) -> TableSchema:
        """Reconcile a full incoming schema against the current one.

        Incoming fields match existing ones through ``old_name`` (defaulting
        to ``name``); unmatched fields are added and existing fields left out
        are dropped. Type hints of existing fields cannot change.
        """
        table = validate_table_name(table)
        current = await self.catalog.require_schema(table)
        target = validate_table_name(schema.name or table)
        if target.lower() != table.lower() and await self._table_taken(target):
            raise TableExistsError(f"table {target} already exists", table=target)

        seen: set[str] = set()
        for field in schema.fields:
            name = validate_column_name(field.name, table=table)
            if name.lower() in seen:
                raise DuplicateFieldError(f"duplicate field name: {name}", table=table, column=name)
            seen.add(name.lower())

        physical = await self._physical_columns(table)
        present = {column.name.lower() for column in physical}
        existing = {field.name.lower(): field for field in current.fields}

        renames: list[tuple[str, str]] = []
        additions: list[ColumnDefinition] = []
        final: list[ColumnDefinition] = []
        matched: set[str] = set()

        for field in schema.fields:
            new_name = field.name.strip()
            old_name = (field.old_name or "").strip() or new_name
            source = existing.get(old_name.lower())
            if source is None:
                if not field.type_hint:
                    raise UnsupportedTypeError(f"new field {new_name} needs a type", table=table, column=new_name)
                definition = ColumnDefinition(
                    name=new_name,
                    labels=field.labels,
                    type_hint=field.type_hint,
                    allow_null=field.allow_null,
                    default=field.default,
                )
                additions.append(definition)
                final.append(definition)
                continue

            if source.name.lower() in matched:
                raise DuplicateFieldError(f"field {source.name} is referenced twice", table=table, column=source.name)
            matched.add(source.name.lower())
            if field.type_hint and field.type_hint.strip().lower() != source.type_hint.strip().lower():
                raise TypeChangeForbiddenError(
                    f"field {source.name} cannot change type from {source.type_hint} to {field.type_hint}",
                    table=table,
                    column=source.name,
                )
            definition = ColumnDefinition(
                name=new_name,
                labels=field.labels,
                type_hint=source.type_hint,
                allow_null=field.allow_null,
            )
            if source.name.lower() in present:
                if source.name != new_name:
                    renames.append((source.name, new_name))
            else:
                self.logger.warning("Re-creating stale column %s.%s", table, source.name)
                additions.append(definition.model_copy(update={"default": field.default}))
            final.append(definition)

        if not final:
            raise EmptyFieldSetError("at least one field must remain", table=table)

        drops = [column.name for column in physical if column.name.lower() in existing and column.name.lower() not in matched]
        untracked = {column.name for column in physical if column.name.lower() not in existing}
        planned = self._plan_columns(table, additions, taken=untracked, adding=True)

        self.logger.info(
            "Update table %s: rename_to=%s renames=%d adds=%d drops=%d",
            table,
            target if target != table else "-",
            len(renames),
            len(planned),
            len(drops),
        )

        current_table = table
        if target != table:
            await self._rename_table_physical(table, target)
            await self.catalog.rename_table(table, target)
            current_table = target

        if drops:
            keep = [column for column in physical if column.name not in drops]
            await self._rebuild_without(current_table, keep, current)

        if renames:
            await self._rename_physical(current_table, renames, present=present - {name.lower() for name in drops})

        for column in planned:
            await self._execute(
                [f"ALTER TABLE {current_table} ADD COLUMN {column.ddl}"],
                table=current_table,
                column=column.definition.name,
            )

        updated = TableSchema(
            name=target,
            display_name=schema.display_name,
            description=schema.description,
            fields=final,
        )
        await self.catalog.upsert(updated)
        return updated

    async def drop_table(self, table: str) -> None:
        table = validate_table_name(table)
        in_catalog = await self.catalog.get_schema(table) is not None
        if not in_catalog and not await self._physical_exists(table):
            raise TableNotFoundError(f"unknown table {table}", table=table)
        self.logger.info("Drop table %s", table)
        await self._execute([f"DROP TABLE IF EXISTS {table}"], table=table)
        await self.catalog.purge(table)

    def _plan_columns(
        self,
        table: str,
        fields: Sequence[ColumnDefinition],
        *,
        taken: Iterable[str] = (),
        adding: bool = False,
    ) -> list[_PlannedColumn]:
        """Validate new column definitions and render their DDL fragments."""
        if not fields and not adding:
            raise EmptyFieldSetError("fields required", table=table)
        seen = {name.lower() for name in taken}
        planned = []
        for field in fields:
            name = validate_column_name(field.name, table=table)
            if name.lower() in seen:
                raise DuplicateFieldError(f"duplicate field name: {name}", table=table, column=name)
            seen.add(name.lower())
            try:
                storage_type = physical_type(field.type_hint)
            except UnsupportedTypeError as exc:
                raise UnsupportedTypeError(exc.message, table=table, column=name) from None
            try:
                default = sql_literal(field.type_hint, field.default)
            except InvalidValueError as exc:
                raise SchemaValidationError(
                    f"invalid default for {name}: {exc.message}", table=table, column=name
                ) from exc

            ddl = f"{name} {storage_type}"
            if not field.allow_null:
                if adding and default is None:
                    raise SchemaValidationError(
                        f"required field {name} needs a default to be added to an existing table",
                        table=table,
                        column=name,
                    )
                ddl += " NOT NULL"
            if default is not None:
                ddl += f" DEFAULT {default}"
            planned.append(
                _PlannedColumn(
                    definition=ColumnDefinition(
                        name=name,
                        labels=[label for label in field.labels if label],
                        type_hint=field.type_hint,
                        allow_null=field.allow_null,
                        default=field.default,
                    ),
                    ddl=ddl,
                )
            )
        return planned

    async def _rebuild_without(self, table: str, keep: Sequence[PhysicalColumn], current: TableSchema) -> None:
        """Copy ``keep`` columns into a fresh table and swap it in, in one transaction."""
        hints = {field.name.lower(): field.type_hint for field in current.fields}
        temp = f"{table}_tmp_{int(time.time())}"

        column_ddl = [HOUSEKEEPING_DDL_HEAD]
        for column in keep:
            hint = hints.get(column.name.lower())
            storage_type = physical_type(hint) if resolve_category(hint) else (column.declared_type or "TEXT")
            ddl = f"{column.name} {storage_type}"
            if column.not_null:
                ddl += " NOT NULL"
            if column.default is not None:
                ddl += f" DEFAULT {column.default}"
            column_ddl.append(ddl)
        column_ddl.extend(HOUSEKEEPING_DDL_TAIL)

        copied = ", ".join(["id", *(column.name for column in keep), "created_at", "updated_at"])
        self.logger.info("Rebuild %s keeping %d columns", table, len(keep))
        await self._execute(
            [
                f"CREATE TABLE {temp} ({', '.join(column_ddl)})",
                f"INSERT INTO {temp} ({copied}) SELECT {copied} FROM {table}",
                f"DROP TABLE {table}",
                f"ALTER TABLE {temp} RENAME TO {table}",
            ],
            table=table,
        )

    async def _rename_table_physical(self, table: str, new_name: str) -> None:
        statements = [f"ALTER TABLE {table} RENAME TO {new_name}"]
        # SQLite refuses a case-only rename, so it goes through a temporary name.
        if new_name.lower() == table.lower():
            temp = f"{table}__rn"
            statements = [f"ALTER TABLE {table} RENAME TO {temp}", f"ALTER TABLE {temp} RENAME TO {new_name}"]
        await self._execute(statements, table=table)

    async def _rename_physical(
        self,
        table: str,
        pairs: Sequence[tuple[str, str]],
        present: set[str] | None = None,
    ) -> None:
        if present is None:
            present = {column.name.lower() for column in await self._physical_columns(table)}
        # Renames onto a name that is still in use (swaps, case changes) go through a temporary name.
        if any(new.lower() in present for _, new in pairs):
            staged = [(old, f"{old}__rn{index}") for index, (old, _) in enumerate(pairs)]
            pairs = [(temp, new) for (_, temp), (_, new) in zip(staged, pairs)]
            for old, temp in staged:
                await self._execute([f"ALTER TABLE {table} RENAME COLUMN {old} TO {temp}"], table=table, column=old)
        for old, new in pairs:
            self.logger.info("Rename column %s.%s to %s", table, old, new)
            await self._execute([f"ALTER TABLE {table} RENAME COLUMN {old} TO {new}"], table=table, column=old)

    async def _execute(self, statements: Sequence[str], *, table: str, column: str | None = None) -> None:
        try:
            async with self.engine.begin() as conn:
                for statement in statements:
                    await conn.exec_driver_sql(statement)
        except SQLAlchemyError as exc:
            self.logger.error("DDL failed on %s: %s", table, exc)
            raise StorageFailureError(f"schema change failed: {exc}", table=table, column=column) from exc

    async def _physical_columns(self, table: str) -> list[PhysicalColumn]:
        try:
            async with self.engine.connect() as conn:
                return await physical_columns(conn, table)
        except SQLAlchemyError as exc:
            raise StorageFailureError(f"table introspection failed: {exc}", table=table) from exc

    async def _physical_exists(self, table: str) -> bool:
        try:
            async with self.engine.connect() as conn:
                return await table_exists(conn, table)
        except SQLAlchemyError as exc:
            raise StorageFailureError(f"table introspection failed: {exc}", table=table) from exc

    async def _table_taken(self, name: str) -> bool:
        return await self.catalog.get_schema(name) is not None or await self._physical_exists(name)
