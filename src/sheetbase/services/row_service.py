"""Row access for managed tables: writes, paged reads, export and summaries."""

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.db.introspection import HOUSEKEEPING_COLUMNS
from ..core.exceptions import (
    ColumnNotFoundError,
    InvalidValueError,
    MissingRequiredFieldError,
    StorageFailureError,
    UnsupportedColumnTypeError,
)
from ..schemas.table import (
    ColumnDefinition,
    ColumnSummary,
    ExportFormat,
    ExportResult,
    QueryOptions,
    RowPage,
    TableSchema,
)
from .catalog_service import CatalogService
from .query_builder import DEFAULT_PAGE_SIZE, build_filter, build_order, build_query_plan, in_clause, resolve_paging
from .spreadsheet import CSV_MEDIA_TYPE, XLSX_MEDIA_TYPE, write_csv, write_xlsx
from .value_coercion import RowValues, coerce_value, is_boolean, is_numeric


def prepare_values(
    fields: Sequence[ColumnDefinition],
    data: Mapping[str, Any],
    *,
    is_insert: bool,
    table: str | None = None,
) -> RowValues:
    """Coerce a payload against the declared columns.

    Undeclared keys and housekeeping keys are ignored. On insert every
    required column must be present and non-null; on update absent columns
    are left untouched.
    """
    result: RowValues = {}
    for field in fields:
        if field.name in HOUSEKEEPING_COLUMNS:
            continue
        if field.name not in data:
            if is_insert and not field.allow_null:
                raise MissingRequiredFieldError(f"field {field.name} is required", table=table, column=field.name)
            continue
        try:
            value = coerce_value(field.type_hint, data[field.name])
        except InvalidValueError as exc:
            raise InvalidValueError(f"field {field.name}: {exc.message}", table=table, column=field.name) from None
        if value is None:
            if not field.allow_null:
                raise MissingRequiredFieldError(f"field {field.name} is required", table=table, column=field.name)
            if is_insert:
                continue
        result[field.name] = value
    return result


class RowService:
    """Insert, update, delete and read rows of managed tables."""

    def __init__(
        self,
        engine: AsyncEngine,
        catalog: CatalogService,
        *,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.engine = engine
        self.catalog = catalog
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.logger = logger or logging.getLogger(__name__)

    async def insert_row(self, table: str, data: Mapping[str, Any]) -> int:
        schema = await self.catalog.require_schema(table)
        values = prepare_values(schema.fields, data, is_insert=True, table=table)
        return await self.insert_values(schema.name, values)

    async def insert_values(self, table: str, values: RowValues) -> int:
        """Insert already-coerced values and return the new row id."""
        params = {f"v{index}": value for index, value in enumerate(values.values())}
        if values:
            columns = ", ".join(values)
            placeholders = ", ".join(f":{name}" for name in params)
            statement = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
        else:
            statement = f"INSERT INTO {table} DEFAULT VALUES"
        _, row_id = await self._write(table, statement, params)
        return row_id

    async def update_row(self, table: str, row_id: int, data: Mapping[str, Any]) -> bool:
        """Patch the given columns of one row; returns whether DML was issued."""
        patch = {key: value for key, value in data.items() if key not in HOUSEKEEPING_COLUMNS}
        if not patch:
            return False
        schema = await self.catalog.require_schema(table)
        values = prepare_values(schema.fields, patch, is_insert=False, table=table)
        if not values:
            return False
        params: dict[str, Any] = {f"v{index}": value for index, value in enumerate(values.values())}
        assignments = [f"{column} = :v{index}" for index, column in enumerate(values)]
        assignments.append("updated_at = CURRENT_TIMESTAMP")
        params["row_id"] = row_id
        await self._write(schema.name, f"UPDATE {schema.name} SET {', '.join(assignments)} WHERE id = :row_id", params)
        return True

    async def delete_row(self, table: str, row_id: int) -> int:
        schema = await self.catalog.require_schema(table)
        deleted, _ = await self._write(schema.name, f"DELETE FROM {schema.name} WHERE id = :row_id", {"row_id": row_id})
        return deleted

    async def delete_rows(self, table: str, ids: Sequence[int]) -> int:
        schema = await self.catalog.require_schema(table)
        if not ids:
            return 0
        condition, params = in_clause("id", list(dict.fromkeys(ids)))
        self.logger.info("Batch delete %d rows from %s", len(params), schema.name)
        deleted, _ = await self._write(schema.name, f"DELETE FROM {schema.name} WHERE {condition}", params)
        return deleted

    async def clear_rows(self, table: str) -> int:
        schema = await self.catalog.require_schema(table)
        self.logger.info("Clear all rows from %s", schema.name)
        deleted, _ = await self._write(schema.name, f"DELETE FROM {schema.name}", {})
        return deleted

    async def query(self, table: str, options: QueryOptions | None = None) -> RowPage:
        """Return one page of rows and the size of the filtered population."""
        options = options or QueryOptions()
        schema = await self.catalog.require_schema(table)
        fields = await self._readable_fields(schema)
        names = [field.name for field in fields]
        plan = build_query_plan(
            options,
            names,
            default_page_size=self.default_page_size,
            max_page_size=self.max_page_size,
        )
        select_list = ", ".join(["id", *names])
        page_params = {**plan.params, "page_limit": plan.limit, "page_offset": plan.offset}
        try:
            async with self.engine.connect() as conn:
                total = (
                    await conn.execute(text(f"SELECT COUNT(1) FROM {schema.name} {plan.where}"), plan.params)
                ).scalar_one()
                result = await conn.execute(
                    text(
                        f"SELECT {select_list} FROM {schema.name} {plan.where} {plan.order_by} "
                        "LIMIT :page_limit OFFSET :page_offset"
                    ),
                    page_params,
                )
                rows = [self._decode(dict(row), fields) for row in result.mappings()]
        except SQLAlchemyError as exc:
            self.logger.error("Query on %s failed: %s", schema.name, exc)
            raise StorageFailureError(f"query failed: {exc}", table=schema.name) from exc
        return RowPage(items=rows, total=total, page=plan.page, page_size=plan.page_size)

    async def fetch_for_export(
        self,
        table: str,
        options: QueryOptions | None = None,
        ids: Sequence[int] | None = None,
        all_rows: bool = False,
    ) -> tuple[TableSchema, list[ColumnDefinition], list[list[Any]]]:
        """Rows for export in catalog column order.

        An explicit id set or ``all_rows`` bypasses paging; otherwise the
        same page a query would return is exported.
        """
        options = options or QueryOptions()
        schema = await self.catalog.require_schema(table)
        fields = await self._readable_fields(schema)
        names = [field.name for field in fields]

        if ids:
            condition, params = in_clause("id", list(ids))
            where = f"WHERE {condition}"
        else:
            where, params = build_filter(options, names)
        statement = f"SELECT {', '.join(names)} FROM {schema.name} {where} {build_order(options, names)}"
        if not all_rows and not ids:
            page, page_size = resolve_paging(
                options.page,
                options.page_size,
                default_page_size=self.default_page_size,
                max_page_size=self.max_page_size,
            )
            statement += " LIMIT :page_limit OFFSET :page_offset"
            params = {**params, "page_limit": page_size, "page_offset": (page - 1) * page_size}

        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(text(statement), params)
                rows = [self._decode(dict(row), fields) for row in result.mappings()]
        except SQLAlchemyError as exc:
            self.logger.error("Export read on %s failed: %s", schema.name, exc)
            raise StorageFailureError(f"export failed: {exc}", table=schema.name) from exc
        return schema, fields, [[row[name] for name in names] for row in rows]

    async def export_rows(
        self,
        table: str,
        options: QueryOptions | None = None,
        ids: Sequence[int] | None = None,
        all_rows: bool = False,
        fmt: ExportFormat = ExportFormat.XLSX,
    ) -> ExportResult:
        schema, fields, rows = await self.fetch_for_export(table, options, ids, all_rows)
        header = [field.labels[0] if field.labels and field.labels[0] else field.name for field in fields]
        title = schema.display_name or schema.name
        if fmt is ExportFormat.CSV:
            content = write_csv(header, rows)
            media_type = CSV_MEDIA_TYPE
        else:
            content = write_xlsx(header, rows, title=title)
            media_type = XLSX_MEDIA_TYPE
        self.logger.info("Exported %d rows from %s as %s", len(rows), schema.name, fmt.value)
        return ExportResult(content=content, filename=f"{title}.{fmt.value}", media_type=media_type)

    async def summary(self, table: str, column: str) -> ColumnSummary:
        """Count, sum, mean, max, min and population std of a numeric column."""
        schema = await self.catalog.require_schema(table)
        field = next((field for field in schema.fields if field.name == column), None)
        if field is None:
            raise ColumnNotFoundError(f"unknown field {column}", table=table, column=column)
        if not is_numeric(field.type_hint):
            raise UnsupportedColumnTypeError(
                f"field {column} is not numeric and cannot be summarised", table=table, column=column
            )

        try:
            async with self.engine.connect() as conn:
                result = await conn.execute(
                    text(f"SELECT {field.name} FROM {schema.name} WHERE {field.name} IS NOT NULL")
                )
                raw_values = result.scalars().all()
        except SQLAlchemyError as exc:
            raise StorageFailureError(f"summary failed: {exc}", table=table, column=column) from exc

        try:
            values = [float(value) for value in raw_values]
        except (TypeError, ValueError) as exc:
            raise InvalidValueError(f"field {column} holds non-numeric data", table=table, column=column) from exc
        if not values:
            return ColumnSummary(count=0)

        count = len(values)
        total = math.fsum(values)
        average = total / count
        variance = math.fsum((value - average) ** 2 for value in values) / count
        return ColumnSummary(
            count=count,
            sum=total,
            average=average,
            max=max(values),
            min=min(values),
            std=math.sqrt(variance),
        )

    async def _readable_fields(self, schema: TableSchema) -> list[ColumnDefinition]:
        """Catalog fields that physically exist, in display order."""
        present = {name.lower() for name in await self.catalog.physical_column_names(schema.name)}
        readable = [field for field in schema.fields if field.name.lower() in present]
        if len(readable) != len(schema.fields):
            missing = [field.name for field in schema.fields if field.name.lower() not in present]
            self.logger.warning("Skipping stale columns of %s: %s", schema.name, ", ".join(missing))
        return readable

    @staticmethod
    def _decode(row: dict[str, Any], fields: Sequence[ColumnDefinition]) -> dict[str, Any]:
        for field in fields:
            if is_boolean(field.type_hint) and row.get(field.name) is not None:
                row[field.name] = bool(row[field.name])
        return row

    async def _write(self, table: str, statement: str, params: dict[str, Any]) -> tuple[int, int]:
        """Run one DML statement in its own transaction; returns ``(rowcount, lastrowid)``."""
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(text(statement), params)
                return result.rowcount, result.lastrowid or 0
        except SQLAlchemyError as exc:
            self.logger.error("Write on %s failed: %s", table, exc)
            raise StorageFailureError(f"write failed: {exc}", table=table) from exc
