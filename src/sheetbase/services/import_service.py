"""Bulk import of tabular records into a managed table.

Headers are resolved to columns before any row is written, so an unknown
header aborts the whole import up front. Rows are inserted one at a time
in their own transactions: a failing row stops the import and leaves the
rows before it committed.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..core.exceptions import DataStoreError, ImportAbortedError, SchemaValidationError, UnknownColumnsError
from ..schemas.table import ColumnDefinition
from .catalog_service import CatalogService
from .row_service import RowService, prepare_values
from .spreadsheet import is_blank_row, iter_csv_rows, iter_xlsx_rows


def normalize_header(header: Any) -> str:
    return str(header if header is not None else "").strip().lower()


def resolve_headers(
    headers: Sequence[Any],
    fields: Sequence[ColumnDefinition],
    aliases: Mapping[str, str] | None = None,
    *,
    allow_unknown: bool = False,
    table: str | None = None,
) -> list[str | None]:
    """Map each header position to a column name.

    Lookup order per header is the alias map, then the column name, then
    each column's labels in display order. Blank header cells map to
    ``None`` and their values are ignored, as do unresolved headers when
    ``allow_unknown`` is set; otherwise UnknownColumnsError names every
    header that matched nothing. An alias whose target is not a column
    resolves nothing.
    """
    if not any(normalize_header(header) for header in headers):
        raise SchemaValidationError("import header row is empty", table=table)

    by_key: dict[str, str] = {}
    for field in fields:
        by_key.setdefault(normalize_header(field.name), field.name)
    for field in fields:
        for label in field.labels:
            key = normalize_header(label)
            if key:
                by_key.setdefault(key, field.name)

    alias_map: dict[str, str] = {}
    for alias, target in (aliases or {}).items():
        resolved = by_key.get(normalize_header(target))
        if resolved is not None:
            alias_map[normalize_header(alias)] = resolved

    mapping: list[str | None] = []
    unknown: list[str] = []
    for header in headers:
        key = normalize_header(header)
        if not key:
            mapping.append(None)
            continue
        column = alias_map.get(key) or by_key.get(key)
        if column is None:
            unknown.append(str(header).strip())
        mapping.append(column)

    if unknown and not allow_unknown:
        raise UnknownColumnsError(unknown, table=table)
    if not any(mapping):
        raise SchemaValidationError("no import header matches a column", table=table)
    return mapping


def _record_data(mapping: Sequence[str | None], record: Sequence[Any]) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for position, column in enumerate(mapping):
        if column is None or position >= len(record):
            continue
        # Several headers may target one column; the first non-blank wins.
        if data.get(column) not in (None, ""):
            continue
        data[column] = record[position]
    return data


class ImportService:
    """Resolve spreadsheet-like headers and insert the records behind them."""

    def __init__(self, catalog: CatalogService, rows: RowService, logger: logging.Logger | None = None) -> None:
        self.catalog = catalog
        self.rows = rows
        self.logger = logger or logging.getLogger(__name__)

    async def import_records(
        self,
        table: str,
        headers: Sequence[Any],
        records: Iterable[Sequence[Any]],
        aliases: Mapping[str, str] | None = None,
        allow_unknown: bool = False,
    ) -> int:
        """Insert ``records`` under ``headers``; returns the number of rows inserted."""
        schema = await self.catalog.require_schema(table)
        mapping = resolve_headers(
            headers, schema.fields, aliases, allow_unknown=allow_unknown, table=schema.name
        )
        ignored = [
            str(header).strip() for header, column in zip(headers, mapping) if column is None and normalize_header(header)
        ]
        if ignored:
            self.logger.info("Import into %s ignores headers: %s", schema.name, ", ".join(ignored))

        inserted = 0
        row_number = 0
        iterator = iter(records)
        while True:
            # Data rows are numbered from 1, after the header.
            row_number += 1
            try:
                record = next(iterator, None)
                if record is None:
                    break
                if is_blank_row(record):
                    continue
                values = prepare_values(schema.fields, _record_data(mapping, record), is_insert=True, table=schema.name)
                await self.rows.insert_values(schema.name, values)
            except DataStoreError as exc:
                self.logger.warning(
                    "Import into %s aborted at row %d after %d rows: %s", schema.name, row_number, inserted, exc
                )
                raise ImportAbortedError(
                    f"row {row_number}: {exc.message}",
                    inserted=inserted,
                    row_number=row_number,
                    table=schema.name,
                ) from exc
            inserted += 1

        self.logger.info("Imported %d rows into %s", inserted, schema.name)
        return inserted

    async def import_csv(
        self,
        table: str,
        data: bytes | str,
        aliases: Mapping[str, str] | None = None,
        allow_unknown: bool = False,
    ) -> int:
        return await self._import_rows(table, iter_csv_rows(data), aliases, allow_unknown)

    async def import_xlsx(
        self,
        table: str,
        data: bytes,
        aliases: Mapping[str, str] | None = None,
        allow_unknown: bool = False,
    ) -> int:
        return await self._import_rows(table, iter_xlsx_rows(data), aliases, allow_unknown)

    async def _import_rows(
        self,
        table: str,
        rows: Iterable[Sequence[Any]],
        aliases: Mapping[str, str] | None,
        allow_unknown: bool,
    ) -> int:
        iterator = iter(rows)
        header = next(iterator, None)
        if header is None:
            raise SchemaValidationError("import file is empty", table=table)
        return await self.import_records(table, header, iterator, aliases, allow_unknown)
