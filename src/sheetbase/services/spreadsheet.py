"""CSV and xlsx reading/writing for import and export."""

import csv
import io
import re
from collections.abc import Iterable, Iterator, Sequence
from datetime import date, datetime, time
from typing import Any

from openpyxl import Workbook, load_workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from ..core.exceptions import SchemaValidationError

CSV_MEDIA_TYPE = "text/csv; charset=utf-8"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_SHEET_TITLE_INVALID = re.compile(r"[\[\]:*?/\\]")


def decode_text(data: bytes) -> str:
    """Decode uploaded CSV bytes, tolerating a UTF-8 BOM and GB18030 exports."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass
    try:
        return data.decode("gb18030")
    except UnicodeDecodeError as exc:
        raise SchemaValidationError("CSV is not UTF-8 or GB18030 text") from exc


def iter_csv_rows(data: bytes | str) -> Iterator[list[str]]:
    """Yield CSV records, header first.

    A malformed record raises SchemaValidationError when it is reached, so
    records before it have already been yielded.
    """
    content = decode_text(data) if isinstance(data, bytes) else data
    reader = csv.reader(io.StringIO(content, newline=""), skipinitialspace=True)
    while True:
        try:
            record = next(reader, None)
        except csv.Error as exc:
            raise SchemaValidationError(f"unreadable CSV line {reader.line_num}: {exc}") from exc
        if record is None:
            return
        yield record


def iter_xlsx_rows(data: bytes) -> Iterator[list[str]]:
    """Yield the rows of the active (else first) worksheet as text cells, header first."""
    try:
        workbook = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as exc:
        raise SchemaValidationError(f"unreadable workbook: {exc}") from exc
    try:
        sheet = workbook.active
        if sheet is None and workbook.worksheets:
            sheet = workbook.worksheets[0]
        if sheet is None:
            raise SchemaValidationError("workbook has no worksheet")
        rows = sheet.iter_rows(values_only=True)
        while True:
            try:
                row = next(rows, None)
            except Exception as exc:
                raise SchemaValidationError(f"unreadable worksheet row: {exc}") from exc
            if row is None:
                return
            yield [cell_text(value) for value in row]
    finally:
        workbook.close()


def cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat(sep=" ")
    if isinstance(value, (date, time)):
        return value.isoformat()
    return str(value)


def is_blank_row(cells: Sequence[Any]) -> bool:
    return all(not str(cell if cell is not None else "").strip() for cell in cells)


def write_csv(header: Sequence[str], rows: Iterable[Sequence[Any]]) -> bytes:
    buffer = io.StringIO(newline="")
    writer = csv.writer(buffer)
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if value is None else _export_value(value) for value in row])
    return buffer.getvalue().encode("utf-8-sig")


def write_xlsx(header: Sequence[str], rows: Iterable[Sequence[Any]], title: str | None = None) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    if title:
        sheet.title = sheet_title(title)
    for row in [header, *rows]:
        sheet.append([_xlsx_value(value) for value in row])
        # Text starting with "=" is stored as a literal, never as a formula.
        for cell in sheet[sheet.max_row]:
            if cell.data_type == "f":
                cell.data_type = "s"
    buffer = io.BytesIO()
    workbook.save(buffer)
    workbook.close()
    return buffer.getvalue()


def sheet_title(title: str) -> str:
    cleaned = _SHEET_TITLE_INVALID.sub("_", title).strip("'") or "Sheet1"
    return cleaned[:31]


def _export_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def _xlsx_value(value: Any) -> Any:
    value = _export_value(value)
    if isinstance(value, str):
        # Control characters are not allowed in worksheet XML.
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    return value
