"""Tests for CSV and xlsx helpers."""

from datetime import datetime

import pytest

from sheetbase.core.exceptions import SchemaValidationError
from sheetbase.services.spreadsheet import (
    cell_text,
    decode_text,
    is_blank_row,
    iter_csv_rows,
    iter_xlsx_rows,
    sheet_title,
    write_csv,
    write_xlsx,
)


class TestCsv:
    def test_bom_and_leading_spaces(self):
        rows = list(iter_csv_rows(b"\xef\xbb\xbfname, age\nBob, 3\n"))
        assert rows == [["name", "age"], ["Bob", "3"]]

    def test_gb18030_fallback(self):
        assert decode_text("姓名,年龄".encode("gb18030")) == "姓名,年龄"

    def test_undecodable_bytes(self):
        with pytest.raises(SchemaValidationError):
            decode_text(b"name,age\nAlice,1\n\xff\xfe\xfd,2\n")

    def test_oversized_field_fails_at_its_record(self):
        rows = iter_csv_rows("name,age\nAlice,1\n" + "x" * 200000 + ",2\n")
        assert next(rows) == ["name", "age"]
        assert next(rows) == ["Alice", "1"]
        with pytest.raises(SchemaValidationError):
            next(rows)

    def test_write_csv(self):
        content = write_csv(["name", "flag"], [["x", True], ["y", None]])
        assert content.startswith(b"\xef\xbb\xbf")
        assert content.decode("utf-8-sig").splitlines() == ["name,flag", "x,true", "y,"]


class TestXlsx:
    def test_written_workbook_reads_back(self):
        content = write_xlsx(["名称", "数量", "启用"], [["a", 3, True], ["b", 2.5, None]], title="Stock")
        rows = list(iter_xlsx_rows(content))

        assert rows[0] == ["名称", "数量", "启用"]
        assert rows[1] == ["a", "3", "true"]
        assert rows[2][:2] == ["b", "2.5"]

    def test_formula_like_text_stays_literal(self):
        content = write_xlsx(["name"], [["=SUM(1,2)"], ["=not a formula"]])
        assert list(iter_xlsx_rows(content)) == [["name"], ["=SUM(1,2)"], ["=not a formula"]]

    def test_control_characters_are_dropped(self):
        content = write_xlsx(["name"], [["bell\x07"], ["tab\tkept"]])
        assert list(iter_xlsx_rows(content))[1:] == [["bell"], ["tab\tkept"]]

    def test_unreadable_workbook(self):
        with pytest.raises(SchemaValidationError):
            list(iter_xlsx_rows(b"not a workbook"))

    def test_sheet_title(self):
        assert sheet_title("a/b:c") == "a_b_c"
        assert len(sheet_title("x" * 40)) == 31


def test_cell_text():
    assert cell_text(None) == ""
    assert cell_text(4.0) == "4"
    assert cell_text(False) == "false"
    assert cell_text(datetime(2024, 5, 1)) == "2024-05-01"
    assert cell_text(datetime(2024, 5, 1, 8, 30)) == "2024-05-01 08:30:00"


def test_is_blank_row():
    assert is_blank_row(["", "  ", None])
    assert not is_blank_row(["", "x"])
