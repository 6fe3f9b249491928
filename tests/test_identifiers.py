import pytest

from sheetbase.core.exceptions import EmptyFieldNameError, EmptyNameError, InvalidIdentifierError
from sheetbase.services.identifiers import is_valid_identifier, validate_column_name, validate_table_name


class TestTableNames:
    def test_valid(self):
        assert validate_table_name("  orders ") == "orders"
        assert validate_table_name("客户") == "客户"
        assert validate_table_name("a" * 63) == "a" * 63

    def test_empty(self):
        with pytest.raises(EmptyNameError):
            validate_table_name("   ")
        with pytest.raises(EmptyNameError):
            validate_table_name(None)

    @pytest.mark.parametrize("name", ["1abc", "drop table", "a-b", "select", "table_meta", "sqlite_seq", "a" * 64])
    def test_rejected(self, name):
        with pytest.raises(InvalidIdentifierError):
            validate_table_name(name)


class TestColumnNames:
    def test_valid(self):
        assert validate_column_name("名称") == "名称"
        assert validate_column_name("_private") == "_private"

    def test_empty(self):
        with pytest.raises(EmptyFieldNameError):
            validate_column_name("", table="t")

    @pytest.mark.parametrize("name", ["id", "Created_At", "rowid", "a b", "order"])
    def test_rejected(self, name):
        with pytest.raises(InvalidIdentifierError):
            validate_column_name(name)


def test_keywords_are_case_insensitive():
    assert not is_valid_identifier("Where")
    assert is_valid_identifier("whereabouts")
