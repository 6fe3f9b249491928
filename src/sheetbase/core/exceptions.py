"""Error taxonomy raised by the table engine.

Every core operation raises a subclass of :class:`DataStoreError` and nothing
else; engine-level failures are wrapped in :class:`StorageFailureError` with
the original exception chained as ``__cause__``.
"""

from collections.abc import Sequence


class DataStoreError(Exception):
    """Base class for all engine errors."""

    code = "data_store_error"

    def __init__(self, message: str, *, table: str | None = None, column: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.table = table
        self.column = column

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"code": self.code, "message": self.message}
        if self.table:
            payload["table"] = self.table
        if self.column:
            payload["column"] = self.column
        return payload


# Schema definition errors, raised before any I/O.


class SchemaValidationError(DataStoreError):
    code = "validation_error"


class EmptyNameError(SchemaValidationError):
    code = "empty_name"


class EmptyFieldNameError(SchemaValidationError):
    code = "empty_field_name"


class DuplicateFieldError(SchemaValidationError):
    code = "duplicate_field"


class EmptyFieldSetError(SchemaValidationError):
    code = "empty_field_set"


class InvalidIdentifierError(SchemaValidationError):
    code = "invalid_identifier"


class TableExistsError(SchemaValidationError):
    code = "table_exists"


class UnsupportedTypeError(SchemaValidationError):
    code = "unsupported_type"


class TypeChangeForbiddenError(SchemaValidationError):
    code = "type_change_forbidden"


# Row value errors, raised before the write.


class RowValidationError(DataStoreError):
    code = "row_validation_error"


class MissingRequiredFieldError(RowValidationError):
    code = "missing_required_field"


class InvalidValueError(RowValidationError):
    code = "invalid_value"


class UnknownColumnsError(DataStoreError):
    code = "unknown_columns"

    def __init__(self, columns: Sequence[str], *, table: str | None = None) -> None:
        self.columns = list(columns)
        super().__init__(f"unknown columns: {', '.join(self.columns)}", table=table)

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["columns"] = self.columns
        return payload


class UnsupportedColumnTypeError(DataStoreError):
    code = "unsupported_column_type"


class TableNotFoundError(DataStoreError):
    code = "table_not_found"


class ColumnNotFoundError(DataStoreError):
    code = "column_not_found"


class StorageFailureError(DataStoreError):
    code = "storage_failure"


class ImportAbortedError(DataStoreError):
    """An import stopped partway; rows before ``row_number`` stay committed."""

    code = "import_aborted"

    def __init__(self, message: str, *, inserted: int, row_number: int, table: str | None = None) -> None:
        super().__init__(message, table=table)
        self.inserted = inserted
        self.row_number = row_number

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        payload["inserted"] = self.inserted
        payload["row_number"] = self.row_number
        cause = self.__cause__
        if isinstance(cause, DataStoreError):
            payload["cause"] = cause.to_dict()
        return payload
