"""Schemas describing managed tables, their columns and read-side options."""

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class ColumnDefinition(BaseModel):
    """A declared column of a managed table."""

    name: str
    old_name: str | None = Field(default=None, description="Existing column name when renaming through update")
    labels: list[str] = Field(default_factory=list, description="Display aliases, first one is the header label")
    type_hint: str = ""
    allow_null: bool = True
    default: str | None = None

    model_config = ConfigDict(str_strip_whitespace=True)


class TableSchema(BaseModel):
    """A managed table as described by the catalog."""

    name: str
    display_name: str = ""
    description: str = ""
    fields: list[ColumnDefinition] = Field(default_factory=list)

    model_config = ConfigDict(str_strip_whitespace=True)

    def field_names(self) -> list[str]:
        return [field.name for field in self.fields]


class TableSchemaRead(TableSchema):
    """Catalog entry plus the columns the catalog lists but the table lacks."""

    stale_columns: list[str] = Field(default_factory=list)


class QueryOptions(BaseModel):
    search: str = ""
    filters: dict[str, str] = Field(default_factory=dict)
    page: int = 1
    page_size: int = Field(default=20, validation_alias=AliasChoices("page_size", "size"))
    sort_by: str = ""
    sort_desc: bool = Field(default=False, validation_alias=AliasChoices("sort_desc", "desc"))

    model_config = ConfigDict(populate_by_name=True)


class RowPage(BaseModel):
    items: list[dict[str, Any]]
    total: int
    page: int
    page_size: int


class ColumnSummary(BaseModel):
    """Descriptive statistics over the non-null values of a numeric column.

    Only ``count`` is set when the column holds no values.
    """

    count: int
    sum: float | None = None
    average: float | None = None
    max: float | None = None
    min: float | None = None
    std: float | None = None


class ExportFormat(str, Enum):
    XLSX = "xlsx"
    CSV = "csv"


class ExportResult(BaseModel):
    content: bytes
    filename: str
    media_type: str


class CatalogReport(BaseModel):
    """Drift between the catalog and the physical store."""

    stale_columns: dict[str, list[str]] = Field(default_factory=dict)
    orphan_tables: list[str] = Field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.stale_columns and not self.orphan_tables
