"""Request bodies and small response shapes used by the HTTP routes."""

from pydantic import BaseModel, Field

from .table import ColumnDefinition


class AddColumnsRequest(BaseModel):
    fields: list[ColumnDefinition] = Field(..., min_length=1)


class RenameTableRequest(BaseModel):
    new_name: str


class RenameColumnRequest(BaseModel):
    old_name: str
    new_name: str


class DeleteRowsRequest(BaseModel):
    ids: list[int] = Field(default_factory=list)


class HealthCheck(BaseModel):
    status: str
    environment: str
    version: str | None
    timestamp: str
    tables: int | None = None
