"""API endpoints for managed table schemas."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from ...core.exceptions import DataStoreError
from ...schemas.requests import AddColumnsRequest, RenameColumnRequest, RenameTableRequest
from ...schemas.table import TableSchema
from ...services.table_store import TableStore
from ..dependencies import get_table_store, http_error

router = APIRouter(prefix="/tables", tags=["Tables"])


@router.get(
    "",
    summary="List Tables",
    description="List every managed table with its columns and any columns missing from storage",
)
async def list_tables(store: Annotated[TableStore, Depends(get_table_store)]):
    try:
        schemas = await store.list_schemas()
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": [schema.model_dump() for schema in schemas], "count": len(schemas)}


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create Table")
async def create_table(schema: TableSchema, store: Annotated[TableStore, Depends(get_table_store)]):
    try:
        created = await store.create_schema(schema)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": created.model_dump()}


@router.get("/{table_name}", summary="Get Table Schema")
async def get_table(table_name: str, store: Annotated[TableStore, Depends(get_table_store)]):
    try:
        schema = await store.get_schema(table_name)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": schema.model_dump()}


@router.put(
    "/{table_name}",
    summary="Update Table Schema",
    description="Reconcile the full schema: rename, add, drop and relabel columns",
)
async def update_table(table_name: str, schema: TableSchema, store: Annotated[TableStore, Depends(get_table_store)]):
    try:
        updated = await store.update_schema(table_name, schema)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": updated.model_dump()}


@router.delete("/{table_name}", summary="Drop Table")
async def drop_table(table_name: str, store: Annotated[TableStore, Depends(get_table_store)]):
    try:
        await store.drop_schema(table_name)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True}


@router.put("/{table_name}/name", summary="Rename Table")
async def rename_table(
    table_name: str,
    request: RenameTableRequest,
    store: Annotated[TableStore, Depends(get_table_store)],
):
    try:
        await store.rename_table(table_name, request.new_name)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": {"name": request.new_name}}


@router.post("/{table_name}/columns", status_code=status.HTTP_201_CREATED, summary="Add Columns")
async def add_columns(
    table_name: str,
    request: AddColumnsRequest,
    store: Annotated[TableStore, Depends(get_table_store)],
):
    try:
        added = await store.add_columns(table_name, request.fields)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": [field.model_dump() for field in added], "count": len(added)}


@router.delete("/{table_name}/columns", summary="Drop Columns")
async def drop_columns(
    table_name: str,
    store: Annotated[TableStore, Depends(get_table_store)],
    name: list[str] = Query(..., description="Column to drop; repeat for several"),
):
    try:
        dropped = await store.drop_columns(table_name, name)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": dropped, "count": len(dropped)}


@router.put("/{table_name}/columns/name", summary="Rename Column")
async def rename_column(
    table_name: str,
    request: RenameColumnRequest,
    store: Annotated[TableStore, Depends(get_table_store)],
):
    try:
        await store.rename_column(table_name, request.old_name, request.new_name)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": {"old_name": request.old_name, "new_name": request.new_name}}
