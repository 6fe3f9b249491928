"""API endpoints for reading and writing rows of a managed table."""

from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, Query, Request, status

from ...core.exceptions import DataStoreError
from ...schemas.requests import DeleteRowsRequest
from ...services.table_store import TableStore
from ..dependencies import get_table_store, http_error, query_options_from_request

router = APIRouter(prefix="/tables/{table_name}", tags=["Rows"])


@router.get(
    "/rows",
    summary="Query Rows",
    description="Page through rows; filter columns with filter.<column>=<substring>",
)
async def query_rows(
    table_name: str,
    request: Request,
    store: Annotated[TableStore, Depends(get_table_store)],
    search: str = Query("", description="Substring matched against every column"),
    page: int = Query(1, description="1-based page number"),
    size: int = Query(0, description="Rows per page; the configured default when not positive"),
    sort_by: str = Query("", description="Column to sort by"),
    desc: bool = Query(False, description="Sort descending"),
):
    options = query_options_from_request(request, search, page, size, sort_by, desc)
    try:
        result = await store.query(table_name, options)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": result.model_dump()}


@router.post("/rows", status_code=status.HTTP_201_CREATED, summary="Insert Row")
async def insert_row(
    table_name: str,
    store: Annotated[TableStore, Depends(get_table_store)],
    data: dict[str, Any] = Body(...),
):
    try:
        row_id = await store.insert_row(table_name, data)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": {"id": row_id}}


@router.put("/rows/{row_id}", summary="Update Row")
async def update_row(
    table_name: str,
    row_id: int,
    store: Annotated[TableStore, Depends(get_table_store)],
    data: dict[str, Any] = Body(...),
):
    try:
        updated = await store.update_row(table_name, row_id, data)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": {"id": row_id, "updated": updated}}


@router.delete("/rows/{row_id}", summary="Delete Row")
async def delete_row(table_name: str, row_id: int, store: Annotated[TableStore, Depends(get_table_store)]):
    try:
        deleted = await store.delete_row(table_name, row_id)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "count": deleted}


@router.post("/rows/batch-delete", summary="Delete Rows")
async def delete_rows(
    table_name: str,
    request: DeleteRowsRequest,
    store: Annotated[TableStore, Depends(get_table_store)],
):
    try:
        deleted = await store.delete_rows(table_name, request.ids)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "count": deleted}


@router.delete("/rows", summary="Clear Rows", description="Delete every row and keep the table")
async def clear_rows(table_name: str, store: Annotated[TableStore, Depends(get_table_store)]):
    try:
        deleted = await store.clear_rows(table_name)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "count": deleted}


@router.get("/summary", summary="Column Summary")
async def column_summary(
    table_name: str,
    store: Annotated[TableStore, Depends(get_table_store)],
    column: str = Query(..., description="Numeric column to summarise"),
):
    try:
        summary = await store.summary(table_name, column)
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": summary.model_dump(exclude_none=True)}
