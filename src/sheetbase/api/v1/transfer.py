"""API endpoints for spreadsheet import and export."""

import logging
from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import Response

from ...core.exceptions import DataStoreError
from ...schemas.table import ExportFormat
from ...services.table_store import TableStore
from ..dependencies import get_table_store, http_error, parse_aliases, query_options_from_request

router = APIRouter(prefix="/tables/{table_name}", tags=["Import/Export"])

LOGGER = logging.getLogger(__name__)


@router.post(
    "/import",
    summary="Import Rows",
    description="Upload a .csv or .xlsx file; headers match column names, labels or the aliases map",
)
async def import_rows(
    table_name: str,
    store: Annotated[TableStore, Depends(get_table_store)],
    file: UploadFile = File(...),
    allow_unknown: bool = Form(False),
    aliases: str | None = Form(None, description='JSON object, e.g. {"Full Name": "name"}'),
):
    alias_map = parse_aliases(aliases)
    filename = (file.filename or "").lower()
    content = await file.read()
    LOGGER.info("Import upload %s (%d bytes) into %s", file.filename, len(content), table_name)
    try:
        if filename.endswith(".csv"):
            inserted = await store.import_csv(table_name, content, allow_unknown=allow_unknown, aliases=alias_map)
        elif filename.endswith(".xlsx"):
            inserted = await store.import_xlsx(table_name, content, allow_unknown=allow_unknown, aliases=alias_map)
        else:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="only .csv and .xlsx files can be imported",
            )
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": {"inserted": inserted}}


@router.get(
    "/export",
    summary="Export Rows",
    description="Download matching rows; all=true or explicit ids bypass paging",
)
async def export_rows(
    table_name: str,
    request: Request,
    store: Annotated[TableStore, Depends(get_table_store)],
    format: ExportFormat = Query(ExportFormat.XLSX),
    export_all: bool = Query(False, alias="all"),
    ids: list[int] | None = Query(None),
    search: str = Query(""),
    page: int = Query(1),
    size: int = Query(0),
    sort_by: str = Query(""),
    desc: bool = Query(False),
):
    options = query_options_from_request(request, search, page, size, sort_by, desc)
    try:
        result = await store.export_rows(table_name, options, ids=ids, all_rows=export_all, fmt=format)
    except DataStoreError as e:
        raise http_error(e) from e
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(result.filename)}"},
    )
