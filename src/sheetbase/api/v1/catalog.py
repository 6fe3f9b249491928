"""API endpoint reporting drift between the catalog and stored tables."""

from typing import Annotated

from fastapi import APIRouter, Depends

from ...core.exceptions import DataStoreError
from ...services.table_store import TableStore
from ..dependencies import get_table_store, http_error

router = APIRouter(prefix="/catalog", tags=["Catalog"])


@router.get("/consistency", summary="Catalog Consistency")
async def consistency(store: Annotated[TableStore, Depends(get_table_store)]):
    try:
        report = await store.consistency_report()
    except DataStoreError as e:
        raise http_error(e) from e
    return {"success": True, "data": {**report.model_dump(), "consistent": report.consistent}}
