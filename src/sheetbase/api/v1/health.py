import logging
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from ...core.exceptions import DataStoreError
from ...schemas.requests import HealthCheck
from ...services.table_store import TableStore
from ..dependencies import get_table_store

router = APIRouter(tags=["health"])

STATUS_HEALTHY = "healthy"
STATUS_UNHEALTHY = "unhealthy"

LOGGER = logging.getLogger(__name__)


@router.get("/health", response_model=HealthCheck)
async def health(request: Request, store: Annotated[TableStore, Depends(get_table_store)]):
    settings = request.app.state.settings
    http_status = status.HTTP_200_OK
    response = {
        "status": STATUS_HEALTHY,
        "environment": settings.ENVIRONMENT.value,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
        "tables": None,
    }

    try:
        response["tables"] = len(await store.list_schemas())
    except DataStoreError as e:
        LOGGER.error("Health check catalog read failed: %s", e)
        response["status"] = STATUS_UNHEALTHY
        http_status = status.HTTP_503_SERVICE_UNAVAILABLE

    return JSONResponse(status_code=http_status, content=response)
