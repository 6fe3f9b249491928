from fastapi import APIRouter

from .catalog import router as catalog_router
from .health import router as health_router
from .rows import router as rows_router
from .tables import router as tables_router
from .transfer import router as transfer_router

router = APIRouter(prefix="/v1")
router.include_router(health_router)
router.include_router(tables_router)
router.include_router(rows_router)
router.include_router(transfer_router)
router.include_router(catalog_router)
