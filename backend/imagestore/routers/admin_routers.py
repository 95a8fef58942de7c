# backend/imagestore/routers/admin_routers.py
"""
Administrative and health endpoints.

- POST /admin/catalog/reconcile runs one catalog consistency sweep
- GET /health/queue reports scheduler and importer state
- GET /health/database checks the pool
"""

from typing import Any, Dict

from fastapi import APIRouter, HTTPException, status

from ..dependencies import (
    DataAccessLayerDep,
    ImportWorkerDep,
    ReconciliationServiceDep,
    ThumbnailSchedulerDep,
)
from ..models.image_model import ReconciliationReport
from ..utils.router_helpers import handle_exceptions

router = APIRouter(tags=["admin"])


@router.post("/admin/catalog/reconcile", response_model=ReconciliationReport)
@handle_exceptions("reconcile catalog")
async def reconcile_catalog(reconciler: ReconciliationServiceDep) -> ReconciliationReport:
    """Run a full sweep. Only one sweep runs at a time (409 otherwise)."""
    if reconciler.is_running:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Catalog sweep already running"
        )
    return await reconciler.correct_images()


@router.get("/health/queue", response_model=Dict[str, Any])
@handle_exceptions("get queue status")
async def queue_health(
    scheduler: ThumbnailSchedulerDep, importer: ImportWorkerDep
) -> Dict[str, Any]:
    return {
        "scheduler": scheduler.get_status(),
        "importer": importer.get_status(),
    }


@router.get("/health/database", response_model=Dict[str, Any])
@handle_exceptions("check database health")
async def database_health(dal: DataAccessLayerDep) -> Dict[str, Any]:
    health = await dal.db.health_check()
    health["pool"] = dal.db.get_pool_stats()
    return health
