"""Sync status and control endpoints for the local UI."""

from fastapi import APIRouter

from checklist_sync.core.deps import ServicesDep, SyncManagerDep
from checklist_sync.schemas import APIResponse
from checklist_sync.schemas.sync import ConnectivityUpdate

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status", response_model=APIResponse)
async def sync_status(services: ServicesDep):
    """Queue counts and derived flags for the sync badge."""
    snapshot = await services.status_observer.refresh()
    return {
        "success": True,
        "data": {
            **snapshot.model_dump(),
            "online": services.connectivity.is_online,
        },
    }


@router.get("/failed", response_model=APIResponse)
async def sync_failed(services: ServicesDep):
    """Queue items that ran out of retries, for the manual retry prompt."""
    items = await services.store.get_failed_sync_items()
    return {
        "success": True,
        "data": [
            {
                "id": item.id,
                "type": item.type,
                "retry_count": item.retry_count,
                "error": item.error,
                "last_attempt_at": item.last_attempt_at,
            }
            for item in items
        ],
    }


@router.post("/run", response_model=APIResponse)
async def sync_run(sync_manager: SyncManagerDep):
    """Start a sync pass. Reports ``started: false`` if one is already running."""
    report = await sync_manager.sync_all()
    return {
        "success": True,
        "data": {
            "started": report is not None,
            "report": report.model_dump() if report else None,
        },
    }


@router.post("/retry-failed", response_model=APIResponse)
async def sync_retry_failed(services: ServicesDep):
    """Reset exhausted items and files, then sync again."""
    reset_items = await services.store.retry_failed_sync_items()
    reset_files = await services.store.retry_failed_files()
    report = await services.sync_manager.sync_all()
    return {
        "success": True,
        "data": {
            "reset_items": reset_items,
            "reset_files": reset_files,
            "report": report.model_dump() if report else None,
        },
    }


@router.post("/connectivity", response_model=APIResponse)
async def report_connectivity(data: ConnectivityUpdate, services: ServicesDep):
    """Platform bridge reports a network status change."""
    services.connectivity.set_status(data.online)
    return {"success": True, "data": {"online": services.connectivity.is_online}}
