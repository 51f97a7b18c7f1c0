"""API v1 router that aggregates all sub-routers."""

from fastapi import APIRouter

from checklist_sync.api.v1.checklists import router as checklists_router
from checklist_sync.api.v1.session import router as session_router
from checklist_sync.api.v1.sync import router as sync_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(session_router)
api_router.include_router(checklists_router)
api_router.include_router(sync_router)
