"""Checklist endpoints used by the local UI. Network work goes through the gateway."""

from fastapi import APIRouter

from checklist_sync.core.deps import GatewayDep, ServicesDep
from checklist_sync.schemas import APIResponse
from checklist_sync.schemas.checklist import (
    FileUploadRequest,
    GenerateRequest,
    SaveFieldRequest,
    SubmitRequest,
)

router = APIRouter(tags=["checklists"])


@router.get("/checklists", response_model=APIResponse)
async def list_checklists(services: ServicesDep):
    """Checklists available on this device, most recently modified first."""
    checklists = await services.store.list_checklists()
    return {
        "success": True,
        "data": [
            {
                "local_id": c.id,
                "server_id": c.server_id,
                "title": c.title,
                "sync_status": c.sync_status,
                "updated_at": c.updated_at,
            }
            for c in checklists
        ],
    }


@router.get("/checklists/{checklist_id}", response_model=APIResponse)
async def get_checklist(checklist_id: int, gateway: GatewayDep):
    """Checklist definition, from the server when reachable, else from cache."""
    checklist = await gateway.fetch_checklist(checklist_id)
    return {"success": True, "data": checklist.model_dump()}


@router.post("/checklists/{checklist_id}/fields", response_model=APIResponse)
async def save_field(checklist_id: int, data: SaveFieldRequest, gateway: GatewayDep):
    """Save one answer. Succeeds offline; delivery is retried by the sync engine."""
    result = await gateway.save_field(
        data.value,
        data.field_id,
        data.response_server_id,
        data.local_response_id,
        form_server_id=data.form_server_id,
        field_type=data.field_type,
    )
    return {"success": True, "data": result.model_dump()}


@router.post("/checklists/{checklist_id}/submit", response_model=APIResponse)
async def submit_checklist(checklist_id: int, data: SubmitRequest, gateway: GatewayDep):
    result = await gateway.submit_form(
        checklist_id, data.response_server_id, data.local_response_id
    )
    return {"success": True, "data": result.model_dump()}


@router.post("/checklists/generate", response_model=APIResponse)
async def generate_checklist(data: GenerateRequest, gateway: GatewayDep):
    result = await gateway.generate_checklist(data.form_id, data.user_id)
    return {"success": True, "data": result.model_dump()}


@router.get("/forms", response_model=APIResponse)
async def list_forms(gateway: GatewayDep):
    forms = await gateway.list_forms()
    return {"success": True, "data": forms}


@router.post("/files", response_model=APIResponse)
async def upload_file(data: FileUploadRequest, gateway: GatewayDep):
    result = await gateway.upload_file(
        data.field_response_id, data.file_name, data.file_data, data.mime_type
    )
    return {"success": True, "data": result.model_dump()}
