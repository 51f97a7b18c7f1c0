"""Session endpoints: the platform bridge stores or clears credentials."""

from fastapi import APIRouter, status

from checklist_sync.core.deps import ServicesDep
from checklist_sync.schemas import APIResponse
from checklist_sync.schemas.checklist import SessionRequest

router = APIRouter(prefix="/session", tags=["session"])


@router.put("", response_model=APIResponse)
async def save_session(data: SessionRequest, services: ServicesDep):
    await services.preferences.save_session(data.token, data.user)
    return {"success": True, "data": {"user": data.user}}


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_session(services: ServicesDep):
    await services.preferences.clear_session()
