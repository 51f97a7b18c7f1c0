"""FastAPI dependencies giving routes access to the shared services."""

from typing import Annotated

from fastapi import Depends, Request

from checklist_sync.services.gateway import RemoteGateway
from checklist_sync.services.sync import SyncManager
from checklist_sync.shell import AppServices


def get_services(request: Request) -> AppServices:
    return request.app.state.services


def get_gateway(services: Annotated[AppServices, Depends(get_services)]) -> RemoteGateway:
    return services.gateway


def get_sync_manager(services: Annotated[AppServices, Depends(get_services)]) -> SyncManager:
    return services.sync_manager


ServicesDep = Annotated[AppServices, Depends(get_services)]
GatewayDep = Annotated[RemoteGateway, Depends(get_gateway)]
SyncManagerDep = Annotated[SyncManager, Depends(get_sync_manager)]
