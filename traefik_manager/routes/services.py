from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from traefik_manager.dependencies import get_store
from traefik_manager.logger import get_logger
from traefik_manager.schemas.common import ResourceResponse
from traefik_manager.schemas.services import Service, ServiceCreate, ServiceUpdate
from traefik_manager.services.store import ResourceKind, ResourceStore
from traefik_manager.utils import reconcile_path_id

router = APIRouter(prefix="/services", tags=["services"])
_logger = get_logger("api.services")


@router.get("", response_model=List[Service], response_model_exclude_none=True)
async def list_services(store: ResourceStore = Depends(get_store)) -> List[Service]:
    return store.list(ResourceKind.SERVICE)


@router.get("/{service_id}", response_model=Service, response_model_exclude_none=True)
async def get_service(service_id: str, store: ResourceStore = Depends(get_store)) -> Service:
    return store.get(ResourceKind.SERVICE, service_id)


@router.post("", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def create_service(
    payload: ServiceCreate,
    store: ResourceStore = Depends(get_store),
) -> ResourceResponse:
    store.create(ResourceKind.SERVICE, payload)
    _logger.info(
        "service.created",
        "Service created",
        service_id=payload.id,
        form=payload.populated_forms()[0],
    )
    return ResourceResponse(id=payload.id, created=True)


@router.put("/{service_id}", response_model=ResourceResponse)
async def update_service(
    service_id: str,
    payload: ServiceUpdate,
    store: ResourceStore = Depends(get_store),
) -> ResourceResponse:
    payload.id = reconcile_path_id(service_id, payload.id)
    store.update(ResourceKind.SERVICE, service_id, payload)
    _logger.info("service.updated", "Service updated", service_id=service_id)
    return ResourceResponse(id=service_id, updated=True)


@router.delete("/{service_id}", response_model=ResourceResponse)
async def delete_service(
    service_id: str,
    store: ResourceStore = Depends(get_store),
) -> ResourceResponse:
    store.delete(ResourceKind.SERVICE, service_id)
    _logger.info("service.deleted", "Service deleted", service_id=service_id)
    return ResourceResponse(id=service_id, deleted=True)
