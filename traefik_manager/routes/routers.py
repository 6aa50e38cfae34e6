from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from traefik_manager.dependencies import get_store
from traefik_manager.logger import get_logger
from traefik_manager.schemas.common import ResourceResponse
from traefik_manager.schemas.routers import Router, RouterCreate, RouterUpdate
from traefik_manager.services.store import ResourceKind, ResourceStore
from traefik_manager.utils import reconcile_path_id

router = APIRouter(prefix="/routers", tags=["routers"])
_logger = get_logger("api.routers")


@router.get("", response_model=List[Router], response_model_exclude_none=True)
async def list_routers(store: ResourceStore = Depends(get_store)) -> List[Router]:
    return store.list(ResourceKind.ROUTER)


@router.get("/{router_id}", response_model=Router, response_model_exclude_none=True)
async def get_router(router_id: str, store: ResourceStore = Depends(get_store)) -> Router:
    return store.get(ResourceKind.ROUTER, router_id)


@router.post("", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def create_router(
    payload: RouterCreate,
    store: ResourceStore = Depends(get_store),
) -> ResourceResponse:
    store.create(ResourceKind.ROUTER, payload)
    _logger.info(
        "router.created",
        "Router created",
        router_id=payload.id,
        service_id=payload.service.id,
        middlewares=",".join(payload.middleware_ids()),
    )
    return ResourceResponse(id=payload.id, created=True)


@router.put("/{router_id}", response_model=ResourceResponse)
async def update_router(
    router_id: str,
    payload: RouterUpdate,
    store: ResourceStore = Depends(get_store),
) -> ResourceResponse:
    payload.id = reconcile_path_id(router_id, payload.id)
    updated = store.update(ResourceKind.ROUTER, router_id, payload)
    _logger.info(
        "router.updated",
        "Router updated",
        router_id=router_id,
        service_id=updated.service.id,
    )
    return ResourceResponse(id=router_id, updated=True)


@router.delete("/{router_id}", response_model=ResourceResponse)
async def delete_router(router_id: str, store: ResourceStore = Depends(get_store)) -> ResourceResponse:
    store.delete(ResourceKind.ROUTER, router_id)
    _logger.info("router.deleted", "Router deleted", router_id=router_id)
    return ResourceResponse(id=router_id, deleted=True)
