from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, status

from traefik_manager.dependencies import get_store
from traefik_manager.logger import get_logger
from traefik_manager.schemas.common import ResourceResponse
from traefik_manager.schemas.middlewares import Middleware, MiddlewareCreate, MiddlewareUpdate
from traefik_manager.services.provider import MIDDLEWARE_FIELDS
from traefik_manager.services.store import ResourceKind, ResourceStore
from traefik_manager.utils import reconcile_path_id

router = APIRouter(prefix="/middlewares", tags=["middlewares"])
_logger = get_logger("api.middlewares")


def _warn_unknown_type(middleware: Middleware) -> None:
    if middleware.type not in MIDDLEWARE_FIELDS:
        _logger.warning(
            "middleware.unknown_type",
            "Middleware type is not projected; the gateway will receive an empty middleware",
            middleware_id=middleware.id,
            type=middleware.type,
        )


@router.get("", response_model=List[Middleware], response_model_exclude_none=True)
async def list_middlewares(store: ResourceStore = Depends(get_store)) -> List[Middleware]:
    return store.list(ResourceKind.MIDDLEWARE)


@router.get("/{middleware_id}", response_model=Middleware, response_model_exclude_none=True)
async def get_middleware(
    middleware_id: str,
    store: ResourceStore = Depends(get_store),
) -> Middleware:
    return store.get(ResourceKind.MIDDLEWARE, middleware_id)


@router.post("", response_model=ResourceResponse, status_code=status.HTTP_201_CREATED)
async def create_middleware(
    payload: MiddlewareCreate,
    store: ResourceStore = Depends(get_store),
) -> ResourceResponse:
    store.create(ResourceKind.MIDDLEWARE, payload)
    _warn_unknown_type(payload)
    _logger.info(
        "middleware.created",
        "Middleware created",
        middleware_id=payload.id,
        type=payload.type,
    )
    return ResourceResponse(id=payload.id, created=True)


@router.put("/{middleware_id}", response_model=ResourceResponse)
async def update_middleware(
    middleware_id: str,
    payload: MiddlewareUpdate,
    store: ResourceStore = Depends(get_store),
) -> ResourceResponse:
    payload.id = reconcile_path_id(middleware_id, payload.id)
    store.update(ResourceKind.MIDDLEWARE, middleware_id, payload)
    _warn_unknown_type(payload)
    _logger.info(
        "middleware.updated",
        "Middleware updated",
        middleware_id=middleware_id,
        type=payload.type,
    )
    return ResourceResponse(id=middleware_id, updated=True)


@router.delete("/{middleware_id}", response_model=ResourceResponse)
async def delete_middleware(
    middleware_id: str,
    store: ResourceStore = Depends(get_store),
) -> ResourceResponse:
    store.delete(ResourceKind.MIDDLEWARE, middleware_id)
    _logger.info("middleware.deleted", "Middleware deleted", middleware_id=middleware_id)
    return ResourceResponse(id=middleware_id, deleted=True)
