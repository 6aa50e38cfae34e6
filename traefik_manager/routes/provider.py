from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from traefik_manager.dependencies import get_store, require_provider_key
from traefik_manager.logger import get_logger
from traefik_manager.metrics import record_provider_render
from traefik_manager.services.provider import render_dynamic_config
from traefik_manager.services.store import ResourceStore

router = APIRouter(tags=["provider"])
_logger = get_logger("api.provider")


@router.get("", dependencies=[Depends(require_provider_key)])
async def dynamic_config(store: ResourceStore = Depends(get_store)) -> Dict[str, Any]:
    routers, services, middlewares = store.view()
    try:
        document = render_dynamic_config(routers, services, middlewares)
    except Exception:
        record_provider_render(ok=False)
        raise
    record_provider_render(ok=True)
    _logger.debug(
        "provider.render",
        "Rendered dynamic configuration",
        routers=len(routers),
        services=len(services),
        middlewares=len(middlewares),
    )
    return document
