from __future__ import annotations

from time import monotonic
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from traefik_manager.config import Settings
from traefik_manager.dependencies import get_app_settings
from traefik_manager.metrics import metrics_content_type, render_metrics
from traefik_manager.utils import format_uptime

router = APIRouter(tags=["system"])


@router.get("/health")
async def health(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, str]:
    uptime = monotonic() - request.app.state.started_at
    return {"status": "healthy", "version": settings.app_version, "uptime": format_uptime(uptime)}


@router.get("/metrics", include_in_schema=False)
async def metrics(settings: Settings = Depends(get_app_settings)) -> Response:
    if not settings.metrics_enabled:
        raise HTTPException(status_code=404, detail="Metrics are disabled.")
    return Response(content=render_metrics(), media_type=metrics_content_type())
