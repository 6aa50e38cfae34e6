from __future__ import annotations

from fastapi import HTTPException, Request

from traefik_manager.config import Settings
from traefik_manager.logger import get_logger
from traefik_manager.security import check_api_key
from traefik_manager.services.store import ResourceStore

_logger = get_logger("api.auth")


def get_store(request: Request) -> ResourceStore:
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_provider_key(request: Request) -> None:
    settings: Settings = request.app.state.settings
    if not settings.provider_auth_enabled:
        return
    provided = request.headers.get(settings.provider_auth_header_name)
    rejection = check_api_key(provided, settings.provider_auth_key)
    if rejection is None:
        return
    _logger.warning(
        "auth.provider_rejected",
        "Provider request rejected",
        path=request.url.path,
        reason=rejection,
    )
    raise HTTPException(status_code=401, detail=rejection)
