from __future__ import annotations

from pathlib import Path
from typing import Any, AsyncIterator, Callable

import httpx
import pytest
from fastapi import FastAPI

from traefik_manager.config import Settings
from traefik_manager.main import create_app

API = "/api/v1"
PROVIDER = "/traefik/provider"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def snapshot_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "traefik-manager.json"


@pytest.fixture
def make_settings(snapshot_path: Path) -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values: dict[str, Any] = {
            "storage_file_path": str(snapshot_path),
            "storage_save_interval": 0,
            "log_level": "warning",
            "log_format": "text",
            "log_use_colors": False,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def settings(make_settings: Callable[..., Settings]) -> Settings:
    return make_settings()


@pytest.fixture
def app(settings: Settings) -> FastAPI:
    return create_app(settings)


@pytest.fixture
async def client(app: FastAPI) -> AsyncIterator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http:
        yield http


async def seed(client: httpx.AsyncClient) -> None:
    """Service s1, middleware m1 and router r1 referencing both."""
    response = await client.post(f"{API}/services", json={"id": "s1", "url": "http://backend:80"})
    assert response.status_code == 201
    response = await client.post(
        f"{API}/middlewares",
        json={"id": "m1", "type": "stripPrefix", "config": {"prefixes": ["/api"]}},
    )
    assert response.status_code == 201
    response = await client.post(
        f"{API}/routers",
        json={
            "id": "r1",
            "rule": "Host(`example.com`)",
            "entryPoints": ["web"],
            "service": "s1",
            "middlewares": ["m1"],
        },
    )
    assert response.status_code == 201
