from __future__ import annotations

from typing import Any, AsyncIterator, Callable

import httpx
import pytest
from conftest import API, PROVIDER

from traefik_manager.config import Settings
from traefik_manager.main import create_app
from traefik_manager.security import check_api_key, is_excluded

pytestmark = pytest.mark.anyio


@pytest.fixture
def gated_client(make_settings: Callable[..., Settings]) -> Callable[..., Any]:
    def _client(**overrides: Any) -> httpx.AsyncClient:
        app = create_app(make_settings(**overrides))
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")

    return _client


@pytest.fixture
async def api_gated(gated_client: Callable[..., httpx.AsyncClient]) -> AsyncIterator[httpx.AsyncClient]:
    async with gated_client(auth_enabled=True, auth_key="api-secret") as client:
        yield client


async def test_api_gate_requires_key(api_gated: httpx.AsyncClient) -> None:
    missing = await api_gated.get(f"{API}/routers")
    assert missing.status_code == 401
    assert missing.json() == {"error": "API key missing"}

    wrong = await api_gated.get(f"{API}/routers", headers={"X-API-Key": "nope"})
    assert wrong.status_code == 401
    assert wrong.json() == {"error": "Invalid API key"}

    ok = await api_gated.get(f"{API}/routers", headers={"X-API-Key": "api-secret"})
    assert ok.status_code == 200


async def test_health_and_provider_bypass_api_gate(api_gated: httpx.AsyncClient) -> None:
    assert (await api_gated.get(f"{API}/health")).status_code == 200
    assert (await api_gated.get(PROVIDER)).status_code == 200


async def test_custom_header_and_extra_exclusions(gated_client: Callable[..., httpx.AsyncClient]) -> None:
    async with gated_client(
        auth_enabled=True,
        auth_key="k",
        auth_header_name="Authorization",
        auth_exclude_paths="/api/v1/metrics",
    ) as client:
        assert (await client.get(f"{API}/routers", headers={"X-API-Key": "k"})).status_code == 401
        assert (await client.get(f"{API}/routers", headers={"Authorization": "k"})).status_code == 200
        assert (await client.get(f"{API}/metrics")).status_code == 200


async def test_provider_gate(gated_client: Callable[..., httpx.AsyncClient]) -> None:
    async with gated_client(provider_auth_enabled=True, provider_auth_key="k") as client:
        assert (await client.get(PROVIDER, headers={"X-API-Key": "k"})).status_code == 200

        wrong = await client.get(PROVIDER, headers={"X-API-Key": "x"})
        assert wrong.status_code == 401
        assert wrong.json() == {"error": "Invalid API key"}

        absent = await client.get(PROVIDER)
        assert absent.status_code == 401
        assert absent.json() == {"error": "API key missing"}

        assert (await client.get(f"{API}/routers")).status_code == 200


async def test_provider_gate_wins_over_api_key(gated_client: Callable[..., httpx.AsyncClient]) -> None:
    async with gated_client(
        auth_enabled=True,
        auth_key="api-key",
        provider_auth_enabled=True,
        provider_auth_key="provider-key",
    ) as client:
        response = await client.get(PROVIDER, headers={"X-API-Key": "api-key"})
        assert response.status_code == 401

        response = await client.get(PROVIDER, headers={"X-API-Key": "provider-key"})
        assert response.status_code == 200


async def test_provider_gate_with_separate_header(gated_client: Callable[..., httpx.AsyncClient]) -> None:
    async with gated_client(
        auth_enabled=True,
        auth_key="api-key",
        provider_auth_enabled=True,
        provider_auth_header_name="X-Provider-Key",
        provider_auth_key="provider-key",
    ) as client:
        response = await client.get(
            PROVIDER,
            headers={"X-API-Key": "api-key", "X-Provider-Key": "provider-key"},
        )
        assert response.status_code == 200


async def test_cors_preflight_is_not_gated(api_gated: httpx.AsyncClient) -> None:
    response = await api_gated.options(
        f"{API}/routers",
        headers={"Origin": "http://ui.example.com", "Access-Control-Request-Method": "GET"},
    )
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_is_excluded_uses_prefix_match() -> None:
    assert is_excluded("/api/v1/health", ["/api/v1/health"])
    assert is_excluded("/traefik/provider/extra", ["/traefik/provider"])
    assert not is_excluded("/api/v1/routers", ["/api/v1/health", ""])


def test_check_api_key() -> None:
    assert check_api_key(None, "k") == "API key missing"
    assert check_api_key("", "k") == "API key missing"
    assert check_api_key("x", "k") == "Invalid API key"
    assert check_api_key("k", "k") is None
