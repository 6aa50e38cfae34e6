from __future__ import annotations

import asyncio
from typing import Any, Callable

import httpx
import pytest
from conftest import API, PROVIDER, seed

from traefik_manager.config import Settings
from traefik_manager.main import create_app

pytestmark = pytest.mark.anyio


async def test_create_then_reject_duplicate_middleware(client: httpx.AsyncClient) -> None:
    body = {"id": "m1", "type": "redirectScheme", "config": {"scheme": "https", "permanent": True}}

    first = await client.post(f"{API}/middlewares", json=body)
    assert first.status_code == 201
    assert first.json() == {"id": "m1", "created": True, "updated": False, "deleted": False}

    second = await client.post(f"{API}/middlewares", json=body)
    assert second.status_code == 409
    assert "already exists" in second.json()["error"]


async def test_router_with_missing_service_is_invalid_reference(client: httpx.AsyncClient) -> None:
    response = await client.post(
        f"{API}/routers",
        json={"id": "r1", "rule": "Host(`a`)", "service": {"id": "ghost"}},
    )
    assert response.status_code == 400
    assert "ghost" in response.json()["error"]

    listing = await client.get(f"{API}/routers")
    assert listing.json() == []


async def test_delete_while_referenced(client: httpx.AsyncClient) -> None:
    await seed(client)

    response = await client.delete(f"{API}/services/s1")
    assert response.status_code == 409
    assert response.json()["used_by"] == ["router:r1"]

    response = await client.delete(f"{API}/middlewares/m1")
    assert response.status_code == 409
    assert response.json()["used_by"] == ["router:r1"]

    response = await client.delete(f"{API}/routers/r1")
    assert response.status_code == 200
    assert response.json()["deleted"] is True

    response = await client.delete(f"{API}/services/s1")
    assert response.status_code == 200
    response = await client.delete(f"{API}/middlewares/m1")
    assert response.status_code == 200


@pytest.mark.parametrize(
    ("service", "middlewares"),
    [("s1", ["m1"]), ({"id": "s1"}, [{"id": "m1"}]), ("s1", [{"id": "m1"}])],
)
async def test_router_references_accept_both_shapes(
    client: httpx.AsyncClient,
    service: Any,
    middlewares: Any,
) -> None:
    await client.post(f"{API}/services", json={"id": "s1", "url": "http://b:80"})
    await client.post(f"{API}/middlewares", json={"id": "m1", "type": "addPrefix", "config": {"prefix": "/x"}})

    response = await client.post(
        f"{API}/routers",
        json={"id": "r1", "rule": "Host(`a`)", "service": service, "middlewares": middlewares},
    )
    assert response.status_code == 201

    stored = (await client.get(f"{API}/routers/r1")).json()
    assert stored["service"] == {"id": "s1"}
    assert stored["middlewares"] == [{"id": "m1"}]
    assert stored["entryPoints"] == []


async def test_get_missing_returns_404_error_body(client: httpx.AsyncClient) -> None:
    response = await client.get(f"{API}/services/ghost")
    assert response.status_code == 404
    assert response.json() == {"error": "Service 'ghost' not found"}


@pytest.mark.parametrize(
    "body",
    [
        {"id": "s1"},
        {"id": "s1", "url": ""},
        {"id": "s1", "loadBalancer": {"servers": []}},
        {"id": "s1", "loadBalancer": {"servers": [{"url": ""}]}},
        {"id": "s1", "loadBalancer": {"servers": [{"url": "http://a", "weight": 0}]}},
        {"id": "s1", "weighted": {"services": []}},
        {"id": "s1", "weighted": {"services": [{"name": {"id": ""}, "weight": 1}]}},
        {"id": "s1", "mirroring": {"service": "main", "mirrors": [{"name": "", "percent": 5}]}},
        {"id": "s1", "mirroring": {"service": "", "mirrors": [{"name": "x", "percent": 5}]}},
        {"id": "s1", "failover": {"service": "a"}},
        {"id": "s1", "url": "http://a", "failover": {"service": "a", "fallback": "b"}},
        {"url": "http://a"},
    ],
)
async def test_invalid_service_bodies_are_rejected(client: httpx.AsyncClient, body: dict) -> None:
    response = await client.post(f"{API}/services", json=body)
    assert response.status_code == 400
    payload = response.json()
    assert payload["error"]
    assert payload["details"]


async def test_undecodable_body_is_bad_request(client: httpx.AsyncClient) -> None:
    response = await client.post(
        f"{API}/middlewares",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400


@pytest.mark.parametrize(
    "body",
    [
        {"rule": "Host(`a`)", "service": "s1"},
        {"id": "r1", "service": "s1"},
        {"id": "r1", "rule": "Host(`a`)"},
        {"id": "r1", "rule": "Host(`a`)", "service": {"id": ""}},
    ],
)
async def test_router_required_fields(client: httpx.AsyncClient, body: dict) -> None:
    await client.post(f"{API}/services", json={"id": "s1", "url": "http://b:80"})
    response = await client.post(f"{API}/routers", json=body)
    assert response.status_code == 400


async def test_middleware_requires_type(client: httpx.AsyncClient) -> None:
    response = await client.post(f"{API}/middlewares", json={"id": "m1"})
    assert response.status_code == 400


async def test_put_rejects_mismatched_id_and_fills_empty_id(client: httpx.AsyncClient) -> None:
    await client.post(f"{API}/services", json={"id": "s1", "url": "http://old:80"})

    mismatch = await client.put(f"{API}/services/s1", json={"id": "s2", "url": "http://new:80"})
    assert mismatch.status_code == 400
    assert "does not match" in mismatch.json()["error"]

    filled = await client.put(f"{API}/services/s1", json={"url": "http://new:80"})
    assert filled.status_code == 200
    assert filled.json() == {"id": "s1", "created": False, "updated": True, "deleted": False}

    stored = (await client.get(f"{API}/services/s1")).json()
    assert stored == {"id": "s1", "url": "http://new:80"}


async def test_put_missing_resource_is_404(client: httpx.AsyncClient) -> None:
    response = await client.put(f"{API}/middlewares/ghost", json={"type": "addPrefix"})
    assert response.status_code == 404


async def test_router_update_preserves_service_and_replaces_middlewares(client: httpx.AsyncClient) -> None:
    await seed(client)

    response = await client.put(f"{API}/routers/r1", json={"rule": "Host(`b`)"})
    assert response.status_code == 200

    stored = (await client.get(f"{API}/routers/r1")).json()
    assert stored["rule"] == "Host(`b`)"
    assert stored["service"] == {"id": "s1"}
    assert stored["middlewares"] == []

    assert (await client.delete(f"{API}/middlewares/m1")).status_code == 200


async def test_router_update_with_missing_reference_is_rejected(client: httpx.AsyncClient) -> None:
    await seed(client)

    response = await client.put(
        f"{API}/routers/r1",
        json={"rule": "Host(`b`)", "service": "s1", "middlewares": ["ghost"]},
    )
    assert response.status_code == 400
    stored = (await client.get(f"{API}/routers/r1")).json()
    assert stored["middlewares"] == [{"id": "m1"}]


async def test_unknown_middleware_type_is_accepted(client: httpx.AsyncClient) -> None:
    response = await client.post(f"{API}/middlewares", json={"id": "x", "type": "teleport", "config": {"a": 1}})
    assert response.status_code == 201
    provider = (await client.get(PROVIDER)).json()
    assert provider["http"]["middlewares"]["x"] == {}


async def test_provider_serves_projection(client: httpx.AsyncClient) -> None:
    await seed(client)

    response = await client.get(PROVIDER)
    assert response.status_code == 200
    assert response.json() == {
        "http": {
            "routers": {
                "r1": {
                    "entryPoints": ["web"],
                    "rule": "Host(`example.com`)",
                    "service": "s1",
                    "middlewares": ["m1"],
                }
            },
            "services": {
                "s1": {
                    "loadBalancer": {
                        "servers": [{"url": "http://backend:80", "weight": 1, "preservePath": False}],
                        "passHostHeader": True,
                    }
                }
            },
            "middlewares": {"m1": {"stripPrefix": {"prefixes": ["/api"]}}},
        }
    }


async def test_health_reports_version_and_uptime(client: httpx.AsyncClient) -> None:
    response = await client.get(f"{API}/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "healthy"
    assert payload["version"] == "1.0.0"
    assert payload["uptime"].endswith("s")


async def test_request_id_is_echoed(client: httpx.AsyncClient) -> None:
    response = await client.get(f"{API}/routers", headers={"X-Request-ID": "abc-123"})
    assert response.headers["X-Request-ID"] == "abc-123"
    generated = await client.get(f"{API}/routers")
    assert generated.headers["X-Request-ID"]


async def test_metrics_endpoint(client: httpx.AsyncClient) -> None:
    await client.get(f"{API}/routers")
    response = await client.get(f"{API}/metrics")
    assert response.status_code == 200
    assert "traefik_manager_http_requests_total" in response.text


async def test_custom_base_path(make_settings: Callable[..., Settings]) -> None:
    app = create_app(make_settings(server_base_path="/manage/", metrics_enabled=False))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        assert (await client.get("/manage/health")).status_code == 200
        assert (await client.get("/manage/metrics")).status_code == 404
        assert (await client.get(f"{API}/health")).status_code == 404


async def test_state_survives_restart(make_settings: Callable[..., Settings]) -> None:
    settings = make_settings()
    first = create_app(settings)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=first), base_url="http://testserver") as client:
        await seed(client)
        before = {
            kind: (await client.get(f"{API}/{kind}")).json()
            for kind in ("routers", "services", "middlewares")
        }
    first.state.persister.save()

    second = create_app(settings)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=second), base_url="http://testserver") as client:
        after = {
            kind: (await client.get(f"{API}/{kind}")).json()
            for kind in ("routers", "services", "middlewares")
        }
    assert after == before
    assert len(after["routers"]) == 1


async def test_slow_request_hits_deadline(make_settings: Callable[..., Settings]) -> None:
    app = create_app(make_settings(server_write_timeout=0.05))

    @app.get(f"{API}/slow")
    async def slow() -> dict:
        await asyncio.sleep(0.5)
        return {"status": "late"}

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get(f"{API}/slow")
        assert response.status_code == 504
        assert response.json() == {"error": "Request timed out"}

        assert (await client.get(f"{API}/health")).status_code == 200
