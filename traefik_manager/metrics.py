from __future__ import annotations

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

_REQ_COUNT = Counter(
    "traefik_manager_http_requests_total",
    "Total HTTP requests",
    labelnames=("method", "path", "status"),
)
_REQ_LATENCY = Histogram(
    "traefik_manager_http_request_duration_seconds",
    "HTTP request latency seconds",
    labelnames=("method", "path"),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.3, 0.5, 1.0, 2.5, 5.0, 10.0),
)
_STORE_MUTATIONS = Counter(
    "traefik_manager_store_mutations_total",
    "Resource store mutations",
    labelnames=("kind", "action", "result"),
)
_SNAPSHOT_SAVES = Counter(
    "traefik_manager_snapshot_saves_total",
    "Snapshot writes",
    labelnames=("trigger", "result"),
)
_PROVIDER_RENDERS = Counter(
    "traefik_manager_provider_renders_total",
    "Dynamic configuration documents served to the gateway",
    labelnames=("result",),
)


def observe_http_request(*, method: str, path: str, status: int, duration_seconds: float) -> None:
    _REQ_COUNT.labels(method=method, path=path, status=str(status)).inc()
    _REQ_LATENCY.labels(method=method, path=path).observe(duration_seconds)


def record_store_mutation(*, kind: str, action: str, result: str) -> None:
    _STORE_MUTATIONS.labels(kind=kind, action=action, result=result).inc()


def record_snapshot_save(*, trigger: str, ok: bool) -> None:
    _SNAPSHOT_SAVES.labels(trigger=trigger, result="ok" if ok else "error").inc()


def record_provider_render(*, ok: bool) -> None:
    _PROVIDER_RENDERS.labels(result="ok" if ok else "error").inc()


def render_metrics() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
