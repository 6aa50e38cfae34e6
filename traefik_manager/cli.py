from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict

import uvicorn

from traefik_manager.config import get_settings
from traefik_manager.security import mask_secret
from traefik_manager.services.persistence import SnapshotPersister
from traefik_manager.services.provider import render_dynamic_config
from traefik_manager.services.store import ResourceStore

_SECRET_FIELDS = ("auth_key", "provider_auth_key")


def _print_json(data: Dict[str, Any]) -> None:
    print(json.dumps(data, indent=2, sort_keys=True))


def cmd_serve(args: argparse.Namespace) -> int:
    settings = get_settings()
    uvicorn.run(
        "traefik_manager.main:create_app",
        factory=True,
        host=args.host or settings.server_host,
        port=args.port or settings.server_port,
        reload=args.reload,
        timeout_keep_alive=max(int(settings.server_read_timeout), 1),
        log_config=None,
    )
    return 0


def cmd_render(args: argparse.Namespace) -> int:
    path = args.snapshot or get_settings().storage_file_path
    store = ResourceStore()
    persister = SnapshotPersister(store, path)
    if not persister.load():
        raise RuntimeError(f"Snapshot file not found: {path}")
    _print_json(render_dynamic_config(*store.view()))
    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    values = get_settings().model_dump()
    for name in _SECRET_FIELDS:
        values[name] = mask_secret(values[name])
    _print_json(values)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="traefik-manager", description="Traefik dynamic configuration manager")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API server")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    serve.add_argument("--reload", action="store_true")
    serve.set_defaults(func=cmd_serve)

    render = sub.add_parser("render", help="Print the dynamic configuration for a snapshot file")
    render.add_argument("--snapshot", help="Snapshot path (defaults to STORAGE_FILE_PATH)")
    render.set_defaults(func=cmd_render)

    check_config = sub.add_parser("check-config", help="Validate settings and print effective values")
    check_config.set_defaults(func=cmd_check_config)

    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    try:
        exit_code = args.func(args)
    except Exception as exc:  # noqa: BLE001
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
