from __future__ import annotations

from fastapi import HTTPException


def reconcile_path_id(path_id: str, body_id: str) -> str:
    """The path id wins; a body id may only repeat it or be left empty."""
    if body_id and body_id != path_id:
        raise HTTPException(
            status_code=400,
            detail=f"ID in body '{body_id}' does not match ID in path '{path_id}'",
        )
    return path_id


def format_uptime(seconds: float) -> str:
    """Render as ``1h2m3s`` with the largest units first."""
    total = max(int(seconds), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"
