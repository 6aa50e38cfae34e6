from __future__ import annotations

import hmac
from typing import Iterable, Optional

API_KEY_MISSING = "API key missing"
API_KEY_INVALID = "Invalid API key"


def is_excluded(path: str, prefixes: Iterable[str]) -> bool:
    """Prefix match against the paths served without the API-wide key."""
    return any(path.startswith(prefix) for prefix in prefixes if prefix)


def check_api_key(provided: Optional[str], expected: str) -> Optional[str]:
    """Return the rejection message, or None when the key matches."""
    if not provided:
        return API_KEY_MISSING
    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        return API_KEY_INVALID
    return None


def mask_secret(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 4:
        return "*" * len(value)
    return f"{value[:2]}{'*' * (len(value) - 4)}{value[-2:]}"
