from __future__ import annotations

from typing import Any

from pydantic import Field

from traefik_manager.schemas.common import WireModel


class Middleware(WireModel):
    id: str = ""
    type: str = ""
    config: Any = None


class MiddlewareCreate(Middleware):
    id: str = Field(min_length=1)
    type: str = Field(min_length=1)


class MiddlewareUpdate(Middleware):
    type: str = Field(min_length=1)
