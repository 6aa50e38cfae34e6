from __future__ import annotations

from typing import Annotated, List, Optional

from pydantic import Field, field_validator

from traefik_manager.schemas.common import NullableList, ResourceRef, WireModel


class TLSDomain(WireModel):
    main: str = ""
    sans: Annotated[List[str], NullableList] = Field(default_factory=list)


class RouterTLS(WireModel):
    options: Optional[str] = None
    cert_resolver: Optional[str] = None
    domains: Annotated[List[TLSDomain], NullableList] = Field(default_factory=list)


class Observability(WireModel):
    access_logs: Optional[bool] = None
    tracing: Optional[bool] = None
    metrics: Optional[bool] = None


class Router(WireModel):
    id: str = ""
    rule: str = ""
    entry_points: Annotated[List[str], NullableList] = Field(default_factory=list)
    service: ResourceRef = Field(default_factory=ResourceRef)
    middlewares: Annotated[List[ResourceRef], NullableList] = Field(default_factory=list)
    rule_syntax: Optional[str] = None
    priority: Optional[int] = None
    tls: Optional[RouterTLS] = None
    observability: Optional[Observability] = None

    def middleware_ids(self) -> List[str]:
        return [ref.id for ref in self.middlewares]


class RouterCreate(Router):
    id: str = Field(min_length=1)
    rule: str = Field(min_length=1)
    service: ResourceRef

    @field_validator("service")
    @classmethod
    def _service_required(cls, value: ResourceRef) -> ResourceRef:
        if not value:
            raise ValueError("service id is required")
        return value


class RouterUpdate(Router):
    rule: str = Field(min_length=1)
