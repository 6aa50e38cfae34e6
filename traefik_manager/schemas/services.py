from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import Field, field_validator, model_validator

from traefik_manager.schemas.common import (
    Duration,
    OptionalText,
    ResourceRef,
    WireModel,
)

SERVICE_FORMS = ("url", "load_balancer", "weighted", "mirroring", "failover")


class HealthCheck(WireModel):
    scheme: Optional[str] = None
    mode: Optional[str] = None
    path: Optional[str] = None
    method: Optional[str] = None
    status: Optional[int] = None
    port: Optional[int] = None
    interval: Duration = None
    timeout: Duration = None
    hostname: Optional[str] = None
    follow_redirects: Optional[bool] = None
    headers: Optional[Dict[str, str]] = None


class Cookie(WireModel):
    name: Optional[str] = None
    secure: Optional[bool] = None
    http_only: Optional[bool] = None
    same_site: Optional[str] = None
    max_age: Optional[int] = None
    path: Optional[str] = None


class Sticky(WireModel):
    cookie: Optional[Cookie] = None


class Server(WireModel):
    url: str
    weight: Optional[int] = Field(default=None, ge=1)
    preserve_path: Optional[bool] = None

    @field_validator("url")
    @classmethod
    def _url_required(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("server url is required")
        return value


class ResponseForwarding(WireModel):
    flush_interval: Duration = None


class LoadBalancer(WireModel):
    servers: List[Server] = Field(min_length=1)
    health_check: Optional[HealthCheck] = None
    sticky: Optional[Sticky] = None
    pass_host_header: Optional[bool] = None
    response_forwarding: Optional[ResponseForwarding] = None
    servers_transport: Optional[str] = None


class WeightedMember(WireModel):
    name: ResourceRef
    weight: Optional[int] = None

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: ResourceRef) -> ResourceRef:
        if not value:
            raise ValueError("weighted member requires a service id")
        return value


class Weighted(WireModel):
    services: List[WeightedMember] = Field(min_length=1)
    sticky: Optional[Sticky] = None
    health_check: Optional[HealthCheck] = None


class MirrorMember(WireModel):
    name: ResourceRef
    percent: int = 0

    @field_validator("name")
    @classmethod
    def _name_required(cls, value: ResourceRef) -> ResourceRef:
        if not value:
            raise ValueError("mirror requires a service id")
        return value


class Mirroring(WireModel):
    service: ResourceRef
    mirrors: List[MirrorMember] = Field(min_length=1)
    mirror_body: Optional[bool] = None
    max_body_size: Optional[int] = None
    health_check: Optional[HealthCheck] = None

    @field_validator("service")
    @classmethod
    def _main_service_required(cls, value: ResourceRef) -> ResourceRef:
        if not value:
            raise ValueError("mirroring service requires a main service id")
        return value


class Failover(WireModel):
    service: ResourceRef
    fallback: ResourceRef
    health_check: Optional[HealthCheck] = None

    @model_validator(mode="after")
    def _both_required(self) -> "Failover":
        if not self.service or not self.fallback:
            raise ValueError("failover service requires both service and fallback ids")
        return self


class Service(WireModel):
    """Stored service; at most one form is expected but precedence resolves extras."""

    id: str = ""
    service_type: Optional[str] = None
    url: OptionalText = None
    load_balancer: Optional[LoadBalancer] = None
    weighted: Optional[Weighted] = None
    mirroring: Optional[Mirroring] = None
    failover: Optional[Failover] = None

    def populated_forms(self) -> List[str]:
        return [form for form in SERVICE_FORMS if getattr(self, form)]


class _ServiceWrite(Service):
    @model_validator(mode="after")
    def _exactly_one_form(self) -> "_ServiceWrite":
        forms = self.populated_forms()
        if not forms:
            raise ValueError(
                "service must have either URL, LoadBalancer, Weighted, Mirroring, "
                "or Failover configuration"
            )
        if len(forms) > 1:
            raise ValueError(
                "service must have exactly one of URL, LoadBalancer, Weighted, Mirroring, "
                f"or Failover configuration (got {', '.join(forms)})"
            )
        return self


class ServiceCreate(_ServiceWrite):
    id: str = Field(min_length=1)


class ServiceUpdate(_ServiceWrite):
    pass
