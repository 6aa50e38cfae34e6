"""Translation of stored resources into Traefik's HTTP dynamic configuration.

Everything here is pure: inputs are read, never mutated, and the same input
always yields the same document.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from traefik_manager.schemas.middlewares import Middleware
from traefik_manager.schemas.routers import Router
from traefik_manager.schemas.services import HealthCheck, Service, Sticky

# A field kind is either a scalar kind name or a nested field table.
FieldKind = Union[str, Mapping[str, Any]]

_MISSING = object()

_IP_STRATEGY: Dict[str, FieldKind] = {
    "depth": "int",
    "excludedIPs": "strs",
    "ipv6Subnet": "int",
}
_SOURCE_CRITERION: Dict[str, FieldKind] = {
    "ipStrategy": _IP_STRATEGY,
    "requestHeaderName": "str",
    "requestHost": "bool",
}
_FORWARD_AUTH_TLS: Dict[str, FieldKind] = {
    "ca": "str",
    "cert": "str",
    "key": "str",
    "insecureSkipVerify": "bool",
    "caOptional": "bool",
}
_CERT_ISSUER: Dict[str, FieldKind] = {
    name: "bool"
    for name in (
        "country",
        "province",
        "locality",
        "organization",
        "commonName",
        "serialNumber",
        "domainComponent",
    )
}
_CERT_SUBJECT: Dict[str, FieldKind] = {**_CERT_ISSUER, "organizationalUnit": "bool"}
_CERT_INFO: Dict[str, FieldKind] = {
    "notAfter": "bool",
    "notBefore": "bool",
    "sans": "bool",
    "serialNumber": "bool",
    "subject": _CERT_SUBJECT,
    "issuer": _CERT_ISSUER,
}
_HEADERS: Dict[str, FieldKind] = {
    "customRequestHeaders": "strmap",
    "customResponseHeaders": "strmap",
    "accessControlAllowCredentials": "bool",
    "accessControlAllowHeaders": "strs",
    "accessControlAllowMethods": "strs",
    "accessControlAllowOriginList": "strs",
    "accessControlAllowOriginListRegex": "strs",
    "accessControlExposeHeaders": "strs",
    "accessControlMaxAge": "int",
    "addVaryHeader": "bool",
    "allowedHosts": "strs",
    "hostsProxyHeaders": "strs",
    "sslProxyHeaders": "strmap",
    "stsSeconds": "int",
    "stsIncludeSubdomains": "bool",
    "stsPreload": "bool",
    "forceSTSHeader": "bool",
    "frameDeny": "bool",
    "customFrameOptionsValue": "str",
    "contentTypeNosniff": "bool",
    "browserXssFilter": "bool",
    "customBrowserXSSValue": "str",
    "contentSecurityPolicy": "str",
    "contentSecurityPolicyReportOnly": "str",
    "publicKey": "str",
    "referrerPolicy": "str",
    "permissionsPolicy": "str",
    "isDevelopment": "bool",
    "featurePolicy": "str",
    "sslRedirect": "bool",
    "sslTemporaryRedirect": "bool",
    "sslHost": "str",
    "sslForceHost": "bool",
}

MIDDLEWARE_FIELDS: Dict[str, FieldKind] = {
    "addPrefix": {"prefix": "str"},
    "basicAuth": {
        "users": "strs",
        "usersFile": "str",
        "realm": "str",
        "removeHeader": "bool",
        "headerField": "str",
    },
    "buffering": {
        "maxRequestBodyBytes": "int",
        "memRequestBodyBytes": "int",
        "maxResponseBodyBytes": "int",
        "memResponseBodyBytes": "int",
        "retryExpression": "str",
    },
    "chain": {"middlewares": "refs"},
    "circuitBreaker": {
        "expression": "str",
        "checkPeriod": "duration",
        "fallbackDuration": "duration",
        "recoveryDuration": "duration",
        "responseCode": "int",
    },
    "compress": {
        "excludedContentTypes": "strs",
        "includedContentTypes": "strs",
        "minResponseBodyBytes": "int",
        "encodings": "strs",
        "defaultEncoding": "str",
    },
    "contentType": {"autoDetect": "bool"},
    "digestAuth": {
        "users": "strs",
        "usersFile": "str",
        "removeHeader": "bool",
        "realm": "str",
        "headerField": "str",
    },
    "errors": {"status": "strs", "service": "ref", "query": "str"},
    "forwardAuth": {
        "address": "str",
        "tls": _FORWARD_AUTH_TLS,
        "trustForwardHeader": "bool",
        "authResponseHeaders": "strs",
        "authResponseHeadersRegex": "str",
        "authRequestHeaders": "strs",
        "addAuthCookiesToResponse": "strs",
        "headerField": "str",
        "forwardBody": "bool",
        "maxBodySize": "int",
        "preserveLocationHeader": "bool",
    },
    "grpcWeb": {"allowOrigins": "strs"},
    "headers": _HEADERS,
    "ipAllowList": {
        "sourceRange": "strs",
        "ipStrategy": _IP_STRATEGY,
        "rejectStatusCode": "int",
    },
    "ipWhiteList": {"sourceRange": "strs", "ipStrategy": _IP_STRATEGY},
    "inFlightReq": {"amount": "int", "sourceCriterion": _SOURCE_CRITERION},
    "passTLSClientCert": {"pem": "bool", "info": _CERT_INFO},
    "plugin": "map",
    "rateLimit": {
        "average": "int",
        "period": "duration",
        "burst": "int",
        "sourceCriterion": _SOURCE_CRITERION,
    },
    "redirectRegex": {"regex": "str", "replacement": "str", "permanent": "bool"},
    "redirectScheme": {"scheme": "str", "port": "str", "permanent": "bool"},
    "replacePath": {"path": "str"},
    "replacePathRegex": {"regex": "str", "replacement": "str"},
    "retry": {"attempts": "int", "initialInterval": "duration"},
    "stripPrefix": {"prefixes": "strs", "forceSlash": "bool"},
    "stripPrefixRegex": {"regex": "strs"},
}


def _number_text(value: Union[int, float]) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _ref_id(value: Any) -> Any:
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping) and isinstance(value.get("id"), str):
        return value["id"]
    return _MISSING


def _convert(kind: FieldKind, value: Any) -> Any:
    """Project one config value; returns ``_MISSING`` when it has the wrong shape."""
    if isinstance(kind, Mapping):
        if not isinstance(value, Mapping):
            return _MISSING
        return _project_fields(kind, value)
    if kind == "str":
        return value if isinstance(value, str) else _MISSING
    if kind == "bool":
        return value if isinstance(value, bool) else _MISSING
    if kind == "int":
        if isinstance(value, bool):
            return _MISSING
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return _MISSING
    if kind == "duration":
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return _number_text(value)
        return _MISSING
    if kind == "strs":
        if not isinstance(value, list):
            return _MISSING
        return [item for item in value if isinstance(item, str)]
    if kind == "strmap":
        if not isinstance(value, Mapping):
            return _MISSING
        return {str(key): item for key, item in value.items() if isinstance(item, str)}
    if kind == "map":
        return copy.deepcopy(dict(value)) if isinstance(value, Mapping) else _MISSING
    if kind == "ref":
        return _ref_id(value)
    if kind == "refs":
        if not isinstance(value, list):
            return _MISSING
        ids = (_ref_id(item) for item in value)
        return [item for item in ids if item is not _MISSING]
    raise ValueError(f"unknown field kind '{kind}'")


def _project_fields(fields: Mapping[str, FieldKind], config: Mapping[str, Any]) -> Dict[str, Any]:
    projected: Dict[str, Any] = {}
    for name, kind in fields.items():
        if name not in config:
            continue
        value = _convert(kind, config[name])
        if value is not _MISSING:
            projected[name] = value
    return projected


def project_middleware(middleware: Middleware) -> Dict[str, Any]:
    fields = MIDDLEWARE_FIELDS.get(middleware.type)
    if fields is None or not isinstance(middleware.config, Mapping):
        return {}
    return {middleware.type: _convert(fields, middleware.config)}


def project_health_check(health_check: HealthCheck) -> Dict[str, Any]:
    projected: Dict[str, Any] = {}
    for attr in ("scheme", "mode", "path", "method", "status", "port", "interval", "timeout", "hostname"):
        value = getattr(health_check, attr)
        if value is None or value == "":
            continue
        projected[attr] = value
    projected["followRedirects"] = bool(health_check.follow_redirects)
    if health_check.headers:
        projected["headers"] = dict(health_check.headers)
    return projected


def project_sticky(sticky: Sticky) -> Optional[Dict[str, Any]]:
    cookie = sticky.cookie
    if cookie is None:
        return None
    projected: Dict[str, Any] = {}
    if cookie.name:
        projected["name"] = cookie.name
    projected["secure"] = bool(cookie.secure)
    projected["httpOnly"] = bool(cookie.http_only)
    if cookie.same_site:
        projected["sameSite"] = cookie.same_site
    if cookie.max_age is not None:
        projected["maxAge"] = cookie.max_age
    if cookie.path:
        projected["path"] = cookie.path
    return {"cookie": projected}


def _attach_sticky(target: Dict[str, Any], sticky: Optional[Sticky]) -> None:
    if sticky is None:
        return
    projected = project_sticky(sticky)
    if projected is not None:
        target["sticky"] = projected


def _attach_health_check(target: Dict[str, Any], health_check: Optional[HealthCheck]) -> None:
    if health_check is not None:
        target["healthCheck"] = project_health_check(health_check)


def project_service(service: Service) -> Dict[str, Any]:
    """Emit exactly one form; precedence is url, loadBalancer, weighted, mirroring, failover."""
    if service.url:
        return {
            "loadBalancer": {
                "servers": [{"url": service.url, "weight": 1, "preservePath": False}],
                "passHostHeader": True,
            }
        }

    if service.load_balancer is not None:
        lb = service.load_balancer
        balancer: Dict[str, Any] = {
            "servers": [
                {
                    "url": server.url,
                    "weight": server.weight if server.weight and server.weight > 0 else 1,
                    "preservePath": bool(server.preserve_path),
                }
                for server in lb.servers
            ]
        }
        _attach_health_check(balancer, lb.health_check)
        _attach_sticky(balancer, lb.sticky)
        balancer["passHostHeader"] = True
        if lb.response_forwarding is not None and lb.response_forwarding.flush_interval:
            balancer["responseForwarding"] = {
                "flushInterval": lb.response_forwarding.flush_interval
            }
        if lb.servers_transport:
            balancer["serversTransport"] = lb.servers_transport
        return {"loadBalancer": balancer}

    if service.weighted is not None:
        members: List[Dict[str, Any]] = []
        for member in service.weighted.services:
            item: Dict[str, Any] = {"name": member.name.id}
            if member.weight is not None:
                item["weight"] = member.weight
            members.append(item)
        weighted: Dict[str, Any] = {"services": members}
        _attach_sticky(weighted, service.weighted.sticky)
        _attach_health_check(weighted, service.weighted.health_check)
        return {"weighted": weighted}

    if service.mirroring is not None:
        mirroring = service.mirroring
        mirrored: Dict[str, Any] = {
            "service": mirroring.service.id,
            "mirrors": [
                {"name": mirror.name.id, "percent": mirror.percent} for mirror in mirroring.mirrors
            ],
            "mirrorBody": mirroring.mirror_body is not False,
        }
        if mirroring.max_body_size is not None and mirroring.max_body_size > 0:
            mirrored["maxBodySize"] = mirroring.max_body_size
        _attach_health_check(mirrored, mirroring.health_check)
        return {"mirroring": mirrored}

    if service.failover is not None:
        failover: Dict[str, Any] = {
            "service": service.failover.service.id,
            "fallback": service.failover.fallback.id,
        }
        _attach_health_check(failover, service.failover.health_check)
        return {"failover": failover}

    return {}


def project_router(router: Router) -> Dict[str, Any]:
    projected: Dict[str, Any] = {}
    if router.entry_points:
        projected["entryPoints"] = list(router.entry_points)
    projected["rule"] = router.rule
    if router.rule_syntax:
        projected["ruleSyntax"] = router.rule_syntax
    if router.priority:
        projected["priority"] = router.priority
    projected["service"] = router.service.id
    middleware_ids = router.middleware_ids()
    if middleware_ids:
        projected["middlewares"] = middleware_ids

    if router.tls is not None:
        tls: Dict[str, Any] = {}
        if router.tls.options:
            tls["options"] = router.tls.options
        if router.tls.cert_resolver:
            tls["certResolver"] = router.tls.cert_resolver
        if router.tls.domains:
            tls["domains"] = [
                {"main": domain.main, "sans": list(domain.sans)} for domain in router.tls.domains
            ]
        projected["tls"] = tls

    if router.observability is not None:
        projected["observability"] = {
            "accessLogs": bool(router.observability.access_logs),
            "tracing": bool(router.observability.tracing),
            "metrics": bool(router.observability.metrics),
        }
    return projected


def render_dynamic_config(
    routers: Iterable[Router],
    services: Iterable[Service],
    middlewares: Iterable[Middleware],
) -> Dict[str, Any]:
    return {
        "http": {
            "routers": {router.id: project_router(router) for router in routers},
            "services": {service.id: project_service(service) for service in services},
            "middlewares": {
                middleware.id: project_middleware(middleware) for middleware in middlewares
            },
        }
    }
