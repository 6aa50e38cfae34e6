from __future__ import annotations

import threading
from collections import defaultdict
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Set, Tuple, Type

from traefik_manager.metrics import record_store_mutation
from traefik_manager.schemas.common import WireModel
from traefik_manager.schemas.middlewares import Middleware
from traefik_manager.schemas.routers import Router
from traefik_manager.schemas.services import Service


class ResourceKind(str, Enum):
    ROUTER = "router"
    SERVICE = "service"
    MIDDLEWARE = "middleware"

    @property
    def plural(self) -> str:
        return f"{self.value}s"

    @property
    def label(self) -> str:
        return self.value.capitalize()


_MODELS: Dict[ResourceKind, Type[WireModel]] = {
    ResourceKind.ROUTER: Router,
    ResourceKind.SERVICE: Service,
    ResourceKind.MIDDLEWARE: Middleware,
}


class StoreError(RuntimeError):
    status_code = 500

    def __init__(self, message: str, **payload: Any) -> None:
        super().__init__(message)
        self.message = message
        self.payload = payload


class NotFoundError(StoreError):
    status_code = 404

    def __init__(self, kind: ResourceKind, resource_id: str) -> None:
        super().__init__(f"{kind.label} '{resource_id}' not found")
        self.kind = kind
        self.resource_id = resource_id


class AlreadyExistsError(StoreError):
    status_code = 409

    def __init__(self, kind: ResourceKind, resource_id: str) -> None:
        super().__init__(f"{kind.label} '{resource_id}' already exists")
        self.kind = kind
        self.resource_id = resource_id


class InvalidReferenceError(StoreError):
    status_code = 400

    def __init__(self, kind: ResourceKind, resource_id: str) -> None:
        super().__init__(f"Referenced {kind.value} '{resource_id}' does not exist")
        self.kind = kind
        self.resource_id = resource_id


class InUseError(StoreError):
    status_code = 409

    def __init__(self, kind: ResourceKind, resource_id: str, used_by: List[str]) -> None:
        super().__init__(f"{kind.label} '{resource_id}' is in use", used_by=list(used_by))
        self.kind = kind
        self.resource_id = resource_id
        self.used_by = list(used_by)


class _ReadWriteLock:
    """Many readers or one writer; waiting writers block new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writing or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


def _router_ref(router_id: str) -> str:
    return f"router:{router_id}"


class ResourceStore:
    """In-memory aggregate of routers, services and middlewares.

    Every operation runs under a single readers-writer lock. Mutations hold the
    write side for the whole check-and-mutate sequence, so a router can never
    be inserted against a service or middleware that disappears concurrently.
    Records handed in or out are copies; callers cannot alias stored state.
    """

    def __init__(self, on_change: Optional[Callable[[], None]] = None) -> None:
        self._lock = _ReadWriteLock()
        self._records: Dict[ResourceKind, Dict[str, Any]] = {kind: {} for kind in ResourceKind}
        self._routers_by_service: Dict[str, Set[str]] = defaultdict(set)
        self._routers_by_middleware: Dict[str, Set[str]] = defaultdict(set)
        self._on_change = on_change

    def set_on_change(self, callback: Optional[Callable[[], None]]) -> None:
        self._on_change = callback

    # reads

    def list(self, kind: ResourceKind) -> List[Any]:
        with self._lock.read():
            records = self._records[kind]
            return [records[key].model_copy(deep=True) for key in sorted(records)]

    def get(self, kind: ResourceKind, resource_id: str) -> Any:
        with self._lock.read():
            record = self._records[kind].get(resource_id)
            if record is None:
                raise NotFoundError(kind, resource_id)
            return record.model_copy(deep=True)

    def exists(self, kind: ResourceKind, resource_id: str) -> bool:
        with self._lock.read():
            return resource_id in self._records[kind]

    def in_use(self, kind: ResourceKind, resource_id: str) -> Tuple[bool, List[str]]:
        with self._lock.read():
            used_by = self._referrers(kind, resource_id)
        return bool(used_by), used_by

    def view(self) -> Tuple[List[Router], List[Service], List[Middleware]]:
        """Consistent copy of all three kinds taken under one read lock."""
        with self._lock.read():
            return (
                self._copy_all(ResourceKind.ROUTER),
                self._copy_all(ResourceKind.SERVICE),
                self._copy_all(ResourceKind.MIDDLEWARE),
            )

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock.read():
            return {
                kind.plural: {
                    key: record.model_dump(mode="json", by_alias=True, exclude_none=True)
                    for key, record in sorted(self._records[kind].items())
                }
                for kind in ResourceKind
            }

    def counts(self) -> Dict[str, int]:
        with self._lock.read():
            return {kind.plural: len(self._records[kind]) for kind in ResourceKind}

    # writes

    def create(self, kind: ResourceKind, record: WireModel) -> Any:
        stored = self._coerce(kind, record)
        with self._mutation(kind, "create"):
            with self._lock.write():
                records = self._records[kind]
                if stored.id in records:
                    raise AlreadyExistsError(kind, stored.id)
                if kind is ResourceKind.ROUTER:
                    self._check_router_refs(stored)
                    self._index_router(stored)
                records[stored.id] = stored
                result = stored.model_copy(deep=True)
        self._notify()
        return result

    def update(self, kind: ResourceKind, resource_id: str, record: WireModel) -> Any:
        stored = self._coerce(kind, record)
        stored.id = resource_id
        with self._mutation(kind, "update"):
            with self._lock.write():
                records = self._records[kind]
                existing = records.get(resource_id)
                if existing is None:
                    raise NotFoundError(kind, resource_id)
                if kind is ResourceKind.ROUTER:
                    if not stored.service:
                        stored.service = existing.service.model_copy()
                    self._check_router_refs(stored)
                    self._unindex_router(existing)
                    self._index_router(stored)
                records[resource_id] = stored
                result = stored.model_copy(deep=True)
        self._notify()
        return result

    def delete(self, kind: ResourceKind, resource_id: str) -> None:
        with self._mutation(kind, "delete"):
            with self._lock.write():
                records = self._records[kind]
                existing = records.get(resource_id)
                if existing is None:
                    raise NotFoundError(kind, resource_id)
                used_by = self._referrers(kind, resource_id)
                if used_by:
                    raise InUseError(kind, resource_id, used_by)
                if kind is ResourceKind.ROUTER:
                    self._unindex_router(existing)
                del records[resource_id]
        self._notify()

    def load(self, document: Mapping[str, Any]) -> None:
        """Replace the aggregate with a persisted document.

        Missing maps count as empty and a record without an ``id`` takes its map
        key. Router references are indexed but not re-validated.
        """
        loaded: Dict[ResourceKind, Dict[str, Any]] = {}
        for kind in ResourceKind:
            raw = document.get(kind.plural) or {}
            if not isinstance(raw, Mapping):
                raise ValueError(f"'{kind.plural}' must be an object")
            model = _MODELS[kind]
            entries: Dict[str, Any] = {}
            for key, value in raw.items():
                if not isinstance(value, Mapping):
                    raise ValueError(f"{kind.value} '{key}' must be an object")
                record = model.model_validate(dict(value))
                if not record.id:
                    record.id = key
                entries[record.id] = record
            loaded[kind] = entries

        with self._lock.write():
            self._records = loaded
            self._routers_by_service.clear()
            self._routers_by_middleware.clear()
            for router in loaded[ResourceKind.ROUTER].values():
                self._index_router(router)

    # internals

    def _copy_all(self, kind: ResourceKind) -> List[Any]:
        records = self._records[kind]
        return [records[key].model_copy(deep=True) for key in sorted(records)]

    def _coerce(self, kind: ResourceKind, record: WireModel) -> Any:
        model = _MODELS[kind]
        return model.model_validate(record.model_dump(exclude_none=True))

    def _check_router_refs(self, router: Router) -> None:
        if router.service.id not in self._records[ResourceKind.SERVICE]:
            raise InvalidReferenceError(ResourceKind.SERVICE, router.service.id)
        middlewares = self._records[ResourceKind.MIDDLEWARE]
        for middleware_id in router.middleware_ids():
            if middleware_id not in middlewares:
                raise InvalidReferenceError(ResourceKind.MIDDLEWARE, middleware_id)

    def _index_router(self, router: Router) -> None:
        self._routers_by_service[router.service.id].add(router.id)
        for middleware_id in router.middleware_ids():
            self._routers_by_middleware[middleware_id].add(router.id)

    def _unindex_router(self, router: Router) -> None:
        _discard(self._routers_by_service, router.service.id, router.id)
        for middleware_id in router.middleware_ids():
            _discard(self._routers_by_middleware, middleware_id, router.id)

    def _referrers(self, kind: ResourceKind, resource_id: str) -> List[str]:
        if kind is ResourceKind.SERVICE:
            index = self._routers_by_service
        elif kind is ResourceKind.MIDDLEWARE:
            index = self._routers_by_middleware
        else:
            return []
        return [_router_ref(router_id) for router_id in sorted(index.get(resource_id, ()))]

    @contextmanager
    def _mutation(self, kind: ResourceKind, action: str) -> Iterator[None]:
        try:
            yield
        except StoreError as exc:
            record_store_mutation(kind=kind.value, action=action, result=type(exc).__name__)
            raise
        record_store_mutation(kind=kind.value, action=action, result="ok")

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()


def _discard(index: Dict[str, Set[str]], key: str, router_id: str) -> None:
    members = index.get(key)
    if members is None:
        return
    members.discard(router_id)
    if not members:
        del index[key]
