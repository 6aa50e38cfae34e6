from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from time import monotonic, perf_counter
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from traefik_manager.config import Settings, get_settings
from traefik_manager.logger import configure_logging, get_logger
from traefik_manager.metrics import observe_http_request
from traefik_manager.routes import middlewares, provider, routers, services, system
from traefik_manager.security import check_api_key, is_excluded
from traefik_manager.services.persistence import SnapshotPersister
from traefik_manager.services.store import ResourceStore, StoreError

logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    persister: SnapshotPersister = app.state.persister
    logger.info(
        "app.startup",
        "Starting app",
        version=settings.app_version,
        base_path=settings.server_base_path or "/",
        provider_path=settings.provider_path,
        auth_enabled=settings.auth_enabled,
        provider_auth_enabled=settings.provider_auth_enabled,
    )
    await persister.start()
    try:
        yield
    finally:
        await persister.stop()
        logger.info("app.shutdown", "Shutting down app")


def _error_body(message: str, **extra: Any) -> Dict[str, Any]:
    return {"error": message, **extra}


def _validation_message(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
    message = str(error.get("msg", "invalid input")).removeprefix("Value error, ")
    return f"{location}: {message}" if location else message


def _install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                "store.error",
                exc.message,
                path=request.url.path,
                error_type=type(exc).__name__,
            )
        else:
            logger.warning(
                "store.rejected",
                exc.message,
                path=request.url.path,
                error_type=type(exc).__name__,
                status_code=exc.status_code,
            )
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, **exc.payload))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"loc": [str(part) for part in error.get("loc", ())], "msg": _validation_message(error)}
            for error in exc.errors()
        ]
        message = details[0]["msg"] if details else "Invalid request body"
        logger.warning(
            "request.invalid",
            "Rejected malformed request",
            path=request.url.path,
            error=message,
        )
        return JSONResponse(status_code=400, content=_error_body(message, details=details))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(
            "request.unhandled",
            "Unhandled error",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return JSONResponse(status_code=500, content=_error_body("Internal server error"))


def _install_middlewares(app: FastAPI, settings: Settings) -> None:
    excluded_paths = settings.excluded_paths

    @app.middleware("http")
    async def request_deadline(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        timeout = settings.server_write_timeout
        if timeout <= 0:
            return await call_next(request)
        try:
            async with asyncio.timeout(timeout):
                return await call_next(request)
        except TimeoutError:
            logger.warning(
                "request.timeout",
                "Request exceeded its deadline",
                method=request.method,
                path=request.url.path,
                timeout_seconds=timeout,
            )
            return JSONResponse(status_code=504, content=_error_body("Request timed out"))

    @app.middleware("http")
    async def auth_guard(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if not settings.auth_enabled or request.method == "OPTIONS":
            return await call_next(request)
        path = request.url.path
        if is_excluded(path, excluded_paths):
            return await call_next(request)
        rejection = check_api_key(request.headers.get(settings.auth_header_name), settings.auth_key)
        if rejection is None:
            return await call_next(request)
        logger.warning("auth.rejected", "API request rejected", path=path, reason=rejection)
        return JSONResponse(status_code=401, content=_error_body(rejection))

    @app.middleware("http")
    async def request_logging(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid4())
        client: Optional[str] = None
        if request.client:
            client = request.client.host

        start = perf_counter()
        with logger.context(request_id=request_id):
            logger.debug(
                "request.start",
                "Started",
                method=request.method,
                path=request.url.path,
                client=client,
            )
            try:
                response = await call_next(request)
            except Exception as exc:
                duration_ms = (perf_counter() - start) * 1000
                logger.exception(
                    "request.error",
                    "Failed",
                    method=request.method,
                    path=request.url.path,
                    duration_ms=round(duration_ms, 1),
                    error_type=type(exc).__name__,
                )
                raise

            duration = perf_counter() - start
            logger.info(
                "request.complete",
                "Completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 1),
            )
            route = request.scope.get("route")
            observe_http_request(
                method=request.method,
                path=getattr(route, "path_format", "unmatched"),
                status=response.status_code,
                duration_seconds=duration,
            )

        response.headers["X-Request-ID"] = request_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=settings.cors_methods,
        allow_headers=settings.cors_headers,
        allow_credentials=settings.cors_allow_credentials,
        max_age=settings.cors_max_age,
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[ResourceStore] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(
        settings.log_level,
        settings.log_file_path or None,
        log_format=settings.log_format,
        use_colors=settings.log_use_colors,
    )

    store = store or ResourceStore()
    persister = SnapshotPersister(store, settings.storage_file_path, settings.storage_save_interval)
    persister.load()
    store.set_on_change(persister.request_save)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.persister = persister
    app.state.started_at = monotonic()

    _install_exception_handlers(app)
    _install_middlewares(app, settings)

    base_path = settings.server_base_path
    app.include_router(system.router, prefix=base_path)
    app.include_router(routers.router, prefix=base_path)
    app.include_router(services.router, prefix=base_path)
    app.include_router(middlewares.router, prefix=base_path)
    app.include_router(provider.router, prefix=settings.provider_path)
    return app
