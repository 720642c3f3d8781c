"""FastAPI application factory for the StateSet dataset service."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from stateset import __version__
from stateset.api.deps import init_service, reset_service
from stateset.api.middleware import RequestBodyLimitMiddleware, RequestTimingMiddleware
from stateset.api.routers import datasets, drafts, platform
from stateset.api.schemas import HealthResponse
from stateset.seed import apply_seed, load_seed
from stateset.service.dataset_service import DatasetService
from stateset.service.errors import DomainError
from stateset.settings import Settings
from stateset.storage.memory import InMemoryStorage
from stateset.storage.repository import Storage
from stateset.storage.sqlite import SqliteStorage

logger = logging.getLogger("stateset.api")


def build_storage(settings: Settings) -> Storage:
    """Instantiate the configured storage backend."""
    if settings.storage_backend == "sqlite":
        return SqliteStorage(settings.sqlite_path, busy_timeout_ms=settings.sqlite_busy_timeout_ms)
    return InMemoryStorage()


def build_service(settings: Settings) -> DatasetService:
    """Create the storage and service, applying the seed file when configured."""
    service = DatasetService(build_storage(settings), settings)
    if settings.seed_file:
        apply_seed(service.platform, load_seed(settings.seed_file))
    return service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Open/close the storage backend alongside the application."""
    settings: Settings = app.state.settings
    service = build_service(settings)
    init_service(service)
    logger.info("Dataset service ready (storage=%s)", settings.storage_backend)
    try:
        yield
    finally:
        service.storage.close()
        reset_service()


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status, content=exc.to_payload())


_HTTP_ERROR_KINDS = {
    401: "Unauthorized",
    403: "Forbidden",
    404: "NotFound",
    405: "MethodNotAllowed",
}


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "kind": _HTTP_ERROR_KINDS.get(exc.status_code, "HTTPError")},
        headers=exc.headers,
    )


async def _request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request",
            "kind": "InvalidRequest",
            "details": {"errors": jsonable_encoder(exc.errors())},
        },
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="StateSet",
        description="State-scoped dataset drafts, optimistic row edits and versioned publishing.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    # Middleware
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(RequestBodyLimitMiddleware, max_bytes=settings.max_body_bytes)

    app.add_exception_handler(DomainError, _domain_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError, _request_validation_handler  # type: ignore[arg-type]
    )

    app.include_router(platform.router)
    # Draft routes first: /datasets/draft must not match /datasets/{dataset_id}.
    app.include_router(drafts.router, prefix="/datasets", tags=["drafts"])
    app.include_router(datasets.router, prefix="/datasets", tags=["datasets"])

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    return app


def main() -> None:
    """Run the REST API server using settings from environment / .env file."""
    settings = Settings()

    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "StateSet API Server v%s starting (host=%s, port=%d, storage=%s)",
        __version__, settings.api_server_host, settings.effective_port, settings.storage_backend,
    )

    uvicorn.run(
        "stateset.api.app:create_app",
        factory=True,
        host=settings.api_server_host,
        port=settings.effective_port,
        log_level=settings.log_level.lower(),
    )
