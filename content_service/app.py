"""
Main FastAPI application for the content service.

Wires together:
- the primary store (DatabaseManager) and the snapshot cache
  (RedisSnapshotStore + CacheSynchronizer) behind one ModelManager,
- HTTP routers for authors, posts and edit suggestions,
- logging, request ids, metrics and the domain exception mapping.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .cache.redis_cache import RedisSnapshotStore
from .cache.synchronizer import CacheSynchronizer
from .config import settings
from .database import DatabaseManager
from .domain.exceptions import (
    AuthError,
    ConstraintViolation,
    ContentServiceException,
    EntityNotFound,
    InvalidFilterField,
    InvalidFilterOperator,
    InvalidTransition,
    StoreUnavailable,
    Timeout,
    ValidationException,
)
from .logging_config import bind_request_id, clear_request_id, setup_logging
from .metrics import metrics_endpoint, track_request_metrics
from .repositories import CACHED_ENTITIES, ModelManager
from .routers import author_router, edit_router, health_router, post_router

setup_logging(
    log_level=settings.LOG_LEVEL,
    service_name=settings.SERVICE_NAME,
    use_json=settings.LOG_JSON,
)
logger = structlog.get_logger(__name__)

# Most specific first: the first matching class decides the status
ERROR_STATUS = (
    (EntityNotFound, status.HTTP_404_NOT_FOUND),
    (InvalidFilterField, status.HTTP_400_BAD_REQUEST),
    (InvalidFilterOperator, status.HTTP_400_BAD_REQUEST),
    (ValidationException, 422),
    (ConstraintViolation, status.HTTP_409_CONFLICT),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (AuthError, status.HTTP_401_UNAUTHORIZED),
    (Timeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (StoreUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
)


def create_model_manager() -> ModelManager:
    """Build the store, cache and manager from settings."""
    db = DatabaseManager(
        settings.DATABASE_URL,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_timeout=settings.DATABASE_POOL_TIMEOUT,
        isolation_level=settings.DATABASE_ISOLATION_LEVEL,
        echo=settings.DEBUG,
    )
    store = RedisSnapshotStore(
        settings.REDIS_URL,
        prefix=settings.CACHE_KEY_PREFIX,
        socket_timeout=settings.CACHE_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.CACHE_SOCKET_TIMEOUT,
    )
    cache = CacheSynchronizer(
        store,
        db,
        CACHED_ENTITIES,
        refresh_mode=settings.CACHE_REFRESH_MODE,
        full_refresh_interval=settings.CACHE_FULL_REFRESH_INTERVAL_SECONDS,
    )
    return ModelManager(
        db,
        cache=cache,
        default_timeout=settings.operation_timeout,
        list_limit_default=settings.LIST_LIMIT_DEFAULT,
        list_limit_max=settings.LIST_LIMIT_MAX,
    )


def error_status(exc: ContentServiceException) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(mm: Optional[ModelManager] = None) -> FastAPI:
    """
    Create the application.

    Args:
        mm: Prebuilt ModelManager (tests); built from settings when None
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting Content Service...", port=settings.SERVICE_PORT)
        manager = mm or create_model_manager()
        await manager.startup(create_tables=settings.DATABASE_CREATE_TABLES)
        app.state.mm = manager
        logger.info("Content Service started successfully")

        yield

        logger.info("Shutting down Content Service...")
        await manager.shutdown()
        logger.info("Content Service shut down complete")

    app = FastAPI(
        title="Content Service",
        description="Authors, posts and edit suggestions",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        """Bind a request id to every log line of the request."""
        request_id = bind_request_id(request.headers.get("X-Request-ID"))
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.middleware("http")
    async def track_metrics(request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        track_request_metrics(
            request.method, endpoint, response.status_code, time.perf_counter() - start_time
        )
        return response

    @app.exception_handler(ContentServiceException)
    async def content_exception_handler(request: Request, exc: ContentServiceException):
        code = error_status(exc)
        log = logger.error if code >= 500 else logger.info
        log(
            "Request failed",
            path=request.url.path,
            method=request.method,
            error=type(exc).__name__,
            message=exc.message,
        )
        return JSONResponse(
            status_code=code,
            content={
                "success": False,
                "error": type(exc).__name__,
                "message": exc.message,
                "details": exc.details,
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            },
        )

    app.include_router(health_router.router)
    app.include_router(author_router.router)
    app.include_router(post_router.router)
    app.include_router(edit_router.router)
    app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], include_in_schema=False)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "content_service.app:app",
        host=settings.SERVICE_HOST,
        port=settings.SERVICE_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )
