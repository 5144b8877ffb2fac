# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the main application factory for the Academy API.
Run with:
    uvicorn academy.api.app:create_app --factory
"""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from academy import __version__
from academy.api.middleware import AuthMiddleware, ResponseCacheMiddleware
from academy.api.routes import health
from academy.api.v1 import router as v1_router
from academy.core.config import get_settings
from academy.core.exceptions import AcademyError
from academy.infrastructure.background import (
    setup_dramatiq,
    shutdown_dramatiq,
    start_scheduler,
    stop_scheduler,
)
from academy.infrastructure.cache import close_redis, init_cache
from academy.infrastructure.database.connection import (
    DatabaseError,
    close_database,
    create_tables,
    init_database,
)
from academy.utils.logging import bind_context, clear_context, setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Initializes and cleans up:
    - Database connections
    - Cache store (database or Redis backend)
    - Dramatiq broker
    - APScheduler for maintenance jobs
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info("Starting Academy API (environment: %s)", settings.environment)

    # =========================================================================
    # Startup
    # =========================================================================

    await init_database(settings)
    if settings.database.is_sqlite:
        await create_tables()
    logger.info("Database connections initialized")

    await init_cache(settings)

    try:
        setup_dramatiq()
        logger.info("Dramatiq broker initialized")
    except Exception as e:
        logger.warning("Failed to setup Dramatiq: %s", e)

    if settings.scheduler.enabled:
        try:
            await start_scheduler(settings.scheduler)
            logger.info("Scheduler started")
        except Exception as e:
            logger.warning("Failed to start scheduler: %s", e)

    yield

    # =========================================================================
    # Shutdown
    # =========================================================================

    await stop_scheduler()
    shutdown_dramatiq()

    if settings.cache.backend == "redis":
        await close_redis()

    await close_database()
    logger.info("Shutting down Academy API")


async def academy_error_handler(request: Request, exc: AcademyError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed: %s %s: %s", request.method, request.url.path, exc)
    else:
        logger.info("Request rejected: %s %s: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc, exc_info=True)
    return JSONResponse(
        status_code=503,
        content={"error": "database_unavailable", "message": "Database unavailable", "details": {}},
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "http_error", "message": exc.detail, "details": {}},
        headers=getattr(exc, "headers", None),
    )


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Bind a request id to every log line emitted while handling the request."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    bind_context(request_id=request_id, path=request.url.path)
    try:
        response = await call_next(request)
    finally:
        clear_context()
    response.headers["X-Request-ID"] = request_id
    return response


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Academy API",
        description="LMS backend: enrollment, progress, analytics and authentication",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    # =========================================================================
    # Exception handlers
    # =========================================================================
    app.add_exception_handler(AcademyError, academy_error_handler)
    app.add_exception_handler(DatabaseError, database_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    # =========================================================================
    # Middleware (order matters - last added is first executed)
    # =========================================================================

    # Response cache needs request.state.user, so it runs inside AuthMiddleware
    app.add_middleware(
        ResponseCacheMiddleware,
        path_prefixes=settings.cache.response_paths,
        ttl_seconds=settings.cache.response_ttl_seconds,
    )
    app.add_middleware(AuthMiddleware)
    app.middleware("http")(request_context_middleware)

    # =========================================================================
    # Routes
    # =========================================================================
    app.include_router(health.router, tags=["Health"])
    app.include_router(v1_router)

    return app
