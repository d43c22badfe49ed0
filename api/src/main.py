"""
FastAPI application entry point for the Entity API.

This module provides the main FastAPI application with:
- Entity CRUD endpoints
- Health and readiness endpoints
- Request/response logging with correlation IDs
- Prometheus metrics
- CORS and security headers
- Database connection pool management
- Graceful startup and shutdown
"""

import structlog
import uvicorn
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Dict, Any, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from prometheus_client import CONTENT_TYPE_LATEST

from api.src.config import get_settings, Settings
from api.src.dependencies import init_db_pool, close_db_pool, peek_db_pool, get_correlation_id
from api.src.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware
from api.src.repositories.entity_repo import EntityRepository
from api.src.routers.entities import router as entities_router
from shared.logging import configure_logging
from shared.metrics import ApiMetrics, get_metrics_handler

logger = structlog.get_logger(__name__)


# ============================================================================
# Lifespan Management
# ============================================================================

def build_lifespan(settings: Settings):
    """Create the lifespan handler bound to the given settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        Application lifespan manager for startup and shutdown events.

        Handles:
        - Database connection pool initialization
        - Schema creation
        - Graceful shutdown and resource cleanup
        """
        logger.info(
            "application_starting",
            app_name=settings.app_name,
            version=settings.app_version,
            environment=settings.environment
        )

        try:
            pool = await init_db_pool(settings)

            async with pool.acquire() as conn:
                version = await conn.fetchval("SELECT version()")
                logger.info("database_connected", postgres_version=version)

            if settings.database_create_schema:
                await EntityRepository(pool).ensure_schema()

            metrics: Optional[ApiMetrics] = getattr(app.state, "metrics", None)
            if metrics is not None:
                metrics.record_pool(pool)

            logger.info(
                "application_started",
                app_name=settings.app_name,
                version=settings.app_version,
                environment=settings.environment
            )

            yield

        except Exception as e:
            logger.error("application_startup_failed", error=str(e), exc_info=True)
            raise

        finally:
            logger.info("application_shutting_down")

            try:
                await close_db_pool()
                logger.info("application_shutdown_complete")
            except Exception as e:
                logger.error("application_shutdown_failed", error=str(e), exc_info=True)

    return lifespan


# ============================================================================
# Exception Handlers
# ============================================================================

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle request validation errors."""
    errors = jsonable_encoder(exc.errors())
    logger.warning(
        "validation_error",
        path=request.url.path,
        correlation_id=await get_correlation_id(request),
        errors=errors
    )
    return JSONResponse(
        status_code=422,
        content={"detail": errors}
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions."""
    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail
    )

    content: Dict[str, Any] = {"detail": exc.detail}
    error_code = getattr(exc, "error_code", None)
    if error_code:
        content["error_code"] = error_code

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None)
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(
        "unexpected_exception",
        path=request.url.path,
        correlation_id=await get_correlation_id(request),
        error=str(exc),
        exc_info=True
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"}
    )


# ============================================================================
# FastAPI Application
# ============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to use (cached settings when omitted)

    Returns:
        Configured application
    """
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.log_format == "json",
        service_name=settings.app_name,
        environment=settings.environment
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Generic CRUD API for entities.",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=build_lifespan(settings),
        debug=settings.debug,
    )

    app.state.settings = settings
    app.state.metrics = ApiMetrics() if settings.metrics_enabled else None

    # ------------------------------------------------------------------------
    # Middleware (last added runs first)
    # ------------------------------------------------------------------------

    if settings.cors_enabled:
        logger.debug("configuring_cors", origins=settings.cors_origins)
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=settings.cors_allow_credentials,
            allow_methods=settings.cors_allow_methods,
            allow_headers=settings.cors_allow_headers,
        )

    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(SecurityHeadersMiddleware, settings=settings)
    app.add_middleware(RequestLoggingMiddleware, metrics=app.state.metrics)

    # ------------------------------------------------------------------------
    # Exception Handlers
    # ------------------------------------------------------------------------

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # ------------------------------------------------------------------------
    # Health, Readiness and Metrics
    # ------------------------------------------------------------------------

    @app.get("/health", tags=["Health"])
    async def health_check() -> Dict[str, Any]:
        """
        Health check endpoint.

        Returns basic health status without checking dependencies.
        Use for container health checks.
        """
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment
        }

    @app.get("/ready", tags=["Health"])
    async def readiness_check() -> JSONResponse:
        """
        Readiness check endpoint.

        Verifies database connectivity before reporting ready.
        """
        checks = {"database": "unknown"}
        pool = peek_db_pool()

        try:
            if pool is None:
                raise RuntimeError("database pool not initialized")
            async with pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            checks["database"] = "healthy"
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            checks["database"] = "unhealthy"

        if app.state.metrics is not None:
            app.state.metrics.record_pool(pool)

        all_healthy = all(value == "healthy" for value in checks.values())

        return JSONResponse(
            status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "ready" if all_healthy else "not_ready",
                "service": settings.app_name,
                "version": settings.app_version,
                "checks": checks
            }
        )

    if app.state.metrics is not None:
        render_metrics = get_metrics_handler(app.state.metrics)

        @app.get(settings.metrics_endpoint, tags=["Monitoring"], include_in_schema=False)
        async def metrics() -> Response:
            """Prometheus metrics endpoint."""
            app.state.metrics.record_pool(peek_db_pool())
            return Response(content=render_metrics(), media_type=CONTENT_TYPE_LATEST)

    # ------------------------------------------------------------------------
    # API Routers
    # ------------------------------------------------------------------------

    app.include_router(entities_router, prefix=settings.api_prefix)

    return app


app = create_app()


# ============================================================================
# Application Entry Point
# ============================================================================

def run() -> None:
    """Run the application with Uvicorn."""
    settings = get_settings()

    logger.info(
        "starting_uvicorn_server",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )

    uvicorn.run(
        "api.src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


if __name__ == "__main__":
    run()
