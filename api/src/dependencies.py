"""
FastAPI dependency injection for database, repositories and services.

Provides injectable dependencies for:
- Database connection pool (asyncpg)
- Repository instances
- Service instances
- Request metadata and pagination

All dependencies use FastAPI's dependency injection system and are designed
to be composable and testable: tests replace ``get_entity_service`` through
``app.dependency_overrides``.
"""

import asyncpg
import structlog
from typing import Optional
from fastapi import Depends, Request

from api.src.config import get_settings, Settings
from api.src.repositories.entity_repo import EntityRepository
from api.src.services.entity_service import EntityService
from shared.metrics import ApiMetrics

logger = structlog.get_logger(__name__)


# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================

_pool: Optional[asyncpg.Pool] = None


async def init_db_pool(settings: Optional[Settings] = None) -> asyncpg.Pool:
    """
    Initialize database connection pool.

    Should be called during application startup.

    Args:
        settings: Settings to use (cached settings when omitted)

    Returns:
        asyncpg connection pool
    """
    global _pool

    if _pool is not None:
        return _pool

    settings = settings or get_settings()

    try:
        _pool = await asyncpg.create_pool(
            settings.database_dsn,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            command_timeout=settings.database_command_timeout
        )

        logger.info(
            "database_pool_initialized",
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            database=settings.database_dsn.split("@")[-1]
        )

        return _pool

    except Exception as e:
        logger.error("database_pool_init_failed", error=str(e))
        raise


async def close_db_pool():
    """
    Close database connection pool.

    Should be called during application shutdown.
    """
    global _pool

    if _pool is not None:
        await _pool.close()
        logger.info("database_pool_closed")
        _pool = None


def get_db_pool() -> asyncpg.Pool:
    """
    Get database connection pool.

    Returns:
        asyncpg connection pool

    Raises:
        RuntimeError: If pool is not initialized
    """
    if _pool is None:
        logger.error("database_pool_not_initialized")
        raise RuntimeError(
            "Database pool not initialized. Call init_db_pool() during startup."
        )
    return _pool


def peek_db_pool() -> Optional[asyncpg.Pool]:
    """Return the pool if it has been initialized, None otherwise."""
    return _pool


# ============================================================================
# REPOSITORY AND SERVICE DEPENDENCIES
# ============================================================================


def get_metrics(request: Request) -> Optional[ApiMetrics]:
    """
    Get the metrics collectors attached to the running application.

    Args:
        request: HTTP request

    Returns:
        Metrics, or None when metrics are disabled
    """
    return getattr(request.app.state, "metrics", None)


def get_entity_repository(
    pool: asyncpg.Pool = Depends(get_db_pool)
) -> EntityRepository:
    """
    Get entity repository instance.

    Args:
        pool: Database connection pool

    Returns:
        Entity repository
    """
    return EntityRepository(pool)


def get_entity_service(
    entity_repo: EntityRepository = Depends(get_entity_repository),
    metrics: Optional[ApiMetrics] = Depends(get_metrics)
) -> EntityService:
    """
    Get entity service instance.

    Args:
        entity_repo: Entity repository
        metrics: Metrics collectors

    Returns:
        Entity service

    Example:
        @router.get("/entities/{entity_id}")
        async def get_entity(
            entity_id: int,
            service: EntityService = Depends(get_entity_service)
        ):
            return await service.get_entity_by_id(entity_id)
    """
    return EntityService(entity_repo, metrics)


# ============================================================================
# UTILITY DEPENDENCIES
# ============================================================================


def get_settings_dependency(request: Request) -> Settings:
    """
    Get the settings the running application was built with.

    Args:
        request: HTTP request

    Returns:
        Settings instance
    """
    return getattr(request.app.state, "settings", None) or get_settings()


async def get_correlation_id(request: Request) -> Optional[str]:
    """
    Get correlation ID for the current request.

    Prefers the value assigned by the request logging middleware and falls
    back to the X-Correlation-ID header.

    Args:
        request: HTTP request

    Returns:
        Correlation ID or None
    """
    return getattr(request.state, "correlation_id", None) or request.headers.get("X-Correlation-ID")


# ============================================================================
# PAGINATION DEPENDENCIES
# ============================================================================


class PaginationParams:
    """Pagination parameters for list endpoints."""

    def __init__(
        self,
        limit: Optional[int] = None,
        offset: int = 0,
        settings: Optional[Settings] = None
    ):
        """
        Initialize pagination parameters.

        Args:
            limit: Maximum number of items (clamped to 1..pagination_max_limit)
            offset: Number of items to skip (clamped to >= 0)
            settings: Settings to read limits from
        """
        settings = settings or get_settings()

        if limit is None:
            limit = settings.pagination_default_limit

        # Validate limit
        if limit < 1:
            limit = 1
        elif limit > settings.pagination_max_limit:
            limit = settings.pagination_max_limit

        # Validate offset
        if offset < 0:
            offset = 0

        self.limit = limit
        self.offset = offset


async def get_pagination_params(
    limit: Optional[int] = None,
    offset: int = 0,
    settings: Settings = Depends(get_settings_dependency)
) -> PaginationParams:
    """
    Get pagination parameters from query string.

    Args:
        limit: Maximum number of items (default and max come from settings)
        offset: Number of items to skip (default: 0)
        settings: Application settings

    Returns:
        Pagination parameters
    """
    return PaginationParams(limit=limit, offset=offset, settings=settings)
