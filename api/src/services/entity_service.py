"""
Entity service.

Provides the business operations behind the entity endpoints:
- Lookup by id
- Creation
- Paginated listing
- Partial update and deletion

Maps repository records to response DTOs and records operation metrics.
"""

import structlog
from typing import Optional

from api.src.models.entity import (
    EntityCreateRequest, EntityUpdateRequest,
    EntityResponse, EntityListResponse
)
from api.src.repositories.entity_repo import EntityRepository
from shared.metrics import ApiMetrics

logger = structlog.get_logger(__name__)


class EntityService:
    """Service for entity operations."""

    def __init__(self, entity_repo: EntityRepository, metrics: Optional[ApiMetrics] = None):
        """
        Initialize entity service.

        Args:
            entity_repo: Entity repository
            metrics: Metrics collectors (operation counters are skipped when None)
        """
        self.entity_repo = entity_repo
        self.metrics = metrics

    def _record(self, operation: str, outcome: str) -> None:
        """
        Count an entity operation.

        Args:
            operation: Operation name (get, create, list, update, delete)
            outcome: ok, not_found or error
        """
        if self.metrics is not None:
            self.metrics.entity_operations.labels(operation=operation, outcome=outcome).inc()

    async def get_entity_by_id(self, entity_id: int) -> Optional[EntityResponse]:
        """
        Get entity by ID.

        Args:
            entity_id: Entity ID

        Returns:
            Entity response or None if not found
        """
        try:
            entity = await self.entity_repo.get_entity_by_id(entity_id)
        except Exception:
            self._record("get", "error")
            raise

        if entity is None:
            logger.info("entity_lookup_miss", entity_id=entity_id)
            self._record("get", "not_found")
            return None

        self._record("get", "ok")
        return entity.to_response()

    async def create_entity(self, request: EntityCreateRequest) -> EntityResponse:
        """
        Create a new entity.

        Args:
            request: Entity creation details

        Returns:
            Created entity
        """
        try:
            entity = await self.entity_repo.create_entity(
                name=request.name,
                description=request.description,
                attributes=request.attributes
            )
        except Exception:
            self._record("create", "error")
            raise

        logger.info("entity_created", entity_id=entity.id, name=entity.name)
        self._record("create", "ok")
        return entity.to_response()

    async def list_entities(self, limit: int, offset: int) -> EntityListResponse:
        """
        List entities with pagination.

        Args:
            limit: Page size
            offset: Number of entities to skip

        Returns:
            Page of entities with the total count
        """
        try:
            entities = await self.entity_repo.list_entities(limit=limit, offset=offset)
            total = await self.entity_repo.count_entities()
        except Exception:
            self._record("list", "error")
            raise

        self._record("list", "ok")
        return EntityListResponse(
            items=[entity.to_response() for entity in entities],
            total=total,
            limit=limit,
            offset=offset
        )

    async def update_entity(
        self,
        entity_id: int,
        request: EntityUpdateRequest
    ) -> Optional[EntityResponse]:
        """
        Update an entity.

        Args:
            entity_id: Entity ID
            request: Fields to change (only those present in the body)

        Returns:
            Updated entity or None if not found
        """
        try:
            entity = await self.entity_repo.update_entity(
                entity_id,
                request.model_dump(exclude_unset=True)
            )
        except Exception:
            self._record("update", "error")
            raise

        if entity is None:
            self._record("update", "not_found")
            return None

        logger.info("entity_updated", entity_id=entity_id)
        self._record("update", "ok")
        return entity.to_response()

    async def delete_entity(self, entity_id: int) -> bool:
        """
        Delete an entity.

        Args:
            entity_id: Entity ID

        Returns:
            True if deleted, False if not found
        """
        try:
            deleted = await self.entity_repo.delete_entity(entity_id)
        except Exception:
            self._record("delete", "error")
            raise

        if deleted:
            logger.info("entity_deleted", entity_id=entity_id)
        self._record("delete", "ok" if deleted else "not_found")
        return deleted
