"""
Entity repository for database operations.

Provides async CRUD operations for entities using asyncpg with PostgreSQL.
Includes transaction management and error handling.
"""

import json
import asyncpg
import structlog
from typing import Any, Dict, List, Optional
from contextlib import asynccontextmanager

from api.src.models.entity import EntityDB, entity_table_ddl

logger = structlog.get_logger(__name__)


_COLUMNS = "id, name, description, attributes, created_at, updated_at"


def _decode_attributes(value: Any) -> Dict[str, Any]:
    """asyncpg returns jsonb as text unless a codec is registered."""
    if value is None:
        return {}
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return dict(value)


def _row_to_entity(row) -> EntityDB:
    return EntityDB(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        attributes=_decode_attributes(row["attributes"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"]
    )


class EntityRepository:
    """Repository for entity database operations."""

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize entity repository.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    @asynccontextmanager
    async def transaction(self):
        """
        Context manager for database transactions.

        Yields:
            asyncpg.Connection: Database connection
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def ensure_schema(self) -> None:
        """Create the entities table and its indexes if they are missing."""
        try:
            async with self.transaction() as conn:
                for statement in entity_table_ddl():
                    await conn.execute(statement)
            logger.info("entity_schema_ready")
        except Exception as e:
            logger.error("entity_schema_create_failed", error=str(e))
            raise

    async def create_entity(
        self,
        name: Optional[str],
        description: Optional[str],
        attributes: Dict[str, Any]
    ) -> EntityDB:
        """
        Insert a new entity.

        Args:
            name: Display name (optional)
            description: Description (optional)
            attributes: Free-form properties

        Returns:
            Created entity with its assigned id
        """
        try:
            async with self.transaction() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO entities (name, description, attributes, created_at)
                    VALUES ($1, $2, $3::jsonb, NOW())
                    RETURNING {_COLUMNS}
                    """,
                    name,
                    description,
                    json.dumps(attributes, allow_nan=False)
                )

                logger.info("entity_inserted", entity_id=row["id"])
                return _row_to_entity(row)

        except Exception as e:
            logger.error("entity_create_failed", error=str(e), name=name)
            raise

    async def get_entity_by_id(self, entity_id: int) -> Optional[EntityDB]:
        """
        Get entity by ID.

        Args:
            entity_id: Entity ID

        Returns:
            Entity or None if not found
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    SELECT {_COLUMNS}
                    FROM entities
                    WHERE id = $1
                    """,
                    entity_id
                )

                if not row:
                    logger.debug("entity_not_found", entity_id=entity_id)
                    return None

                return _row_to_entity(row)

        except Exception as e:
            logger.error("entity_get_by_id_failed", error=str(e), entity_id=entity_id)
            raise

    async def list_entities(self, limit: int = 100, offset: int = 0) -> List[EntityDB]:
        """
        List entities ordered by id.

        Args:
            limit: Maximum number of entities to return
            offset: Number of entities to skip

        Returns:
            List of entities
        """
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT {_COLUMNS}
                    FROM entities
                    ORDER BY id ASC
                    LIMIT $1 OFFSET $2
                    """,
                    limit,
                    offset
                )

                return [_row_to_entity(row) for row in rows]

        except Exception as e:
            logger.error("entity_list_failed", error=str(e), limit=limit, offset=offset)
            raise

    async def count_entities(self) -> int:
        """
        Count total entities.

        Returns:
            Total entity count
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT COUNT(*) as count
                    FROM entities
                    """
                )

                return row["count"]

        except Exception as e:
            logger.error("entity_count_failed", error=str(e))
            raise

    async def update_entity(
        self,
        entity_id: int,
        changes: Dict[str, Any]
    ) -> Optional[EntityDB]:
        """
        Update the entity columns named in ``changes``.

        Keys absent from ``changes`` are left alone; a None name or
        description writes NULL. Attributes are merged over the stored ones.

        Args:
            entity_id: Entity ID
            changes: Column values keyed by name, description and/or attributes

        Returns:
            Updated entity or None if not found
        """
        try:
            async with self.transaction() as conn:
                updates = []
                params = []
                param_count = 1

                for column in ("name", "description"):
                    if column in changes:
                        updates.append(f"{column} = ${param_count}")
                        params.append(changes[column])
                        param_count += 1

                if changes.get("attributes") is not None:
                    updates.append(f"attributes = attributes || ${param_count}::jsonb")
                    params.append(json.dumps(changes["attributes"], allow_nan=False))
                    param_count += 1

                updates.append("updated_at = NOW()")
                params.append(entity_id)

                row = await conn.fetchrow(
                    f"""
                    UPDATE entities
                    SET {', '.join(updates)}
                    WHERE id = ${param_count}
                    RETURNING {_COLUMNS}
                    """,
                    *params
                )

                if not row:
                    logger.debug("entity_not_found", entity_id=entity_id)
                    return None

                logger.info("entity_row_updated", entity_id=entity_id)
                return _row_to_entity(row)

        except Exception as e:
            logger.error("entity_update_failed", error=str(e), entity_id=entity_id)
            raise

    async def delete_entity(self, entity_id: int) -> bool:
        """
        Delete entity.

        Args:
            entity_id: Entity ID

        Returns:
            True if deleted, False if not found
        """
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    """
                    DELETE FROM entities
                    WHERE id = $1
                    """,
                    entity_id
                )

                deleted = result.split()[-1] == "1"

                if deleted:
                    logger.info("entity_row_deleted", entity_id=entity_id)
                else:
                    logger.debug("entity_not_found", entity_id=entity_id)

                return deleted

        except Exception as e:
            logger.error("entity_delete_failed", error=str(e), entity_id=entity_id)
            raise
