"""
Entity models.

Provides both the SQLAlchemy table model and the Pydantic schemas for:
- Entity persistence (table definition, repository records)
- Create and update requests
- Single and paginated responses
- Error responses

Uses SQLAlchemy 2.0 declarative syntax. Queries are issued through asyncpg;
the declarative model is the source of the table DDL.
"""

import json
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import BigInteger, DateTime, Index, Text, text
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.schema import CreateTable
from pydantic import BaseModel, Field, model_validator


# ============================================================================
# SQLAlchemy Models
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class Entity(Base):
    """
    Generic entity row.

    Fixed columns hold the identifier, an optional name and description;
    everything else a client sends lives in the ``attributes`` JSONB column.
    """
    __tablename__ = "entities"

    id: Mapped[int] = mapped_column(
        BigInteger,
        primary_key=True,
        autoincrement=True
    )
    name: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )
    attributes: Mapped[Dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True
    )

    __table_args__ = (
        Index("idx_entities_created_at", "created_at"),
    )


def entity_table_ddl() -> List[str]:
    """
    Render the PostgreSQL DDL for the entities table and its indexes.

    Returns:
        Statements safe to run repeatedly (IF NOT EXISTS)
    """
    dialect = postgresql.dialect()
    table = Entity.__table__

    statements = [str(CreateTable(table, if_not_exists=True).compile(dialect=dialect)).strip()]
    for index in table.indexes:
        columns = ", ".join(column.name for column in index.columns)
        statements.append(
            f"CREATE INDEX IF NOT EXISTS {index.name} ON {table.name} ({columns})"
        )
    return statements


# ============================================================================
# Pydantic Request Models
# ============================================================================


_TEXT_FIELDS = ("name", "description")


def _storable(value: Any) -> Any:
    """Drop what PostgreSQL text/jsonb cannot hold: NUL characters and non-finite numbers."""
    if isinstance(value, str):
        return value.replace("\x00", "")
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {_storable(k): _storable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_storable(v) for v in value]
    return value


def _normalize_body(data: Any, null_attributes: Optional[Dict[str, Any]]) -> Any:
    """
    Map any JSON object onto name, description and attributes.

    Scalar name/description values are coerced to their JSON text; object or
    array values, a non-object ``attributes`` and every unknown key are
    folded into ``attributes``. Explicit attributes win on key clashes.

    Args:
        data: Raw request body
        null_attributes: Value used for an explicit ``"attributes": null``
            (None drops the key)

    Returns:
        Normalized body (non-objects are returned untouched)
    """
    if not isinstance(data, dict):
        return data

    data = _storable(data)
    normalized: Dict[str, Any] = {}
    folded: Dict[str, Any] = {}
    attributes: Optional[Dict[str, Any]] = None

    for key, value in data.items():
        if key in _TEXT_FIELDS:
            if value is None or isinstance(value, str):
                normalized[key] = value
            elif isinstance(value, (dict, list)):
                folded[key] = value
            else:
                normalized[key] = json.dumps(value)
        elif key == "attributes":
            if isinstance(value, dict):
                attributes = value
            elif value is None:
                attributes = null_attributes
            else:
                folded[key] = value
        else:
            folded[key] = value

    if folded or attributes is not None:
        normalized["attributes"] = {**folded, **(attributes or {})}
    return normalized


class EntityCreateRequest(BaseModel):
    """
    Create entity request schema.

    Every field is optional and no JSON object is rejected: unknown top-level
    keys and values that do not fit a field are stored in ``attributes``.
    """
    name: Optional[str] = Field(
        None,
        description="Display name"
    )
    description: Optional[str] = Field(
        None,
        description="Free-text description"
    )
    attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form entity properties"
    )

    @model_validator(mode="before")
    @classmethod
    def collect_attributes(cls, data: Any) -> Any:
        """Normalize the body onto the entity fields."""
        return _normalize_body(data, null_attributes={})

    model_config = {
        "json_schema_extra": {
            "example": {
                "name": "example",
                "description": "An example entity",
                "attributes": {"property": "value"}
            }
        }
    }


class EntityUpdateRequest(BaseModel):
    """
    Update entity request schema.

    Only fields present in the body change; an explicit null name or
    description clears it. Use ``model_dump(exclude_unset=True)`` to get the
    changes.
    """
    name: Optional[str] = Field(
        None,
        description="Display name"
    )
    description: Optional[str] = Field(
        None,
        description="Free-text description"
    )
    attributes: Optional[Dict[str, Any]] = Field(
        None,
        description="Properties merged over the stored attributes"
    )

    @model_validator(mode="before")
    @classmethod
    def collect_attributes(cls, data: Any) -> Any:
        """Normalize the body onto the entity fields."""
        return _normalize_body(data, null_attributes=None)


# ============================================================================
# Pydantic Response Models
# ============================================================================


class EntityResponse(BaseModel):
    """Entity response schema. All fields optional."""
    id: Optional[int] = Field(
        None,
        description="Entity ID"
    )
    name: Optional[str] = Field(
        None,
        description="Display name"
    )
    description: Optional[str] = Field(
        None,
        description="Free-text description"
    )
    attributes: Dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form entity properties"
    )
    created_at: Optional[datetime] = Field(
        None,
        description="Creation timestamp"
    )
    updated_at: Optional[datetime] = Field(
        None,
        description="Last update timestamp"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": 1,
                "name": "example",
                "description": "An example entity",
                "attributes": {"property": "value"},
                "created_at": "2025-01-15T10:30:00Z",
                "updated_at": None
            }
        }
    }


class EntityListResponse(BaseModel):
    """Paginated entity list."""
    items: List[EntityResponse] = Field(
        default_factory=list,
        description="Entities in this page"
    )
    total: int = Field(
        ...,
        ge=0,
        description="Total number of entities"
    )
    limit: int = Field(
        ...,
        gt=0,
        description="Page size"
    )
    offset: int = Field(
        ...,
        ge=0,
        description="Number of entities skipped"
    )


class ErrorResponse(BaseModel):
    """Error response schema."""
    detail: str = Field(
        ...,
        min_length=1,
        description="Error message"
    )
    error_code: Optional[str] = Field(
        None,
        description="Error code"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "detail": "Entity not found",
                "error_code": "ENTITY_404"
            }
        }
    }


# ============================================================================
# Repository Records
# ============================================================================


class EntityDB(BaseModel):
    """Entity row as read from the database."""
    id: int
    name: Optional[str] = None
    description: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None

    def to_response(self) -> EntityResponse:
        """Convert to the API response schema."""
        return EntityResponse(
            id=self.id,
            name=self.name,
            description=self.description,
            attributes=dict(self.attributes),
            created_at=self.created_at,
            updated_at=self.updated_at
        )
