"""
Entity router.

Provides REST API endpoints for:
- Entity lookup by id
- Entity creation
- Paginated listing
- Update and deletion

Handlers stay thin: they delegate to EntityService and translate missing
entities into 404 responses.
"""

import structlog
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Path, Request, Response, status

from api.src.models.entity import (
    EntityCreateRequest, EntityUpdateRequest,
    EntityResponse, EntityListResponse, ErrorResponse
)
from api.src.services.entity_service import EntityService
from api.src.dependencies import (
    get_entity_service,
    get_pagination_params,
    PaginationParams
)

logger = structlog.get_logger(__name__)

ENTITY_NOT_FOUND = "ENTITY_404"

# ids are BIGSERIAL
MAX_ENTITY_ID = 2 ** 63 - 1

router = APIRouter(
    prefix="/entities",
    tags=["Entities"],
    responses={
        422: {"description": "Validation Error"}
    }
)


class EntityNotFoundException(HTTPException):
    """404 carrying the entity error code."""

    def __init__(self, entity_id: int):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Entity not found"
        )
        self.entity_id = entity_id
        self.error_code = ENTITY_NOT_FOUND


_NOT_FOUND_RESPONSE = {
    404: {
        "description": "Entity not found",
        "model": ErrorResponse,
        "content": {
            "application/json": {
                "example": {"detail": "Entity not found", "error_code": ENTITY_NOT_FOUND}
            }
        }
    }
}


@router.get(
    "/{entity_id}",
    response_model=EntityResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Entity",
    responses=_NOT_FOUND_RESPONSE
)
async def get_entity(
    entity_id: int = Path(..., ge=1, le=MAX_ENTITY_ID, description="Entity ID"),
    service: EntityService = Depends(get_entity_service)
) -> EntityResponse:
    """
    Get entity by ID.

    The returned representation always carries the requested id.

    Raises:
        HTTPException: 404 if the entity does not exist
    """
    entity = await service.get_entity_by_id(entity_id)

    if entity is None:
        logger.info("entity_get_not_found", entity_id=entity_id)
        raise EntityNotFoundException(entity_id)

    if entity.id is None:
        entity = entity.model_copy(update={"id": entity_id})

    return entity


@router.post(
    "",
    response_model=EntityResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Entity"
)
async def create_entity(
    create_request: EntityCreateRequest,
    request: Request,
    response: Response,
    service: EntityService = Depends(get_entity_service)
) -> EntityResponse:
    """
    Create a new entity.

    Accepts any JSON object; keys other than name, description and
    attributes are stored as attributes.
    """
    entity = await service.create_entity(create_request)

    if entity.id is not None:
        response.headers["Location"] = str(request.app.url_path_for("get_entity", entity_id=entity.id))

    return entity


@router.get(
    "",
    response_model=EntityListResponse,
    status_code=status.HTTP_200_OK,
    summary="List Entities"
)
async def list_entities(
    pagination: PaginationParams = Depends(get_pagination_params),
    service: EntityService = Depends(get_entity_service)
) -> EntityListResponse:
    """List entities ordered by id."""
    return await service.list_entities(limit=pagination.limit, offset=pagination.offset)


@router.put(
    "/{entity_id}",
    response_model=EntityResponse,
    status_code=status.HTTP_200_OK,
    summary="Update Entity",
    responses=_NOT_FOUND_RESPONSE
)
async def update_entity(
    update_request: EntityUpdateRequest,
    entity_id: int = Path(..., ge=1, le=MAX_ENTITY_ID, description="Entity ID"),
    service: EntityService = Depends(get_entity_service)
) -> EntityResponse:
    """
    Update an entity. Only fields present in the body change; attributes
    are merged over the stored ones.

    Raises:
        HTTPException: 404 if the entity does not exist
    """
    entity: Optional[EntityResponse] = await service.update_entity(entity_id, update_request)

    if entity is None:
        raise EntityNotFoundException(entity_id)

    return entity


@router.delete(
    "/{entity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Entity",
    responses=_NOT_FOUND_RESPONSE
)
async def delete_entity(
    entity_id: int = Path(..., ge=1, le=MAX_ENTITY_ID, description="Entity ID"),
    service: EntityService = Depends(get_entity_service)
) -> Response:
    """
    Delete an entity.

    Raises:
        HTTPException: 404 if the entity does not exist
    """
    if not await service.delete_entity(entity_id):
        raise EntityNotFoundException(entity_id)

    return Response(status_code=status.HTTP_204_NO_CONTENT)
