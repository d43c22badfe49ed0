"""
Unit tests for the entity service.

Tests cover:
- Delegation to the repository
- Mapping repository records to response DTOs
- Missing entity handling
- Operation metrics
- Error propagation
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from api.src.models.entity import (
    EntityCreateRequest, EntityUpdateRequest, EntityDB, EntityResponse
)
from api.src.repositories.entity_repo import EntityRepository
from api.src.services.entity_service import EntityService
from shared.metrics import ApiMetrics


CREATED_AT = datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)


def make_record(entity_id: int = 1, **overrides) -> EntityDB:
    """Build a repository record."""
    values = {
        "id": entity_id,
        "name": "widget",
        "description": "A widget",
        "attributes": {"color": "blue"},
        "created_at": CREATED_AT,
    }
    values.update(overrides)
    return EntityDB(**values)


@pytest.fixture
def repo():
    """Mocked entity repository."""
    return AsyncMock(spec=EntityRepository)


@pytest.fixture
def metrics():
    """Metrics bound to a private registry."""
    return ApiMetrics()


@pytest.fixture
def service(repo, metrics):
    """Entity service under test."""
    return EntityService(repo, metrics)


def operation_count(metrics: ApiMetrics, operation: str, outcome: str) -> float:
    value = metrics.registry.get_sample_value(
        "entity_operations_total",
        {"operation": operation, "outcome": outcome}
    )
    return value or 0.0


class TestGetEntityById:
    """Tests for EntityService.get_entity_by_id."""

    @pytest.mark.asyncio
    async def test_returns_response(self, service, repo, metrics):
        """Test a stored record is returned as a response DTO."""
        repo.get_entity_by_id.return_value = make_record(5)

        result = await service.get_entity_by_id(5)

        assert isinstance(result, EntityResponse)
        assert result.id == 5
        assert result.attributes == {"color": "blue"}
        repo.get_entity_by_id.assert_awaited_once_with(5)
        assert operation_count(metrics, "get", "ok") == 1

    @pytest.mark.asyncio
    async def test_missing_entity_returns_none(self, service, repo, metrics):
        """Test a missing record yields None."""
        repo.get_entity_by_id.return_value = None

        assert await service.get_entity_by_id(5) is None
        assert operation_count(metrics, "get", "not_found") == 1

    @pytest.mark.asyncio
    async def test_repository_error_propagates(self, service, repo, metrics):
        """Test repository failures are not swallowed."""
        repo.get_entity_by_id.side_effect = ConnectionError("db down")

        with pytest.raises(ConnectionError):
            await service.get_entity_by_id(5)

        assert operation_count(metrics, "get", "error") == 1


class TestCreateEntity:
    """Tests for EntityService.create_entity."""

    @pytest.mark.asyncio
    async def test_passes_request_fields(self, service, repo, metrics):
        """Test request fields reach the repository."""
        repo.create_entity.return_value = make_record(9, attributes={"property": "value"})
        request = EntityCreateRequest.model_validate({"name": "widget", "property": "value"})

        result = await service.create_entity(request)

        repo.create_entity.assert_awaited_once_with(
            name="widget",
            description=None,
            attributes={"property": "value"}
        )
        assert result.id == 9
        assert result.attributes == {"property": "value"}
        assert operation_count(metrics, "create", "ok") == 1

    @pytest.mark.asyncio
    async def test_repository_error_propagates(self, service, repo, metrics):
        """Test creation failures are raised."""
        repo.create_entity.side_effect = RuntimeError("insert failed")

        with pytest.raises(RuntimeError):
            await service.create_entity(EntityCreateRequest())

        assert operation_count(metrics, "create", "error") == 1


class TestListEntities:
    """Tests for EntityService.list_entities."""

    @pytest.mark.asyncio
    async def test_returns_page_with_total(self, service, repo):
        """Test the page carries items, total and pagination."""
        repo.list_entities.return_value = [make_record(1), make_record(2)]
        repo.count_entities.return_value = 12

        page = await service.list_entities(limit=2, offset=4)

        repo.list_entities.assert_awaited_once_with(limit=2, offset=4)
        assert [item.id for item in page.items] == [1, 2]
        assert page.total == 12
        assert page.limit == 2
        assert page.offset == 4

    @pytest.mark.asyncio
    async def test_empty_page(self, service, repo):
        """Test an empty table yields an empty page."""
        repo.list_entities.return_value = []
        repo.count_entities.return_value = 0

        page = await service.list_entities(limit=10, offset=0)

        assert page.items == []
        assert page.total == 0


class TestUpdateEntity:
    """Tests for EntityService.update_entity."""

    @pytest.mark.asyncio
    async def test_passes_only_supplied_fields(self, service, repo):
        """Test omitted fields are not passed to the repository."""
        repo.update_entity.return_value = make_record(3, name="renamed", updated_at=CREATED_AT)

        result = await service.update_entity(3, EntityUpdateRequest(name="renamed"))

        repo.update_entity.assert_awaited_once_with(3, {"name": "renamed"})
        assert result.name == "renamed"
        assert result.updated_at == CREATED_AT

    @pytest.mark.asyncio
    async def test_explicit_null_is_passed(self, service, repo):
        """Test a null description reaches the repository so it can be cleared."""
        repo.update_entity.return_value = make_record(3, description=None)
        request = EntityUpdateRequest.model_validate({"description": None, "color": "red"})

        await service.update_entity(3, request)

        repo.update_entity.assert_awaited_once_with(
            3, {"description": None, "attributes": {"color": "red"}}
        )

    @pytest.mark.asyncio
    async def test_missing_entity_returns_none(self, service, repo, metrics):
        """Test updating a missing entity yields None."""
        repo.update_entity.return_value = None

        assert await service.update_entity(3, EntityUpdateRequest(name="x")) is None
        assert operation_count(metrics, "update", "not_found") == 1


class TestDeleteEntity:
    """Tests for EntityService.delete_entity."""

    @pytest.mark.asyncio
    async def test_delete(self, service, repo, metrics):
        """Test deletion result is returned."""
        repo.delete_entity.return_value = True

        assert await service.delete_entity(3) is True
        assert operation_count(metrics, "delete", "ok") == 1

    @pytest.mark.asyncio
    async def test_delete_missing(self, service, repo, metrics):
        """Test deleting a missing entity returns False."""
        repo.delete_entity.return_value = False

        assert await service.delete_entity(3) is False
        assert operation_count(metrics, "delete", "not_found") == 1


class TestWithoutMetrics:
    """Tests for a service built without metrics."""

    @pytest.mark.asyncio
    async def test_operations_work_without_metrics(self, repo):
        """Test metrics are optional."""
        repo.get_entity_by_id.return_value = make_record(1)
        service = EntityService(repo)

        result = await service.get_entity_by_id(1)

        assert result.id == 1
