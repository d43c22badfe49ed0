"""
Integration tests for entity persistence with PostgreSQL.

Tests cover:
- Schema creation from the table model
- Repository CRUD against a real database
- JSONB attribute storage and merge on update
- Pagination ordering and counts
- Full HTTP round trip through the application lifespan
- Bodies with values PostgreSQL cannot store as-is

These tests use testcontainers to spin up a real PostgreSQL instance.
"""

import asyncpg
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from api.src.config import Settings
from api.src.main import create_app
from api.src.repositories.entity_repo import EntityRepository
from tests.testcontainers.containers import PostgresContainer


pytestmark = pytest.mark.integration


# ============================================================================
# PYTEST FIXTURES
# ============================================================================


@pytest.fixture(scope="module")
def postgres_container():
    """Create PostgreSQL testcontainer."""
    try:
        container = PostgresContainer()
        container.start()
    except Exception as e:
        pytest.skip(f"Docker not available: {e}")

    yield container

    container.stop()


@pytest.fixture(scope="module")
def database_dsn(postgres_container):
    """asyncpg DSN for the running container."""
    return postgres_container.get_asyncpg_dsn()


@pytest_asyncio.fixture
async def repo(database_dsn):
    """Repository on a fresh schema."""
    pool = await asyncpg.create_pool(database_dsn, min_size=1, max_size=2)
    repository = EntityRepository(pool)
    await repository.ensure_schema()

    yield repository

    async with pool.acquire() as conn:
        await conn.execute("TRUNCATE entities RESTART IDENTITY")
    await pool.close()


# ============================================================================
# REPOSITORY TESTS
# ============================================================================


class TestEntityRepository:
    """Integration tests for EntityRepository."""

    @pytest.mark.asyncio
    async def test_ensure_schema_is_idempotent(self, repo):
        """Test creating the schema twice does not fail."""
        await repo.ensure_schema()

        assert await repo.count_entities() == 0

    @pytest.mark.asyncio
    async def test_create_and_get(self, repo):
        """Test a created entity can be read back."""
        created = await repo.create_entity("widget", "A widget", {"color": "blue", "size": 3})

        fetched = await repo.get_entity_by_id(created.id)

        assert fetched is not None
        assert fetched.id == created.id
        assert fetched.name == "widget"
        assert fetched.description == "A widget"
        assert fetched.attributes == {"color": "blue", "size": 3}
        assert fetched.created_at is not None
        assert fetched.updated_at is None

    @pytest.mark.asyncio
    async def test_create_without_fields(self, repo):
        """Test an entity with no fields is stored with empty attributes."""
        created = await repo.create_entity(None, None, {})

        assert created.id == 1
        assert created.name is None
        assert created.attributes == {}

    @pytest.mark.asyncio
    async def test_get_missing(self, repo):
        """Test a missing id yields None."""
        assert await repo.get_entity_by_id(999) is None

    @pytest.mark.asyncio
    async def test_list_is_ordered_and_paginated(self, repo):
        """Test pages follow id order."""
        for i in range(5):
            await repo.create_entity(f"entity-{i}", None, {})

        page = await repo.list_entities(limit=2, offset=1)

        assert [e.name for e in page] == ["entity-1", "entity-2"]
        assert await repo.count_entities() == 5

    @pytest.mark.asyncio
    async def test_update_merges_attributes(self, repo):
        """Test updates merge attributes and set updated_at."""
        created = await repo.create_entity("widget", None, {"color": "blue", "size": 3})

        updated = await repo.update_entity(created.id, {"attributes": {"color": "red"}})

        assert updated.name == "widget"
        assert updated.attributes == {"color": "red", "size": 3}
        assert updated.updated_at is not None

    @pytest.mark.asyncio
    async def test_update_clears_name(self, repo):
        """Test an explicit None name writes NULL and leaves other columns."""
        created = await repo.create_entity("widget", "A widget", {})

        updated = await repo.update_entity(created.id, {"name": None})

        assert updated.name is None
        assert updated.description == "A widget"

    @pytest.mark.asyncio
    async def test_update_missing(self, repo):
        """Test updating a missing id yields None."""
        assert await repo.update_entity(999, {"name": "x"}) is None

    @pytest.mark.asyncio
    async def test_delete(self, repo):
        """Test delete removes the row once."""
        created = await repo.create_entity("widget", None, {})

        assert await repo.delete_entity(created.id) is True
        assert await repo.delete_entity(created.id) is False
        assert await repo.get_entity_by_id(created.id) is None


# ============================================================================
# APPLICATION ROUND TRIP
# ============================================================================


@pytest.fixture
def client(database_dsn):
    """Test client with the lifespan (pool and schema) started."""
    settings = Settings(
        database_url=database_dsn,
        database_pool_min_size=1,
        database_pool_max_size=2,
        log_level="WARNING",
    )
    with TestClient(create_app(settings)) as test_client:
        yield test_client


class TestApplicationRoundTrip:
    """Integration tests driving the application against PostgreSQL."""

    def test_create_then_get(self, client):
        """Test the HTTP API persists and returns entities."""
        ready = client.get("/ready")
        assert ready.status_code == 200

        created = client.post("/api/entities", json={"name": "widget", "color": "blue"})
        assert created.status_code == 201
        entity_id = created.json()["id"]
        assert created.headers["location"] == f"/api/entities/{entity_id}"

        fetched = client.get(f"/api/entities/{entity_id}")
        assert fetched.status_code == 200
        assert fetched.json()["attributes"] == {"color": "blue"}

        assert client.delete(f"/api/entities/{entity_id}").status_code == 204
        assert client.get(f"/api/entities/{entity_id}").status_code == 404

    def test_nul_characters_are_stored_without_them(self, client):
        """Test NUL characters do not break jsonb or text storage."""
        created = client.post(
            "/api/entities",
            json={"name": "wid\u0000get", "property": "va\u0000lue"}
        )

        assert created.status_code == 201
        body = client.get(f"/api/entities/{created.json()['id']}").json()
        assert body["name"] == "widget"
        assert body["attributes"] == {"property": "value"}

    def test_nan_literal_is_stored_as_null(self, client):
        """Test a NaN literal in the body is persisted as null."""
        created = client.post(
            "/api/entities",
            content=b'{"ratio": NaN, "limit": Infinity}',
            headers={"Content-Type": "application/json"}
        )

        assert created.status_code == 201
        assert created.json()["attributes"] == {"ratio": None, "limit": None}

    def test_long_name_is_stored(self, client):
        """Test names have no length limit."""
        created = client.post("/api/entities", json={"name": "x" * 1000})

        assert created.status_code == 201
        assert created.json()["name"] == "x" * 1000

    def test_out_of_range_id(self, client):
        """Test an id beyond BIGINT is rejected before reaching PostgreSQL."""
        response = client.get("/api/entities/99999999999999999999")

        assert response.status_code == 422
