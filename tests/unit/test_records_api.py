"""Tests for the records service and HTTP endpoints."""
import pytest
from fastapi.testclient import TestClient

from conftest import DownCollection, FakeConnection, make_async_collection
from media_catalog.errors import DatabaseError, NotFoundError
from media_catalog.settings import MongoSettings, Settings
from media_catalog.snapshot import SnapshotStore
from api.dependencies import AppState
from api.main import create_app
from api.repositories.mongo import MongoRecordsRepository
from api.repositories.selector import RepositoryProvider
from api.schemas.records import RecordSearchParams
from api.services.records_service import RecordsService


def make_state(catalog, registry, connection):
    settings = Settings(env="test", random_seed=3, api_reload=False, mongo=MongoSettings(uri=None))
    return AppState(
        settings=settings,
        connection=connection,
        snapshot=SnapshotStore.from_records(catalog),
        registry=registry,
    )


@pytest.fixture
def static_client(catalog, registry):
    state = make_state(catalog, registry, FakeConnection(connected=False))
    with TestClient(create_app(state)) as client:
        yield client


@pytest.fixture
def primary_connection(catalog):
    return FakeConnection(make_async_collection(catalog), connected=True)


@pytest.fixture
def primary_client(catalog, registry, primary_connection):
    state = make_state(catalog, registry, primary_connection)
    with TestClient(create_app(state)) as client:
        yield client


def ids(items):
    return [item["id"] for item in items]


class TestSearchEndpoint:
    """Test suite for GET /api/v1/records."""

    def test_default_relevance_order(self, static_client):
        body = static_client.get("/api/v1/records").json()
        assert body["backend"] == "static"
        assert body["total"] == 6
        assert ids(body["items"]) == ["r2", "r5", "r3", "r7", "r1", "r4"]

    def test_same_answer_from_primary(self, primary_client):
        body = primary_client.get("/api/v1/records").json()
        assert body["backend"] == "mongodb"
        assert ids(body["items"]) == ["r2", "r5", "r3", "r7", "r1", "r4"]

    def test_pagination_is_clamped(self, static_client):
        body = static_client.get("/api/v1/records", params={"limit": 2, "page": 2}).json()
        assert (body["page"], body["limit"], ids(body["items"])) == (2, 2, ["r3", "r7"])

        body = static_client.get("/api/v1/records", params={"limit": 1000, "page": -3}).json()
        assert (body["page"], body["limit"]) == (1, 100)

    def test_filters_and_sort(self, static_client):
        params = {"intensity_range": "6-", "sort_by": "intensity", "has_video": "false"}
        body = static_client.get("/api/v1/records", params=params).json()
        assert ids(body["items"]) == ["r3", "r1", "r7"]

    def test_malformed_range_is_rejected(self, static_client):
        response = static_client.get("/api/v1/records", params={"intensity_range": "loud"})
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"] == {"field": "intensity_range", "value": "loud"}

    def test_invalid_year_is_rejected(self, static_client):
        assert static_client.get("/api/v1/records", params={"year": "soon"}).status_code == 400


class TestOtherEndpoints:
    """Test suite for random, breeds, stats and single-record endpoints."""

    def test_random(self, static_client):
        body = static_client.get("/api/v1/records/random", params={"n": 3, "tags": "loud"}).json()
        assert len(body["items"]) == 3
        assert sorted(ids(body["items"])) == ["r2", "r3", "r5"]

    def test_breeds(self, static_client):
        assert static_client.get("/api/v1/records/breeds").json() == {"breeds": ["Alpine", "Nubian"]}

    def test_tag_stats(self, primary_client):
        body = primary_client.get("/api/v1/records/stats/tags", params={"limit": 2}).json()
        assert body == {"top_tags": [{"tag": "loud", "count": 3}, {"tag": "farm", "count": 2}]}

    def test_year_stats(self, static_client):
        body = static_client.get("/api/v1/records/stats/years").json()
        assert body["by_year"] == [
            {"year": 2018, "count": 1},
            {"year": 2019, "count": 1},
            {"year": 2020, "count": 2},
            {"year": 2021, "count": 2},
        ]

    def test_get_record(self, static_client):
        response = static_client.get("/api/v1/records/r1")
        assert response.status_code == 200
        assert response.json()["title"] == "Alpine Morning Call"

    def test_get_missing_record_is_404(self, static_client):
        response = static_client.get("/api/v1/records/r6")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"


class TestHealthEndpoints:
    """Test suite for readiness and circuit status."""

    def test_ready_reports_backend(self, static_client):
        body = static_client.get("/api/v1/health/ready").json()
        assert body["ready"] is True
        assert body["details"]["backend"] == "static"
        assert body["details"]["database"]["connected"] is False
        assert body["details"]["snapshot"]["source"] == "memory"

    def test_backend_follows_connection_flaps(self, primary_client, primary_connection):
        assert primary_client.get("/api/v1/health/ready").json()["details"]["backend"] == "mongodb"
        primary_connection.connected = False
        assert primary_client.get("/api/v1/health/ready").json()["details"]["backend"] == "static"
        assert ids(primary_client.get("/api/v1/records").json()["items"])[0] == "r2"

    def test_circuits(self, primary_client):
        circuits = primary_client.get("/api/v1/health/circuits").json()["circuits"]
        assert circuits["mongodb"]["state"] == "closed"


class TestRecordsService:
    """Test suite for RecordsService error mapping."""

    @pytest.mark.asyncio
    async def test_get_raises_not_found(self, static_repo):
        service = RecordsService(RepositoryProvider(static_repo))
        with pytest.raises(NotFoundError):
            await service.get("nope")

    @pytest.mark.asyncio
    async def test_get_surfaces_dependency_failure(self, static_repo, registry):
        primary = MongoRecordsRepository(DownCollection(), registry.get_or_create("mongodb"))
        provider = RepositoryProvider(static_repo, primary=primary, connection=FakeConnection(connected=True))
        with pytest.raises(DatabaseError):
            await RecordsService(provider).get("r1")

    @pytest.mark.asyncio
    async def test_open_circuit_serves_from_snapshot(self, static_repo, registry):
        breaker = registry.get_or_create("mongodb")
        primary = MongoRecordsRepository(DownCollection(), breaker)
        provider = RepositoryProvider(
            static_repo, primary=primary, connection=FakeConnection(connected=True), breaker=breaker
        )
        service = RecordsService(provider)
        for _ in range(3):
            with pytest.raises(DatabaseError):
                await service.get("r1")

        result = await service.search(RecordSearchParams())
        assert result["backend"] == "static"
        assert result["total"] == 6
