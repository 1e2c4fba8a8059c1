"""Integration tests for the Event Service API."""

import pytest
from httpx import ASGITransport, AsyncClient

from wms_shared.config import settings
from wms_shared.database import get_session_factory
from services.event_service.domain.maintenance import (
    run_standalone_cleanup,
    run_standalone_statistics,
)
from services.event_service.main import app

from tests.helpers import Counter

API = "/api/v1"


@pytest.fixture
async def client(test_session_factory):
    """HTTP client against the app, bound to the test database."""
    app.dependency_overrides[get_session_factory] = lambda: test_session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


class TestHealth:
    """Test service probes."""

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_root(self, client):
        response = await client.get("/")

        assert response.json()["service"] == "Event Service"


class TestIdempotencyEndpoints:
    """Test the idempotency administration endpoints."""

    @pytest.mark.asyncio
    async def test_statistics(self, client, idempotency_service):
        await idempotency_service.process_with_idempotency(
            "done", "create_shipment", "test", {"order_id": 1}, Counter(result="ok")
        )
        await idempotency_service.process_with_idempotency(
            "old", "create_shipment", "test", {"order_id": 2}, Counter(result="ok"), ttl_hours=0
        )

        response = await client.get(f"{API}/idempotency/statistics")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"]["total_keys"] == 2
        assert body["data"]["expired_keys"] == 1
        assert body["data"]["completed_keys"] == 2
        assert "generated_at" in body["meta"]

    @pytest.mark.asyncio
    async def test_get_key(self, client, idempotency_service):
        await idempotency_service.process_with_idempotency(
            "shipment-42", "create_shipment", "test", {"order_id": 42}, Counter(result={"id": 9})
        )

        response = await client.get(f"{API}/idempotency/keys/shipment-42")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["processing_status"] == "completed"
        assert data["processing_result"] == {"id": 9}
        assert data["payload"] == {"order_id": 42}
        assert data["is_expired"] is False

    @pytest.mark.asyncio
    async def test_get_missing_key(self, client):
        response = await client.get(f"{API}/idempotency/keys/missing")

        assert response.status_code == 404
        assert response.json() == {
            "success": False,
            "message": "Idempotency key not found: missing",
        }

    @pytest.mark.asyncio
    async def test_cleanup_dry_run_keeps_keys(self, client, idempotency_service):
        await idempotency_service.process_with_idempotency(
            "old", "op", "test", {}, Counter(result=1), ttl_hours=0
        )

        response = await client.post(f"{API}/idempotency/cleanup", params={"dry_run": True})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["dry_run"] is True
        assert data["deleted_count"] == 0
        assert data["before"]["expired_keys"] == 1
        assert await idempotency_service.get_record("old") is not None

    @pytest.mark.asyncio
    async def test_cleanup_deletes_expired_keys(self, client, idempotency_service):
        await idempotency_service.process_with_idempotency(
            "old", "op", "test", {}, Counter(result=1), ttl_hours=0
        )
        await idempotency_service.process_with_idempotency(
            "fresh", "op", "test", {}, Counter(result=2)
        )

        response = await client.post(f"{API}/idempotency/cleanup")

        data = response.json()["data"]
        assert data["deleted_count"] == 1
        assert data["before"]["total_keys"] == 2
        assert data["after"]["total_keys"] == 1
        assert data["after"]["expired_keys"] == 0
        assert await idempotency_service.get_record("old") is None
        assert await idempotency_service.get_record("fresh") is not None

    @pytest.mark.asyncio
    async def test_storage_failure_returns_error_envelope(self, client, monkeypatch):
        async def broken_statistics(self):
            raise RuntimeError("database unavailable")

        monkeypatch.setattr(
            "wms_shared.idempotency.IdempotencyService.get_statistics", broken_statistics
        )

        response = await client.get(f"{API}/idempotency/statistics")

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Failed to retrieve idempotency statistics"
        # Error details are only exposed in development
        assert body["error"] is None


class TestStandaloneMaintenance:
    """Test the maintenance entry points used outside the web service."""

    @pytest.fixture
    def standalone_database(self, test_db_engine, tmp_path, monkeypatch):
        monkeypatch.setattr(
            settings, "database_url", f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
        )

    @pytest.mark.asyncio
    async def test_statistics_leave_expired_keys(self, standalone_database, idempotency_service):
        await idempotency_service.process_with_idempotency(
            "old", "op", "test", {}, Counter(result=1), ttl_hours=0
        )

        stats = await run_standalone_statistics()

        assert stats.total_keys == 1
        assert stats.expired_keys == 1
        assert await idempotency_service.get_record("old") is not None

    @pytest.mark.asyncio
    async def test_cleanup_deletes_expired_keys(self, standalone_database, idempotency_service):
        await idempotency_service.process_with_idempotency(
            "old", "op", "test", {}, Counter(result=1), ttl_hours=0
        )

        result = await run_standalone_cleanup()

        assert result.deleted_count == 1
        assert await idempotency_service.get_record("old") is None
