"""
Unit tests for the Garage service HTTP surface.
"""

from datetime import datetime, timedelta

import pytest
import httpx
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import get_config
from service_garage.app.cache import CacheKeys, DisabledStore, MemoryStore, UpstashStore
from service_garage.app.main import GarageService
from service_garage.app.models import ServiceRecordStatus
from service_garage.app.persistence import InMemoryGarageRepository

TEAM = {"X-Team-Id": "1"}
OTHER_TEAM = {"X-Team-Id": "2"}


def service_config(**overrides):
    values = {
        "redis_url": "memory://",
        "upstash_redis_rest_url": None,
        "upstash_redis_rest_token": None,
        "_env_file": None,
    }
    values.update(overrides)
    return get_config("garage", 8020, **values)


def customer_body(name="Jane Driver", reg="ab12 cde"):
    return {"name": name, "mobileNumber": "07700900000", "registrationNumber": reg, "make": "Ford"}


class TestGarageService:
    """Test cases for GarageService."""

    @pytest.fixture
    def repository(self):
        return InMemoryGarageRepository()

    @pytest.fixture
    def garage_service(self, repository):
        return GarageService(service_config(), repository=repository)

    @pytest.fixture
    def client(self, garage_service):
        with TestClient(garage_service.app) as client:
            yield client

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "garage"
        assert data["cache"]["backend"] == "memory"

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"cache": "ok", "database": "ok"}

    def test_health_reports_disabled_cache(self, repository):
        """A missing cache is reported but the service stays healthy."""
        service = GarageService(service_config(redis_url=None), repository=repository)
        with TestClient(service.app) as client:
            data = client.get("/health").json()

        assert data["status"] == "ok"
        assert data["dependencies"]["cache"] == "disabled"

    def test_health_degraded_without_database(self, client, repository):
        """The database is required; the cache is not."""
        with patch.object(repository, "health_check", new_callable=AsyncMock, return_value=False):
            response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["dependencies"]["database"] == "error"

    def test_malformed_team_header_is_a_validation_error(self, client):
        response = client.get("/api/customers", headers={"X-Team-Id": "abc"})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_metrics_endpoint(self, client):
        client.get("/api/customers", headers=TEAM)
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "cache_requests_total" in response.text

    def test_cache_status(self, client):
        data = client.get("/cache/status").json()
        assert data == {"backend": "memory", "status": "enabled", "configured": True, "last_error": None}

    def test_missing_team_is_unauthorized(self, client):
        response = client.get("/api/customers")
        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION_ERROR"

    def test_customer_listing_is_cached(self, client, repository):
        """A repeated page read does not touch the repository."""
        client.post("/api/customers", json=customer_body(), headers=TEAM)

        first = client.get("/api/customers?page=1&pageSize=10", headers=TEAM).json()
        queries = repository.query_count
        second = client.get("/api/customers?page=1&pageSize=10", headers=TEAM).json()

        assert first == second
        assert repository.query_count == queries
        assert first["total"] == 1
        assert first["items"][0]["registrationNumber"] == "AB12 CDE"

    def test_create_invalidates_cached_pages(self, client):
        """A cached page reflects a mutation right after it."""
        client.post("/api/customers", json=customer_body("First"), headers=TEAM)
        assert client.get("/api/customers", headers=TEAM).json()["total"] == 1

        client.post("/api/customers", json=customer_body("Second"), headers=TEAM)
        page = client.get("/api/customers", headers=TEAM).json()

        assert page["total"] == 2
        assert [item["name"] for item in page["items"]] == ["Second", "First"]

    def test_update_and_delete_invalidate(self, client):
        created = client.post("/api/customers", json=customer_body(), headers=TEAM).json()
        client.get("/api/customers", headers=TEAM)
        client.get(f"/api/customers/{created['id']}", headers=TEAM)

        updated = client.put("/api/customers", json={"id": created["id"], "name": "Renamed"}, headers=TEAM)
        assert updated.status_code == 200
        assert client.get("/api/customers", headers=TEAM).json()["items"][0]["name"] == "Renamed"
        assert client.get(f"/api/customers/{created['id']}", headers=TEAM).json()["name"] == "Renamed"

        deleted = client.delete(f"/api/customers?id={created['id']}", headers=TEAM)
        assert deleted.json() == {"success": True}
        assert client.get("/api/customers", headers=TEAM).json()["total"] == 0
        assert client.get(f"/api/customers/{created['id']}", headers=TEAM).status_code == 404

    def test_other_team_cannot_read_cached_customer(self, client):
        created = client.post("/api/customers", json=customer_body(), headers=TEAM).json()
        assert client.get(f"/api/customers/{created['id']}", headers=TEAM).status_code == 200

        assert client.get(f"/api/customers/{created['id']}", headers=OTHER_TEAM).status_code == 404

    def test_customer_validation(self, client):
        response = client.post("/api/customers", json={"name": "No Phone"}, headers=TEAM)
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

        assert client.put("/api/customers", json={"name": "x"}, headers=TEAM).status_code == 400
        assert client.put("/api/customers", json={"id": 999, "name": "x"}, headers=TEAM).status_code == 404
        assert client.delete("/api/customers", headers=TEAM).status_code == 400

    def test_page_size_is_clamped(self, client):
        data = client.get("/api/customers?page=0&pageSize=1000", headers=TEAM).json()
        assert data["page"] == 1
        assert data["pageSize"] == 100

    def test_staff_lifecycle(self, client):
        body = {"fullName": "Sam Mechanic", "phoneNumber": "07700900001", "role": "mechanic"}
        created = client.post("/api/staff", json=body, headers=TEAM)
        assert created.status_code == 201
        assert created.json()["status"] == "active"

        assert client.get("/api/staff", headers=TEAM).json()["total"] == 1

        staff_id = created.json()["id"]
        client.put("/api/staff", json={"id": staff_id, "role": "lead"}, headers=TEAM)
        assert client.get("/api/staff", headers=TEAM).json()["items"][0]["role"] == "lead"

        client.delete(f"/api/staff?id={staff_id}", headers=TEAM)
        assert client.get("/api/staff", headers=TEAM).json()["total"] == 0

    def test_staff_validation(self, client):
        response = client.post("/api/staff", json={"fullName": "No Phone"}, headers=TEAM)
        assert response.status_code == 400

    def test_booking_flow(self, client):
        """Public bookings invalidate the cached admin listing."""
        assert client.get("/api/bookings", headers=TEAM).json()["total"] == 0

        body = {
            "firstName": "Ada",
            "lastName": "Lovelace",
            "phone": "07700900002",
            "email": "ada@example.com",
            "carReg": "XY99 ZZZ",
            "services": ["MOT"],
            "bookDate": "2026-11-02",
            "bookTime": "09:30",
        }
        response = client.post("/api/bookings", json=body)
        assert response.status_code == 201
        assert response.json()["booking"]["status"] == "pending"

        listing = client.get("/api/bookings", headers=TEAM).json()
        assert listing["total"] == 1
        assert listing["bookings"][0]["carReg"] == "XY99 ZZZ"

    def test_booking_requires_services(self, client):
        body = {
            "firstName": "Ada",
            "lastName": "Lovelace",
            "phone": "07700900002",
            "email": "ada@example.com",
            "carReg": "XY99 ZZZ",
            "services": [],
            "bookDate": "2026-11-02",
            "bookTime": "09:30",
        }
        response = client.post("/api/bookings", json=body)
        assert response.status_code == 400
        assert response.json()["details"]["missing"] == ["services"]

    def test_service_records_and_dashboard(self, client):
        customer = client.post("/api/customers", json=customer_body(), headers=TEAM).json()
        record = {
            "customerId": customer["id"],
            "vehicleReg": "ab12 cde",
            "serviceType": "Full Service",
            "totalCost": 150.5,
        }

        dashboard = client.get("/api/dashboard", headers=TEAM).json()
        assert dashboard["stats"]["totalRevenue"] == 0
        assert dashboard["stats"]["totalCustomers"] == 1
        assert len(dashboard["chart"]) == 30

        created = client.post("/api/service-records", json=record, headers=TEAM)
        assert created.status_code == 201
        assert created.json()["vehicleReg"] == "AB12 CDE"

        records = client.get(f"/api/service-records?customerId={customer['id']}", headers=TEAM).json()
        assert [r["id"] for r in records] == [created.json()["id"]]

        dashboard = client.get("/api/dashboard", headers=TEAM).json()
        assert dashboard["stats"]["totalRevenue"] == 150.5
        assert dashboard["stats"]["totalServiceRecords"] == 1
        assert dashboard["monthlyEarnings"] == 150.5
        assert dashboard["chart"][-1]["revenue"] == 150.5
        assert dashboard["yearlyBreakup"] == [{"month": datetime.now().strftime("%Y-%m"), "revenue": 150.5}]

        record_id = created.json()["id"]
        client.put(f"/api/service-records/{record_id}", json={"totalCost": 200}, headers=TEAM)
        assert client.get("/api/dashboard", headers=TEAM).json()["stats"]["totalRevenue"] == 200

        client.delete(f"/api/service-records/{record_id}", headers=TEAM)
        assert client.get(f"/api/service-records?customerId={customer['id']}", headers=TEAM).json() == []
        assert client.get("/api/dashboard", headers=TEAM).json()["stats"]["totalServiceRecords"] == 0

    def test_other_team_read_does_not_hide_service_history(self, client):
        """Another team reading first must not cache an empty history for the owner."""
        customer = client.post("/api/customers", json=customer_body(), headers=TEAM).json()
        record = {"customerId": customer["id"], "vehicleReg": "AB12 CDE", "serviceType": "MOT"}
        created = client.post("/api/service-records", json=record, headers=TEAM).json()
        url = f"/api/service-records?customerId={customer['id']}"

        assert client.get(url, headers=OTHER_TEAM).json() == []

        owner_view = client.get(url, headers=TEAM).json()
        assert [r["id"] for r in owner_view] == [created["id"]]
        assert client.get(url, headers=OTHER_TEAM).json() == []

    def test_service_record_validation(self, client):
        response = client.post("/api/service-records", json={"vehicleReg": "AB12"}, headers=TEAM)
        assert response.status_code == 400
        assert client.delete("/api/service-records/999", headers=TEAM).status_code == 404

    def test_flush_cache(self, client):
        client.get("/api/customers", headers=TEAM)
        assert client.delete("/cache").json() == {"flushed": True}

    def test_upstash_cache_survives_a_second_lifespan(self, repository):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"result": "PONG"}))
        store = UpstashStore("https://cache.example.com", "token", transport=transport)
        service = GarageService(service_config(redis_url=None), repository=repository, store=store)

        for _ in range(2):
            with TestClient(service.app) as client:
                status = client.get("/cache/status").json()
                assert status["backend"] == "upstash"
                assert status["status"] == "enabled"

    def test_disabled_cache_serves_fresh_data(self, repository):
        """Every read goes to the repository when no cache is configured."""
        service = GarageService(service_config(redis_url=None), repository=repository)
        with TestClient(service.app) as client:
            client.post("/api/customers", json=customer_body(), headers=TEAM)
            client.get("/api/customers", headers=TEAM)
            queries = repository.query_count
            data = client.get("/api/customers", headers=TEAM).json()

        assert data["total"] == 1
        assert repository.query_count == queries + 2
        assert isinstance(service.store, DisabledStore)


class TestDashboardSummary:
    """Dashboard aggregation with a fixed clock."""

    @pytest.mark.asyncio
    async def test_windows(self):
        repository = InMemoryGarageRepository()
        service = GarageService(service_config(), repository=repository, store=MemoryStore())
        now = datetime(2026, 10, 19, 12, 0)

        for days_ago, cost, status in (
            (0, 100.0, ServiceRecordStatus.COMPLETED),
            (3, 50.0, ServiceRecordStatus.COMPLETED),
            (45, 25.0, ServiceRecordStatus.COMPLETED),
            (1, 999.0, ServiceRecordStatus.PENDING),
        ):
            record = await repository.create_service_record(1, {
                "vehicle_reg": "AB12 CDE",
                "service_type": "Oil change",
                "total_cost": cost,
                "status": status,
            })
            repository._records[record.id] = record.model_copy(update={"created_at": now - timedelta(days=days_ago)})

        summary = await service.dashboard_summary(1, now=now)

        assert summary["stats"]["totalRevenue"] == 175.0
        assert summary["stats"]["totalServiceRecords"] == 4
        assert summary["monthlyEarnings"] == 150.0
        assert summary["chart"][0]["date"] == "2026-09-20"
        assert summary["chart"][-1] == {"date": "2026-10-19", "revenue": 100.0}
        assert summary["chart"][-4] == {"date": "2026-10-16", "revenue": 50.0}
        assert summary["yearlyBreakup"] == [
            {"month": "2026-09", "revenue": 25.0},
            {"month": "2026-10", "revenue": 150.0},
        ]

        cached = await service.store.get(CacheKeys.dashboard_revenue(1))
        assert cached == 175.0
