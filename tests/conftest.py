# tests/conftest.py

import asyncio
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Settings are read on import, so the environment has to be ready first
_TEST_DIR = Path(tempfile.mkdtemp(prefix="lanebid-tests-"))
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR / 'test.db'}"
os.environ["ADMIN_USER_ID"] = "admin"
os.environ["NOTIFICATIONS_ENABLED"] = "true"

import pytest  # noqa: E402
from starlette.testclient import TestClient  # noqa: E402

from app.core.security import create_access_token  # noqa: E402
from app.database import drop_db, init_db  # noqa: E402
from app.main import app  # noqa: E402


def run_async(coro):
    """Helper to run async coroutines in sync tests."""
    return asyncio.run(coro)


def auth_headers(user_id: str, role: str, name: str = None) -> dict:
    token = create_access_token(user_id, additional_claims={"role": role, "name": name or user_id})
    return {"Authorization": f"Bearer {token}"}


def bid_window(start_offset_minutes: int = -1, end_offset_minutes: int = 60) -> dict:
    now = datetime.now(timezone.utc)
    return {
        "bid_start_at": (now + timedelta(minutes=start_offset_minutes)).isoformat(),
        "bid_end_at": (now + timedelta(minutes=end_offset_minutes)).isoformat(),
    }


@pytest.fixture(scope="function")
def fresh_db():
    """Empty tables for every test that touches the database."""
    run_async(drop_db())
    run_async(init_db())
    yield


@pytest.fixture(scope="function")
def client(fresh_db):
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers():
    return auth_headers("admin", "admin", "Shipper Admin")


@pytest.fixture
def api(client, admin_headers):
    """Small helper around the client for setting up lanes, vendors and bids."""
    return ApiHelper(client, admin_headers)


class ApiHelper:
    def __init__(self, client: TestClient, admin_headers: dict):
        self.client = client
        self.admin = admin_headers

    def create_lane(self, origin: str, destination: str) -> dict:
        response = self.client.post("/api/v1/lanes", json={"origin": origin, "destination": destination}, headers=self.admin)
        assert response.status_code == 201, response.text
        return response.json()

    def create_vendor(self, vendor_id: str, name: str, lanes: list) -> dict:
        response = self.client.post(
            "/api/v1/vendors",
            json={"id": vendor_id, "name": name, "lanes": lanes, "vehicle_types": ["Truck"]},
            headers=self.admin,
        )
        assert response.status_code == 201, response.text
        return response.json()

    def create_bid(self, pickup: str, delivery: str, **overrides) -> dict:
        payload = {"pickup_city": pickup, "delivery_city": delivery, **bid_window(), **overrides}
        response = self.client.post("/api/v1/shipment-bids", json=payload, headers=self.admin)
        assert response.status_code == 201, response.text
        return response.json()

    def vendor(self, vendor_id: str, name: str = None) -> dict:
        return auth_headers(vendor_id, "vendor", name or vendor_id)
