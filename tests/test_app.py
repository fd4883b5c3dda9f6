"""
Application wiring tests: health check, banner and the rejection envelope.

Run with: pytest tests/test_app.py -v
"""

from app.config import settings
from app.core.errors import ReasonCode, rejection_for_invalid_request


class TestHealth:

    def test_healthy_with_database(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"] == {"database": "connected"}
        assert body["auction_timezone"] == settings.AUCTION_TIMEZONE

    def test_root_banner(self, client):
        body = client.get("/").json()
        assert body["service"] == settings.APP_NAME
        assert body["api"] == "/api/v1"


class TestRejectionEnvelope:

    def test_unknown_bid_uses_code_and_message(self, client, admin_headers):
        response = client.get("/api/v1/shipment-bids/does-not-exist", headers=admin_headers)
        assert response.status_code == 404
        assert set(response.json()) == {"code", "message"}
        assert response.json()["code"] == "BidNotFound"


class TestRequestErrors:

    def test_first_mapped_field_decides_code(self):
        rejection = rejection_for_invalid_request([
            {"loc": ("body", "no_of_packages"), "msg": "Input should be a valid integer"},
            {"loc": ("body", "amount"), "msg": "Input should be a valid number"},
        ])
        assert rejection.code == ReasonCode.AMOUNT_NOT_POSITIVE
        assert rejection.message == "amount: Input should be a valid number"
        assert rejection.status_code == 422

    def test_unmapped_fields_are_invalid_request(self):
        rejection = rejection_for_invalid_request([{"loc": ("body", "no_of_packages"), "msg": "bad"}])
        assert rejection.to_dict() == {"code": "InvalidRequest", "message": "no_of_packages: bad"}

    def test_query_errors_use_the_parameter_name(self, client, admin_headers):
        response = client.get("/api/v1/vendors", params={"limit": 0}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["code"] == "InvalidRequest"
        assert response.json()["message"].startswith("limit:")
