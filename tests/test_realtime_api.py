"""
Websocket change feed tests.

Run with: pytest tests/test_realtime_api.py -v
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from app.core.security import create_access_token


WS = "/api/v1/realtime/ws"


def token_for(user_id: str, role: str) -> str:
    return create_access_token(user_id, additional_claims={"role": role, "name": user_id})


class TestRealtimeFeed:

    def test_bad_token_is_refused(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"{WS}?token=not-a-jwt") as websocket:
                websocket.receive_json()
        assert exc_info.value.code == 1008

    def test_admin_hears_lane_changes(self, client, api):
        with client.websocket_connect(f"{WS}?token={token_for('admin', 'admin')}") as websocket:
            lane = api.create_lane("Delhi", "Mumbai")
            message = websocket.receive_json()

        assert message == {"collection": "lanes", "event": "created", "id": lane["id"]}

    def test_vendor_hears_offer_on_its_bid(self, client, api):
        lane = api.create_lane("Delhi", "Mumbai")
        api.create_vendor("v1", "Speedy", [lane["id"]])
        bid = api.create_bid("Delhi", "Mumbai")

        with client.websocket_connect(f"{WS}?token={token_for('v1', 'vendor')}") as websocket:
            response = client.post(
                f"/api/v1/shipment-bids/{bid['id']}/offers",
                json={"amount": 45000},
                headers=api.vendor("v1"),
            )
            assert response.status_code == 201
            message = websocket.receive_json()

        assert message["collection"] == "shipment_bids"
        assert message["id"] == bid["id"]
        assert message["event"] == "updated"
