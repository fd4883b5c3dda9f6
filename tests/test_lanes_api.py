"""
API tests for the lane registry.

Run with: pytest tests/test_lanes_api.py -v
"""

from tests.conftest import auth_headers


class TestLaneCreate:

    def test_create_normalizes(self, api):
        lane = api.create_lane(" new delhi ", "mumbai")
        assert lane["origin"] == "NEWDELHI"
        assert lane["destination"] == "MUMBAI"
        assert lane["name"] == "NEWDELHI-MUMBAI"
        assert lane["code"] == "NEW-MUM"
        assert lane["is_active"] is True

    def test_duplicate_rejected(self, api, client, admin_headers):
        api.create_lane("Delhi", "Mumbai")
        response = client.post("/api/v1/lanes", json={"origin": "DELHI ", "destination": "mumbai"}, headers=admin_headers)

        assert response.status_code == 409
        assert response.json() == {"code": "DuplicateLane", "message": "Lane DELHI-MUMBAI already exists"}

    def test_reverse_direction_is_a_different_lane(self, api):
        api.create_lane("Delhi", "Mumbai")
        assert api.create_lane("Mumbai", "Delhi")["name"] == "MUMBAI-DELHI"

    def test_same_origin_and_destination(self, client, admin_headers):
        response = client.post("/api/v1/lanes", json={"origin": "Pune", "destination": " pune"}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["code"] == "SameOriginDestination"

    def test_empty_city(self, client, admin_headers):
        response = client.post("/api/v1/lanes", json={"origin": "   ", "destination": "Pune"}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["code"] == "EmptyCity"

    def test_city_of_wrong_type(self, client, admin_headers):
        response = client.post("/api/v1/lanes", json={"origin": 42, "destination": "Pune"}, headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["code"] == "EmptyCity"
        assert response.json()["message"].startswith("origin:")

    def test_missing_body_is_invalid_request(self, client, admin_headers):
        response = client.post("/api/v1/lanes", headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["code"] == "InvalidRequest"

    def test_vendor_cannot_create(self, client):
        response = client.post(
            "/api/v1/lanes",
            json={"origin": "Delhi", "destination": "Mumbai"},
            headers=auth_headers("v1", "vendor"),
        )
        assert response.status_code == 403
        assert response.json()["code"] == "Forbidden"

    def test_requires_token(self, client):
        assert client.get("/api/v1/lanes").status_code in (401, 403)
        response = client.get("/api/v1/lanes", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_unknown_role_rejected(self, client):
        response = client.get("/api/v1/lanes", headers=auth_headers("x", "superuser"))
        assert response.status_code == 401


class TestLaneLifecycle:

    def test_deactivate_and_recreate(self, api, client, admin_headers):
        lane = api.create_lane("Delhi", "Mumbai")

        response = client.delete(f"/api/v1/lanes/{lane['id']}", headers=admin_headers)
        assert response.status_code == 204

        active = client.get("/api/v1/lanes", params={"is_active": True}, headers=admin_headers).json()
        inactive = client.get("/api/v1/lanes", params={"is_active": False}, headers=admin_headers).json()
        assert active["total"] == 0
        assert [item["id"] for item in inactive["items"]] == [lane["id"]]

        # Inactive lanes do not block the route
        assert api.create_lane("Delhi", "Mumbai")["id"] != lane["id"]

    def test_deactivate_twice_and_unknown_are_noops(self, api, client, admin_headers):
        lane = api.create_lane("Delhi", "Mumbai")
        assert client.delete(f"/api/v1/lanes/{lane['id']}", headers=admin_headers).status_code == 204
        assert client.delete(f"/api/v1/lanes/{lane['id']}", headers=admin_headers).status_code == 204
        assert client.delete("/api/v1/lanes/does-not-exist", headers=admin_headers).status_code == 204

    def test_update_into_duplicate(self, api, client, admin_headers):
        api.create_lane("Delhi", "Mumbai")
        other = api.create_lane("Delhi", "Pune")

        response = client.put(f"/api/v1/lanes/{other['id']}", json={"destination": "Mumbai"}, headers=admin_headers)
        assert response.status_code == 409

    def test_update_keeps_own_route(self, api, client, admin_headers):
        lane = api.create_lane("Delhi", "Mumbai")
        response = client.put(f"/api/v1/lanes/{lane['id']}", json={"origin": "delhi"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["name"] == "DELHI-MUMBAI"

    def test_reactivate_into_duplicate(self, api, client, admin_headers):
        old = api.create_lane("Delhi", "Mumbai")
        client.delete(f"/api/v1/lanes/{old['id']}", headers=admin_headers)
        api.create_lane("Delhi", "Mumbai")

        response = client.put(f"/api/v1/lanes/{old['id']}", json={"is_active": True}, headers=admin_headers)
        assert response.status_code == 409

    def test_unknown_lane(self, client, admin_headers):
        response = client.get("/api/v1/lanes/nope", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "LaneNotFound"

        response = client.put("/api/v1/lanes/nope", json={"origin": "Goa"}, headers=admin_headers)
        assert response.status_code == 404

    def test_vendor_can_list(self, api, client):
        api.create_lane("Delhi", "Mumbai")
        response = client.get("/api/v1/lanes", headers=auth_headers("v1", "vendor"))
        assert response.status_code == 200
        assert response.json()["total"] == 1
