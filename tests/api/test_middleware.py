"""Tests for API key authentication, identity headers and request ids."""


class TestApiKey:
    """Tests for the API key middleware."""

    async def test_missing_key(self, client):
        response = client.get("/api/cart")

        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    async def test_wrong_scheme(self, client):
        response = client.get("/api/cart", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401
        assert "Bearer <api_key>" in response.json()["message"]

    async def test_invalid_key(self, client):
        response = client.get("/api/cart", headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_API_KEY"


class TestIdentity:
    """Tests for the gateway identity headers."""

    async def test_missing_user_header(self, auth_client):
        response = auth_client.get("/api/cart")

        assert response.status_code == 401
        body = response.json()
        assert body["error_code"] == "UNAUTHENTICATED"
        assert body["request_id"]

    async def test_malformed_user_header(self, auth_client):
        response = auth_client.get("/api/cart", headers={"X-User-Id": "alice"})

        assert response.status_code == 401

    async def test_admin_route_requires_admin_role(self, auth_client, alice):
        response = auth_client.get("/api/admin/orders", headers=alice)

        assert response.status_code == 403
        assert response.json()["error_code"] == "FORBIDDEN"

    async def test_role_prefix_accepted(self, auth_client, admin):
        response = auth_client.get("/api/admin/orders", headers=admin)

        assert response.status_code == 200


class TestRequestId:
    """Tests for request id correlation."""

    async def test_generated_when_absent(self, client):
        response = client.get("/health")

        assert response.headers["X-Request-ID"]

    async def test_echoed_when_present(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    async def test_error_body_carries_request_id(self, auth_client):
        response = auth_client.get("/api/cart", headers={"X-Request-ID": "req-456"})

        assert response.json()["request_id"] == "req-456"
