"""
Contract tests for authentication API endpoints.

Tests verify the API contract for authentication endpoints:
- PIN login status codes and error messages
- Login responses free of PIN data
- Session token usage on /auth/me and /auth/permissions
- Login rate limiting
"""

from fastapi.testclient import TestClient

from api.src.main import create_app
from api.src.routers.auth import limiter

from tests.helpers import ADMIN_EMAIL, ADMIN_PIN, make_settings


# ============================================================================
# LOGIN
# ============================================================================


class TestLoginEndpointContract:
    """POST /api/auth/login"""

    def test_missing_pin(self, client):
        response = client.post("/api/auth/login", json={})
        assert response.status_code == 400
        assert response.json() == {"error": "PIN code is required"}

    def test_empty_pin(self, client):
        response = client.post("/api/auth/login", json={"pinCode": ""})
        assert response.status_code == 400
        assert response.json()["error"] == "PIN code is required"

    def test_wrong_pin(self, client):
        response = client.post("/api/auth/login", json={"pinCode": "0000"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid PIN code"}

    def test_successful_login(self, client):
        response = client.post("/api/auth/login", json={"pinCode": ADMIN_PIN})
        assert response.status_code == 200

        body = response.json()
        assert body["email"] == ADMIN_EMAIL
        assert body["role"] == "admin"
        assert body["tokenType"] == "bearer"
        assert body["expiresIn"] == 480 * 60
        assert len(body["accessToken"]) > 10
        assert not any("pin" in key.lower() for key in body)

    def test_email_must_match_pin_owner(self, client, user_headers):
        response = client.post("/api/auth/login", json={"pinCode": ADMIN_PIN, "email": "clerk@almsar.ae"})
        assert response.status_code == 401

    def test_malformed_body(self, client):
        response = client.post(
            "/api/auth/login",
            content="pin=1234",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    def test_rate_limited(self):
        app = create_app(make_settings(rate_limit_enabled=True))
        limiter.reset()
        try:
            with TestClient(app) as client:
                statuses = [
                    client.post("/api/auth/login", json={"pinCode": "0000"}).status_code
                    for _ in range(11)
                ]
        finally:
            limiter.reset()
            limiter.enabled = False

        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429

    def test_rate_limit_follows_app_settings(self):
        app = create_app(make_settings(rate_limit_enabled=True, rate_limit_login="2/minute"))
        limiter.reset()
        try:
            with TestClient(app) as client:
                statuses = [
                    client.post("/api/auth/login", json={"pinCode": "0000"}).status_code
                    for _ in range(3)
                ]
        finally:
            limiter.reset()
            limiter.enabled = False

        assert statuses == [401, 401, 429]


# ============================================================================
# SESSION
# ============================================================================


class TestSessionEndpoints:
    """GET /api/auth/me and /api/auth/permissions"""

    def test_me(self, client, admin_headers):
        response = client.get("/api/auth/me", headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["email"] == ADMIN_EMAIL
        assert "pinHash" not in body

    def test_me_requires_session(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["error"] == "Not authenticated"

    def test_admin_permissions(self, client, admin_headers):
        body = client.get("/api/auth/permissions", headers=admin_headers).json()
        assert body["role"] == "admin"
        assert "edit_settings" in body["permissions"]
        assert body["entities"]["customers"] == {"canEdit": True, "canDelete": True, "canCreate": True}

    def test_user_permissions(self, client, user_headers):
        body = client.get("/api/auth/permissions", headers=user_headers).json()
        assert body["role"] == "user"
        assert "delete_customers" not in body["permissions"]
        assert body["entities"]["customers"] == {"canEdit": True, "canDelete": False, "canCreate": True}
        assert body["entities"]["payslips"]["canEdit"] is False

    def test_deleted_user_loses_session(self, client, admin_headers, user_headers):
        me = client.get("/api/auth/me", headers=user_headers).json()
        client.delete(f"/api/users/{me['id']}", headers=admin_headers)

        response = client.get("/api/auth/me", headers=user_headers)
        assert response.status_code == 401
