"""
Contract tests for user management endpoints.

Tests verify:
- Admin-only access
- Required fields and PIN format checks
- Responses never carry PIN data
- Role and PIN changes taking effect on login
"""

from tests.helpers import login


def new_user(**overrides):
    body = {"email": "driver@almsar.ae", "name": "Driver", "pinCode": "4455", "role": "user"}
    body.update(overrides)
    return body


class TestUserManagement:
    """CRUD on /api/users"""

    def test_bootstrap_admin_listed(self, client, admin_headers):
        response = client.get("/api/users", headers=admin_headers)
        assert response.status_code == 200
        assert [user["role"] for user in response.json()] == ["admin"]

    def test_create_user(self, client, admin_headers):
        response = client.post("/api/users", json=new_user(), headers=admin_headers)
        assert response.status_code == 201

        body = response.json()
        assert body["id"].startswith("user_")
        assert body["email"] == "driver@almsar.ae"
        assert body["role"] == "user"
        assert not any("pin" in key.lower() for key in body)

        session = login(client, "4455")
        assert client.get("/api/auth/me", headers=session).json()["id"] == body["id"]

    def test_missing_fields(self, client, admin_headers):
        response = client.post("/api/users", json={"email": "driver@almsar.ae"}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields"}

    def test_pin_must_be_digits(self, client, admin_headers):
        response = client.post("/api/users", json=new_user(pinCode="12ab"), headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid PIN code"

    def test_pin_too_short(self, client, admin_headers):
        response = client.post("/api/users", json=new_user(pinCode="12"), headers=admin_headers)
        assert response.status_code == 400

    def test_invalid_role(self, client, admin_headers):
        response = client.post("/api/users", json=new_user(role="owner"), headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    def test_duplicate_email(self, client, admin_headers):
        client.post("/api/users", json=new_user(), headers=admin_headers)
        response = client.post("/api/users", json=new_user(pinCode="7788"), headers=admin_headers)
        assert response.status_code == 400

    def test_get_missing_user(self, client, admin_headers):
        response = client.get("/api/users/user_missing", headers=admin_headers)
        assert response.status_code == 404
        assert response.json() == {"error": "User not found"}

    def test_update_role_and_pin(self, client, admin_headers):
        user = client.post("/api/users", json=new_user(), headers=admin_headers).json()

        response = client.put(
            f"/api/users/{user['id']}",
            json={"role": "manager", "pinCode": "8899"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["role"] == "manager"
        assert response.json()["name"] == "Driver"

        assert client.post("/api/auth/login", json={"pinCode": "4455"}).status_code == 401
        session = login(client, "8899")
        assert client.get("/api/auth/permissions", headers=session).json()["role"] == "manager"

    def test_update_missing_user(self, client, admin_headers):
        response = client.put("/api/users/user_missing", json={"name": "Ghost"}, headers=admin_headers)
        assert response.status_code == 404

    def test_delete_user(self, client, admin_headers):
        user = client.post("/api/users", json=new_user(), headers=admin_headers).json()

        response = client.delete(f"/api/users/{user['id']}", headers=admin_headers)
        assert response.json() == {"success": True}
        assert client.post("/api/auth/login", json={"pinCode": "4455"}).status_code == 401


class TestUserManagementAccess:
    """Only settings editors manage users."""

    def test_manager_cannot_manage_users(self, client, admin_headers):
        client.post("/api/users", json=new_user(role="manager"), headers=admin_headers)
        manager = login(client, "4455")

        response = client.get("/api/users", headers=manager)
        assert response.status_code == 403
        assert response.json()["details"] == "edit_settings required"

    def test_anonymous_cannot_list_users(self, client):
        assert client.get("/api/users").status_code == 401
