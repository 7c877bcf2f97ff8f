"""
Contract tests for the settings endpoints.

Tests verify:
- The stored document is readable without a session
- Updates merge over the stored document and reach the running store
- Only settings editors can change or reset settings
- Company logo uploads as data URLs
"""

from fastapi.testclient import TestClient

from api.src.main import create_app
from api.src.services.settings_service import DEFAULT_SETTINGS

from tests.helpers import ADMIN_PIN, login, make_settings


class TestSettingsDocument:
    """GET / PUT /api/settings"""

    def test_empty_before_first_save(self, client):
        response = client.get("/api/settings")
        assert response.status_code == 200
        assert response.json() == {"settings": {}, "updatedAt": None}

    def test_update_and_read_back(self, client, admin_headers):
        response = client.put("/api/settings", json={"companyName": "Acme Transport"}, headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["savedToDatabase"] is True
        assert body["settings"]["companyName"] == "Acme Transport"

        stored = client.get("/api/settings").json()
        assert stored["settings"]["companyName"] == "Acme Transport"
        assert stored["updatedAt"].endswith("Z")

    def test_updates_merge(self, client, admin_headers):
        client.put("/api/settings", json={"companyName": "Acme Transport"}, headers=admin_headers)
        client.put("/api/settings", json={"currency": "USD"}, headers=admin_headers)

        stored = client.get("/api/settings").json()["settings"]
        assert stored["companyName"] == "Acme Transport"
        assert stored["currency"] == "USD"

    def test_body_must_be_an_object(self, client, admin_headers):
        response = client.put("/api/settings", json=["currency", "USD"], headers=admin_headers)
        assert response.status_code == 400

    def test_reset(self, client, admin_headers):
        client.put("/api/settings", json={"currency": "USD"}, headers=admin_headers)

        response = client.post("/api/settings/reset", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["settings"] == DEFAULT_SETTINGS
        assert client.get("/api/settings").json()["settings"]["currency"] == "AED"


class TestSettingsAccess:

    def test_anonymous_cannot_update(self, client):
        assert client.put("/api/settings", json={"currency": "USD"}).status_code == 401

    def test_user_cannot_update(self, client, user_headers):
        response = client.put("/api/settings", json={"currency": "USD"}, headers=user_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "Permission denied"

    def test_user_cannot_reset(self, client, user_headers):
        assert client.post("/api/settings/reset", headers=user_headers).status_code == 403

    def test_failed_reset_keeps_running_settings(self, client, admin_headers, monkeypatch):
        client.put("/api/settings", json={"currency": "USD"}, headers=admin_headers)
        services = client.app.state.services

        async def save_fails(settings):
            raise RuntimeError("db down")

        monkeypatch.setattr(services.settings_repo, "save_settings", save_fails)

        response = client.post("/api/settings/reset", headers=admin_headers)
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to save settings", "details": "db down"}
        assert services.settings_store.get()["currency"] == "USD"


# PNG file signature only
PNG_DATA_URL = "data:image/png;base64,iVBORw0KGgo="


class TestLogoUpload:
    """POST /api/settings/logo"""

    def test_logo_stored_in_settings_document(self, client, admin_headers):
        response = client.post("/api/settings/logo", json={"base64": PNG_DATA_URL}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json() == {"logoUrl": PNG_DATA_URL, "savedToDatabase": True}

        assert client.get("/api/settings").json()["settings"]["logoUrl"] == PNG_DATA_URL
        assert client.app.state.services.settings_store.get()["logoUrl"] == PNG_DATA_URL

    def test_missing_base64(self, client, admin_headers):
        response = client.post("/api/settings/logo", json={}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json() == {"error": 'No base64 image provided. Send { base64: "data:image/..." }.'}

    def test_not_a_data_url(self, client, admin_headers):
        response = client.post("/api/settings/logo", json={"base64": "iVBORw0KGgo="}, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid base64 format. Use data:image/...;base64,..."

    def test_invalid_json(self, client, admin_headers):
        response = client.post(
            "/api/settings/logo",
            content=b"{not json",
            headers={**admin_headers, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid JSON body."

    def test_json_required(self, client, admin_headers):
        response = client.post(
            "/api/settings/logo",
            content=b"logo",
            headers={**admin_headers, "Content-Type": "text/plain"},
        )
        assert response.status_code == 400

    def test_non_image_rejected(self, client, admin_headers):
        response = client.post(
            "/api/settings/logo",
            json={"base64": "data:text/plain;base64,aGVsbG8="},
            headers=admin_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Unsupported image type."

    def test_too_large(self):
        with TestClient(create_app(make_settings(settings_logo_max_bytes=4))) as client:
            headers = login(client, ADMIN_PIN)
            response = client.post("/api/settings/logo", json={"base64": PNG_DATA_URL}, headers=headers)

        assert response.status_code == 400
        assert response.json() == {"error": "Logo is too large.", "details": "Maximum size is 4 bytes"}

    def test_user_cannot_upload(self, client, user_headers):
        response = client.post("/api/settings/logo", json={"base64": PNG_DATA_URL}, headers=user_headers)
        assert response.status_code == 403
