"""Helpers shared by the API tests."""

from typing import Dict, Optional

from fastapi.testclient import TestClient

from api.src.config import Settings
from api.src.models.auth import Role

ADMIN_PIN = "2468"
ADMIN_EMAIL = "admin@almsar.ae"


def make_settings(**overrides) -> Settings:
    """In-memory settings with cheap PIN hashing and a bootstrap admin."""
    values = {
        "storage_backend": "memory",
        "environment": "development",
        "jwt_secret_key": "test-secret-key-do-not-use-in-production",
        "pin_bcrypt_rounds": 4,
        "rate_limit_enabled": False,
        "settings_cache_path": None,
        "settings_hydrate_on_startup": True,
        "bootstrap_admin_email": ADMIN_EMAIL,
        "bootstrap_admin_name": "Administrator",
        "bootstrap_admin_pin": ADMIN_PIN,
        "log_format": "text",
    }
    values.update(overrides)
    return Settings(**values)


def login(client: TestClient, pin: str, email: Optional[str] = None) -> Dict[str, str]:
    """Log in and return the Authorization header for the session."""
    body = {"pinCode": pin}
    if email:
        body["email"] = email
    response = client.post("/api/auth/login", json=body)
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['accessToken']}"}


def create_user(
    client: TestClient,
    admin_headers: Dict[str, str],
    role: Role,
    pin: str,
    email: str
) -> Dict[str, str]:
    """Create a user through the API and return its session header."""
    response = client.post(
        "/api/users",
        json={"email": email, "name": f"{role.value} user", "pinCode": pin, "role": role.value},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    return login(client, pin, email)
