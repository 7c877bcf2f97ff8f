"""
Shared fixtures for the API test suite.

The application runs on the in-memory storage backend with cheap bcrypt
rounds and a bootstrap admin whose PIN is ``ADMIN_PIN``.
"""

import os

# Importing ``api.src.main`` builds the default app from the environment
os.environ.setdefault("BIZ_API_STORAGE_BACKEND", "memory")
os.environ.setdefault("BIZ_API_ENVIRONMENT", "development")
os.environ.setdefault("BIZ_API_JWT_SECRET_KEY", "test-secret-key-do-not-use-in-production")
os.environ.setdefault("BIZ_API_PIN_BCRYPT_ROUNDS", "4")
os.environ.setdefault("BIZ_API_RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BIZ_API_SETTINGS_CACHE_PATH", "")
os.environ.setdefault("BIZ_API_LOG_FORMAT", "text")

from typing import Dict, Iterator

import pytest
from fastapi.testclient import TestClient

from api.src.config import Settings, clear_settings_cache
from api.src.main import create_app
from api.src.models.auth import Role

from tests.helpers import ADMIN_PIN, create_user, login, make_settings


@pytest.fixture(autouse=True)
def _fresh_settings_cache() -> Iterator[None]:
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    """Test client with the lifespan started (fresh in-memory stores)."""
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(client: TestClient) -> Dict[str, str]:
    return login(client, ADMIN_PIN)


@pytest.fixture
def user_headers(client: TestClient, admin_headers: Dict[str, str]) -> Dict[str, str]:
    return create_user(client, admin_headers, Role.USER, "1357", "clerk@almsar.ae")


@pytest.fixture
def viewer_headers(client: TestClient, admin_headers: Dict[str, str]) -> Dict[str, str]:
    return create_user(client, admin_headers, Role.VIEWER, "9753", "viewer@almsar.ae")
