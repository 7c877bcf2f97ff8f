"""
Unit tests for PIN authentication and session tokens.

Tests cover:
- PIN hashing and verification
- PIN lookup with and without an email
- Login responses free of PIN data
- Token creation, tampering and expiry
- Current user resolution after role changes and deletion
- Bootstrap admin creation
"""

import pytest
from datetime import timedelta
from jose import jwt

from api.src.config import Settings
from api.src.models.auth import Role
from api.src.repositories.memory import InMemoryUserRepository
from api.src.services.auth_service import AuthService


def make_service(**overrides) -> AuthService:
    values = {
        "storage_backend": "memory",
        "jwt_secret_key": "unit-test-secret-key-with-32-characters!",
        "pin_bcrypt_rounds": 4,
    }
    values.update(overrides)
    return AuthService(InMemoryUserRepository(), Settings(**values))


async def add_user(service: AuthService, email: str, pin: str, role: Role = Role.USER):
    return await service.user_repo.create_user(
        email=email,
        name=email.split("@")[0],
        pin_hash=service.hash_pin(pin),
        role=role,
    )


# ============================================================================
# PIN HASHING
# ============================================================================


class TestPinHashing:
    """Test bcrypt PIN hashes."""

    def test_hash_is_not_the_pin(self):
        service = make_service()
        pin_hash = service.hash_pin("1234")
        assert pin_hash != "1234"
        assert pin_hash.startswith("$2")

    def test_verify_matching_pin(self):
        service = make_service()
        assert service.verify_pin("1234", service.hash_pin("1234"))

    def test_verify_wrong_pin(self):
        service = make_service()
        assert not service.verify_pin("4321", service.hash_pin("1234"))

    def test_unreadable_hash_is_a_mismatch(self):
        service = make_service()
        assert service.verify_pin("1234", "not-a-bcrypt-hash") is False


# ============================================================================
# PIN LOOKUP AND LOGIN
# ============================================================================


class TestLogin:
    """Test PIN lookup and login."""

    @pytest.mark.asyncio
    async def test_pin_matches_any_user(self):
        service = make_service()
        await add_user(service, "one@almsar.ae", "1111")
        second = await add_user(service, "two@almsar.ae", "2222")

        user = await service.verify_pin_code("2222")
        assert user is not None
        assert user.id == second.id

    @pytest.mark.asyncio
    async def test_email_restricts_the_match(self):
        service = make_service()
        await add_user(service, "one@almsar.ae", "1111")
        await add_user(service, "two@almsar.ae", "2222")

        assert await service.verify_pin_code("2222", email="one@almsar.ae") is None
        assert await service.verify_pin_code("1111", email="ONE@almsar.ae") is not None

    @pytest.mark.asyncio
    async def test_empty_pin_never_matches(self):
        service = make_service()
        await add_user(service, "one@almsar.ae", "1111")
        assert await service.verify_pin_code("") is None

    @pytest.mark.asyncio
    async def test_login_returns_user_without_pin(self):
        service = make_service()
        await add_user(service, "one@almsar.ae", "1111", Role.MANAGER)

        session = await service.login("1111")
        assert session is not None
        body = session.model_dump(by_alias=True)
        assert body["email"] == "one@almsar.ae"
        assert body["role"] == Role.MANAGER
        assert body["tokenType"] == "bearer"
        assert body["expiresIn"] == 480 * 60
        assert not any("pin" in key.lower() for key in body)

    @pytest.mark.asyncio
    async def test_login_with_wrong_pin(self):
        service = make_service()
        await add_user(service, "one@almsar.ae", "1111")
        assert await service.login("9999") is None


# ============================================================================
# SESSION TOKENS
# ============================================================================


class TestSessionTokens:
    """Test JWT session tokens."""

    @pytest.mark.asyncio
    async def test_token_claims(self):
        service = make_service()
        user = await add_user(service, "one@almsar.ae", "1111", Role.ADMIN)

        payload = service.decode_token(service.create_access_token(user))
        assert payload.sub == user.id
        assert payload.email == "one@almsar.ae"
        assert payload.role == Role.ADMIN
        assert payload.exp > payload.iat

    @pytest.mark.asyncio
    async def test_expired_token_is_rejected(self):
        service = make_service()
        user = await add_user(service, "one@almsar.ae", "1111")

        token = service.create_access_token(user, expires_delta=timedelta(seconds=-10))
        assert service.decode_token(token) is None
        assert await service.get_current_user(token) is None

    @pytest.mark.asyncio
    async def test_token_signed_with_another_key_is_rejected(self):
        service = make_service()
        user = await add_user(service, "one@almsar.ae", "1111")

        other = make_service(jwt_secret_key="another-secret-key-that-is-long-enough!")
        token = other.create_access_token(user)
        assert service.decode_token(token) is None

    def test_token_with_missing_claims_is_rejected(self):
        service = make_service()
        token = jwt.encode(
            {"sub": "user_1"},
            service.settings.jwt_secret_key,
            algorithm=service.settings.jwt_algorithm,
        )
        assert service.decode_token(token) is None

    @pytest.mark.asyncio
    async def test_current_user_follows_stored_role(self):
        service = make_service()
        user = await add_user(service, "one@almsar.ae", "1111", Role.USER)
        token = service.create_access_token(user)

        await service.user_repo.update_user(user.id, role=Role.VIEWER)

        current = await service.get_current_user(token)
        assert current.role == Role.VIEWER

    @pytest.mark.asyncio
    async def test_deleted_user_loses_session(self):
        service = make_service()
        user = await add_user(service, "one@almsar.ae", "1111")
        token = service.create_access_token(user)

        await service.user_repo.delete_user(user.id)
        assert await service.get_current_user(token) is None


# ============================================================================
# BOOTSTRAP ADMIN
# ============================================================================


class TestBootstrapAdmin:
    """Test the admin created for empty user stores."""

    @pytest.mark.asyncio
    async def test_created_when_pin_configured(self):
        service = make_service(bootstrap_admin_pin="2468", bootstrap_admin_email="boss@almsar.ae")

        admin = await service.ensure_bootstrap_admin()
        assert admin.role == Role.ADMIN
        assert (await service.verify_pin_code("2468")).email == "boss@almsar.ae"

    @pytest.mark.asyncio
    async def test_created_only_once(self):
        service = make_service(bootstrap_admin_pin="2468")

        await service.ensure_bootstrap_admin()
        assert await service.ensure_bootstrap_admin() is None
        assert await service.user_repo.count_users() == 1

    @pytest.mark.asyncio
    async def test_skipped_without_pin(self):
        service = make_service(bootstrap_admin_pin=None)
        assert await service.ensure_bootstrap_admin() is None
        assert await service.user_repo.count_users() == 0
