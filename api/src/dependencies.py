"""
FastAPI dependency injection for storage, authentication, and services.

Provides injectable dependencies for:
- Database connection pool (asyncpg)
- Repository instances per entity kind
- Session authentication (bearer token validation)
- Service instances (auth, settings store, notifications)

Shared resources live on an ``AppState`` container attached to
``app.state.services`` by the application lifespan.
"""

from typing import Callable, Dict, Optional, Union

import asyncpg
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from api.src.config import Settings
from api.src.errors import AuthError
from api.src.models.auth import CurrentUser
from api.src.repositories.base import EntityRepository
from api.src.repositories.memory import InMemorySettingsRepository, InMemoryUserRepository
from api.src.repositories.postgres import init_connection
from api.src.repositories.settings_repo import SettingsRepository
from api.src.repositories.user_repo import UserRepository
from api.src.services.auth_service import AuthService
from api.src.services.notification_service import NotificationService
from api.src.services.settings_service import SettingsStore

logger = structlog.get_logger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


# ============================================================================
# APPLICATION STATE
# ============================================================================


class AppState:
    """Application state container for shared resources."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.db_pool: Optional[asyncpg.Pool] = None
        self.repositories: Dict[str, EntityRepository] = {}
        self.user_repo: Union[UserRepository, InMemoryUserRepository, None] = None
        self.settings_repo: Union[SettingsRepository, InMemorySettingsRepository, None] = None
        self.auth_service: Optional[AuthService] = None
        self.settings_store: Optional[SettingsStore] = None
        self.notification_service: Optional[NotificationService] = None


def get_app_state(request: Request) -> AppState:
    return request.app.state.services


def get_settings_dependency(state: AppState = Depends(get_app_state)) -> Settings:
    """Settings the running application was built with."""
    return state.settings


# ============================================================================
# DATABASE CONNECTION POOL
# ============================================================================


async def init_db_pool(settings: Settings) -> asyncpg.Pool:
    """
    Create the asyncpg pool with JSON codecs registered on every connection.

    Should be called during application startup.
    """
    try:
        pool = await asyncpg.create_pool(
            settings.database_dsn,
            min_size=settings.database_pool_min_size,
            max_size=settings.database_pool_max_size,
            command_timeout=settings.database_command_timeout,
            init=init_connection
        )
    except Exception as e:
        logger.error("database_pool_init_failed", error=str(e))
        raise

    logger.info(
        "database_pool_initialized",
        min_size=settings.database_pool_min_size,
        max_size=settings.database_pool_max_size,
        database=settings.database_dsn.split("@")[-1]
    )
    return pool


# ============================================================================
# REPOSITORY AND SERVICE DEPENDENCIES
# ============================================================================


def entity_repository(name: str) -> Callable[[AppState], EntityRepository]:
    """
    Build a dependency returning the repository of one entity kind.

    Example:
        @router.get("/customers")
        async def list_customers(repo = Depends(entity_repository("customers"))):
            return await repo.get_all()
    """
    def dependency(state: AppState = Depends(get_app_state)) -> EntityRepository:
        return state.repositories[name]

    return dependency


def get_user_repository(
    state: AppState = Depends(get_app_state)
) -> Union[UserRepository, InMemoryUserRepository]:
    return state.user_repo


def get_settings_repository(
    state: AppState = Depends(get_app_state)
) -> Union[SettingsRepository, InMemorySettingsRepository]:
    return state.settings_repo


def get_auth_service(state: AppState = Depends(get_app_state)) -> AuthService:
    return state.auth_service


def get_settings_store(state: AppState = Depends(get_app_state)) -> SettingsStore:
    return state.settings_store


def get_notification_service(state: AppState = Depends(get_app_state)) -> NotificationService:
    return state.notification_service


# ============================================================================
# AUTHENTICATION DEPENDENCIES
# ============================================================================


async def get_token_from_header(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """
    Extract the session token from the Authorization header.

    Raises:
        AuthError: If the header is missing or not a bearer token
    """
    if not credentials:
        logger.warning("auth_missing_credentials")
        raise AuthError("Not authenticated", details="Missing bearer token")

    if credentials.scheme.lower() != "bearer":
        logger.warning("auth_invalid_scheme", scheme=credentials.scheme)
        raise AuthError("Not authenticated", details="Expected a bearer token")

    return credentials.credentials


async def get_current_user(
    token: str = Depends(get_token_from_header),
    auth_service: AuthService = Depends(get_auth_service)
) -> CurrentUser:
    """
    Resolve the authenticated user of the request.

    Raises:
        AuthError: If the token is invalid, expired or its user is gone

    Example:
        @router.get("/me")
        async def me(user: CurrentUser = Depends(get_current_user)):
            return user
    """
    current_user = await auth_service.get_current_user(token)

    if not current_user:
        logger.warning("auth_invalid_token")
        raise AuthError("Not authenticated", details="Invalid or expired session")

    logger.debug("user_authenticated", user_id=current_user.id, role=current_user.role.value)
    return current_user
