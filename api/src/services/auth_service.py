"""
Authentication service for PIN login and session token management.

Provides:
- PIN hashing and verification (passlib + bcrypt)
- PIN lookup across stored users
- Session token creation and validation (JWT)
- Bootstrap admin creation for empty user tables
"""

import structlog
from typing import Optional, Union
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from jose import JWTError, jwt
from pydantic import ValidationError as PydanticValidationError

from api.src.config import Settings, get_settings
from api.src.models.auth import (
    UserDB, CurrentUser, TokenPayload, Role, LoginResponse
)
from api.src.repositories.memory import InMemoryUserRepository
from api.src.repositories.user_repo import UserRepository

logger = structlog.get_logger(__name__)

UserStore = Union[UserRepository, InMemoryUserRepository]


class AuthService:
    """Service for PIN authentication and session handling."""

    def __init__(self, user_repo: UserStore, settings: Optional[Settings] = None):
        """
        Initialize auth service.

        Args:
            user_repo: User repository
            settings: Application settings (defaults to the cached settings)
        """
        self.user_repo = user_repo
        self.settings = settings or get_settings()

        self.pin_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=self.settings.pin_bcrypt_rounds
        )

    # =========================================================================
    # PIN Hashing
    # =========================================================================

    def hash_pin(self, pin: str) -> str:
        """
        Hash a PIN using bcrypt.

        Args:
            pin: Plain text PIN

        Returns:
            Hashed PIN
        """
        return self.pin_context.hash(pin)

    def verify_pin(self, plain_pin: str, pin_hash: str) -> bool:
        """
        Verify a PIN against its hash.

        A malformed stored hash counts as a mismatch.
        """
        try:
            return self.pin_context.verify(plain_pin, pin_hash)
        except (ValueError, TypeError) as e:
            logger.warning("pin_hash_unreadable", error=str(e))
            return False

    async def verify_pin_code(self, pin: str, email: Optional[str] = None) -> Optional[UserDB]:
        """
        Find the user whose PIN matches.

        Args:
            pin: Plain text PIN
            email: Restrict the match to this user when given

        Returns:
            The first matching user, or None
        """
        if not pin:
            return None

        if email:
            user = await self.user_repo.get_user_by_email(email)
            candidates = [user] if user else []
        else:
            candidates = await self.user_repo.list_users()

        for user in candidates:
            if self.verify_pin(pin, user.pin_hash):
                logger.info("pin_verified", user_id=user.id)
                return user

        logger.warning("pin_verification_failed", candidates=len(candidates))
        return None

    # =========================================================================
    # Session Tokens
    # =========================================================================

    def create_access_token(
        self,
        user: UserDB,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        """
        Create a session token for a user.

        Args:
            user: Authenticated user
            expires_delta: Custom expiration time (optional)

        Returns:
            JWT token string
        """
        if expires_delta is None:
            expires_delta = timedelta(minutes=self.settings.jwt_access_token_expire_minutes)

        now = datetime.now(timezone.utc)
        expire = now + expires_delta

        payload = {
            "sub": user.id,
            "email": user.email,
            "role": Role(user.role).value,
            "exp": int(expire.timestamp()),
            "iat": int(now.timestamp())
        }

        token = jwt.encode(
            payload,
            self.settings.jwt_secret_key,
            algorithm=self.settings.jwt_algorithm
        )

        logger.info(
            "access_token_created",
            user_id=user.id,
            expires_in=expires_delta.total_seconds()
        )
        return token

    def decode_token(self, token: str) -> Optional[TokenPayload]:
        """
        Decode and validate a session token.

        Returns:
            Token payload or None if invalid or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.settings.jwt_secret_key,
                algorithms=[self.settings.jwt_algorithm]
            )
            return TokenPayload(**payload)

        except JWTError as e:
            logger.warning("token_decode_failed", error=str(e))
            return None
        except PydanticValidationError as e:
            logger.warning("token_payload_invalid", error=str(e))
            return None

    async def login(self, pin: str, email: Optional[str] = None) -> Optional[LoginResponse]:
        """
        Verify a PIN and issue a session.

        Returns:
            The user (without PIN data) plus session, or None on mismatch
        """
        user = await self.verify_pin_code(pin, email)
        if not user:
            return None

        access_token = self.create_access_token(user)
        logger.info("login_success", user_id=user.id, role=user.role.value)

        return LoginResponse(
            **user.to_response().model_dump(),
            access_token=access_token,
            token_type="bearer",
            expires_in=self.settings.jwt_access_token_expire_minutes * 60
        )

    async def get_current_user(self, token: str) -> Optional[CurrentUser]:
        """
        Resolve the user behind a session token.

        The stored user is re-read so role changes and deletions take effect
        before the token expires.
        """
        payload = self.decode_token(token)
        if not payload:
            return None

        user = await self.user_repo.get_user_by_id(payload.sub)
        if not user:
            logger.warning("get_current_user_failed_user_not_found", user_id=payload.sub)
            return None

        return CurrentUser(id=user.id, email=user.email, name=user.name, role=user.role)

    # =========================================================================
    # Bootstrap
    # =========================================================================

    async def ensure_bootstrap_admin(self) -> Optional[UserDB]:
        """Create the configured admin when no users exist yet."""
        if not self.settings.bootstrap_admin_pin:
            return None
        if await self.user_repo.count_users() > 0:
            return None

        user = await self.user_repo.create_user(
            email=self.settings.bootstrap_admin_email,
            name=self.settings.bootstrap_admin_name,
            pin_hash=self.hash_pin(self.settings.bootstrap_admin_pin),
            role=Role.ADMIN
        )
        logger.info("bootstrap_admin_created", user_id=user.id, email=user.email)
        return user
