"""
User repository for database operations.

Provides async CRUD operations for users using asyncpg with PostgreSQL.
PINs only ever reach this layer as bcrypt hashes.
"""

import asyncpg
import structlog
from typing import List, Optional

from api.src.errors import StoreError, ValidationError
from api.src.models.auth import Role, UserDB
from api.src.repositories.base import generate_id, utc_now

logger = structlog.get_logger(__name__)

_USER_COLUMNS = "id, email, name, pin_hash, role, created_at, updated_at"


def _row_to_user(row: asyncpg.Record) -> UserDB:
    return UserDB(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        pin_hash=row["pin_hash"],
        role=row["role"],
        created_at=row["created_at"],
        updated_at=row["updated_at"]
    )


class UserRepository:
    """Repository for user database operations."""

    def __init__(self, pool: asyncpg.Pool):
        """
        Initialize user repository.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    async def create_user(
        self,
        email: str,
        name: str,
        pin_hash: str,
        role: Role = Role.USER
    ) -> UserDB:
        """
        Create a new user.

        Args:
            email: Email address
            name: Display name
            pin_hash: Hashed PIN
            role: User role

        Returns:
            Created user

        Raises:
            ValidationError: If the email already exists
            StoreError: On database error
        """
        now = utc_now()
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users (id, email, name, pin_hash, role, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $6)
                    RETURNING {_USER_COLUMNS}
                    """,
                    generate_id("user"),
                    email,
                    name,
                    pin_hash,
                    Role(role).value,
                    now
                )

        except asyncpg.UniqueViolationError as e:
            logger.warning("email_already_exists", email=email)
            raise ValidationError(f"Email '{email}' already exists") from e
        except Exception as e:
            logger.error("user_create_failed", error=str(e), email=email)
            raise StoreError("Failed to write user") from e

        logger.info("user_created", user_id=row["id"], email=email, role=row["role"])
        return _row_to_user(row)

    async def list_users(self) -> List[UserDB]:
        """Return all users, oldest first."""
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f"SELECT {_USER_COLUMNS} FROM users ORDER BY created_at"
                )
                return [_row_to_user(row) for row in rows]

        except Exception as e:
            logger.error("user_list_failed", error=str(e))
            raise StoreError("Failed to read users") from e

    async def get_user_by_id(self, user_id: str) -> Optional[UserDB]:
        """
        Get user by ID.

        Args:
            user_id: User ID

        Returns:
            User or None if not found
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
                    user_id
                )

        except Exception as e:
            logger.error("user_get_by_id_failed", error=str(e), user_id=user_id)
            raise StoreError("Failed to read user") from e

        if not row:
            logger.debug("user_not_found", user_id=user_id)
            return None
        return _row_to_user(row)

    async def get_user_by_email(self, email: str) -> Optional[UserDB]:
        """
        Get user by email.

        Args:
            email: Email address

        Returns:
            User or None if not found
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"SELECT {_USER_COLUMNS} FROM users WHERE lower(email) = lower($1)",
                    email
                )

        except Exception as e:
            logger.error("user_get_by_email_failed", error=str(e), email=email)
            raise StoreError("Failed to read user") from e

        if not row:
            logger.debug("user_not_found", email=email)
            return None
        return _row_to_user(row)

    async def update_user(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        pin_hash: Optional[str] = None,
        role: Optional[Role] = None
    ) -> Optional[UserDB]:
        """
        Update user information.

        Args:
            user_id: User ID
            email: New email (optional)
            name: New display name (optional)
            pin_hash: New PIN hash (optional)
            role: New role (optional)

        Returns:
            Updated user or None if not found

        Raises:
            ValidationError: If the new email already exists
        """
        updates = []
        params: list = []
        for column, value in (
            ("email", email),
            ("name", name),
            ("pin_hash", pin_hash),
            ("role", Role(role).value if role is not None else None),
        ):
            if value is not None:
                params.append(value)
                updates.append(f"{column} = ${len(params)}")

        if not updates:
            return await self.get_user_by_id(user_id)

        params.append(utc_now())
        updates.append(f"updated_at = ${len(params)}")
        params.append(user_id)

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE users
                    SET {', '.join(updates)}
                    WHERE id = ${len(params)}
                    RETURNING {_USER_COLUMNS}
                    """,
                    *params
                )

        except asyncpg.UniqueViolationError as e:
            logger.warning("email_already_exists", email=email)
            raise ValidationError(f"Email '{email}' already exists") from e
        except Exception as e:
            logger.error("user_update_failed", error=str(e), user_id=user_id)
            raise StoreError("Failed to write user") from e

        if not row:
            logger.debug("user_not_found", user_id=user_id)
            return None

        logger.info("user_updated", user_id=user_id)
        return _row_to_user(row)

    async def delete_user(self, user_id: str) -> bool:
        """
        Delete user.

        Returns:
            True if deleted, False if not found
        """
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute("DELETE FROM users WHERE id = $1", user_id)

        except Exception as e:
            logger.error("user_delete_failed", error=str(e), user_id=user_id)
            raise StoreError("Failed to delete user") from e

        deleted = result.split()[-1] == "1"
        if deleted:
            logger.info("user_deleted", user_id=user_id)
        return deleted

    async def count_users(self) -> int:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval("SELECT COUNT(*) FROM users")

        except Exception as e:
            logger.error("user_count_failed", error=str(e))
            raise StoreError("Failed to read users") from e
