"""
In-memory repositories.

Same contracts as the PostgreSQL repositories, kept in process-local dicts.
Used by the test suite and by ``storage_backend=memory`` for demos. State is
lost on restart.
"""

import copy
import itertools
from typing import Any, Dict, List, Optional, Tuple

import structlog

from api.src.errors import NotFoundError, ValidationError
from api.src.models.auth import Role, UserDB
from api.src.models.entities import EntitySpec
from api.src.repositories.base import (
    EntityRepository,
    Record,
    generate_id,
    strip_store_fields,
    to_iso,
    utc_now,
)

logger = structlog.get_logger(__name__)


class InMemoryEntityRepository(EntityRepository):
    """Entity repository backed by a dict keyed by id."""

    def __init__(self, spec: EntitySpec):
        super().__init__(spec)
        self._records: Dict[str, Record] = {}
        # insertion order breaks createdAt ties within the same millisecond
        self._order: Dict[str, int] = {}
        self._sequence = itertools.count()

    async def get_all(self, filters: Optional[Record] = None) -> List[Record]:
        filters = filters or {}
        ordered = sorted(
            (
                record for record in self._records.values()
                if all(record.get(key) == value for key, value in filters.items())
            ),
            key=lambda record: (record["createdAt"], self._order[record["id"]]),
            reverse=True,
        )
        return [copy.deepcopy(record) for record in ordered]

    async def get_by_id(self, record_id: str) -> Optional[Record]:
        record = self._records.get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def create(self, fields: Record) -> Record:
        record_id = fields.get("id") or generate_id(self.spec.id_prefix)
        if record_id in self._records:
            raise ValidationError(f"{self.spec.label} '{record_id}' already exists")

        now = to_iso(utc_now())
        record = copy.deepcopy(strip_store_fields(fields))
        record.update(id=record_id, createdAt=now, updatedAt=now)
        self._records[record_id] = record
        self._order[record_id] = next(self._sequence)

        logger.info("entity_created", entity=self.spec.name, id=record_id)
        return copy.deepcopy(record)

    async def update(self, record_id: str, fields: Record) -> Record:
        existing = self._records.get(record_id)
        if existing is None:
            raise NotFoundError(f"{self.spec.label} not found")

        record = copy.deepcopy(strip_store_fields(fields))
        record.update(
            id=record_id,
            createdAt=existing["createdAt"],
            updatedAt=to_iso(utc_now()),
        )
        self._records[record_id] = record

        logger.info("entity_updated", entity=self.spec.name, id=record_id)
        return copy.deepcopy(record)

    async def delete(self, record_id: str) -> None:
        deleted = self._records.pop(record_id, None) is not None
        self._order.pop(record_id, None)
        logger.info("entity_deleted", entity=self.spec.name, id=record_id, deleted=deleted)

    async def count(self) -> int:
        return len(self._records)


class InMemoryUserRepository:
    """User repository backed by a dict keyed by id."""

    def __init__(self):
        self._users: Dict[str, UserDB] = {}

    def _email_taken(self, email: str, exclude_id: Optional[str] = None) -> bool:
        return any(
            user.email.lower() == email.lower() and user.id != exclude_id
            for user in self._users.values()
        )

    async def create_user(
        self,
        email: str,
        name: str,
        pin_hash: str,
        role: Role = Role.USER
    ) -> UserDB:
        if self._email_taken(email):
            raise ValidationError(f"Email '{email}' already exists")

        now = utc_now()
        user = UserDB(
            id=generate_id("user"),
            email=email,
            name=name,
            pin_hash=pin_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )
        self._users[user.id] = user
        logger.info("user_created", user_id=user.id, email=email, role=user.role.value)
        return user.model_copy()

    async def list_users(self) -> List[UserDB]:
        return [user.model_copy() for user in sorted(self._users.values(), key=lambda u: u.created_at)]

    async def get_user_by_id(self, user_id: str) -> Optional[UserDB]:
        user = self._users.get(user_id)
        return user.model_copy() if user else None

    async def get_user_by_email(self, email: str) -> Optional[UserDB]:
        for user in self._users.values():
            if user.email.lower() == email.lower():
                return user.model_copy()
        return None

    async def update_user(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        pin_hash: Optional[str] = None,
        role: Optional[Role] = None
    ) -> Optional[UserDB]:
        user = self._users.get(user_id)
        if user is None:
            return None
        if email is not None and self._email_taken(email, exclude_id=user_id):
            raise ValidationError(f"Email '{email}' already exists")

        changes: Dict[str, Any] = {
            key: value
            for key, value in (("email", email), ("name", name), ("pin_hash", pin_hash), ("role", role))
            if value is not None
        }
        if not changes:
            return user.model_copy()

        changes["updated_at"] = utc_now()
        updated = user.model_copy(update=changes)
        self._users[user_id] = updated
        logger.info("user_updated", user_id=user_id)
        return updated.model_copy()

    async def delete_user(self, user_id: str) -> bool:
        deleted = self._users.pop(user_id, None) is not None
        if deleted:
            logger.info("user_deleted", user_id=user_id)
        return deleted

    async def count_users(self) -> int:
        return len(self._users)


class InMemorySettingsRepository:
    """Holds the settings document in memory."""

    def __init__(self):
        self._document: Optional[Tuple[Dict[str, Any], str]] = None

    async def get_settings(self) -> Optional[Tuple[Dict[str, Any], str]]:
        if self._document is None:
            return None
        settings, updated_at = self._document
        return copy.deepcopy(settings), updated_at

    async def save_settings(self, settings: Dict[str, Any]) -> str:
        updated_at = to_iso(utc_now())
        self._document = (copy.deepcopy(settings), updated_at)
        logger.info("settings_saved", keys=len(settings))
        return updated_at
