"""
Generic entity repository interface.

Every entity kind is served by the same five operations. Records are plain
JSON-compatible dicts carrying an ``id`` and store-owned ``createdAt`` /
``updatedAt`` ISO-8601 timestamps.

Implementations:
- ``PostgresEntityRepository`` (asyncpg, one JSONB table per entity)
- ``InMemoryEntityRepository`` (process-local dicts, for tests and demos)
"""

import secrets
import string
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from api.src.models.entities import EntitySpec

Record = Dict[str, Any]

STORE_FIELDS = ("id", "createdAt", "updatedAt")

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_id(prefix: str) -> str:
    """Build an id like ``cust_1706266800000_k2j3h4g5f``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


def to_iso(value: datetime) -> str:
    """Render a timestamp the way browsers do (UTC, millisecond precision, ``Z``)."""
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def strip_store_fields(fields: Record) -> Record:
    """Drop the fields the store owns from a client payload."""
    return {key: value for key, value in fields.items() if key not in STORE_FIELDS}


class EntityRepository(ABC):
    """Async CRUD contract shared by every entity kind."""

    def __init__(self, spec: EntitySpec):
        self.spec = spec

    @abstractmethod
    async def get_all(self, filters: Optional[Record] = None) -> List[Record]:
        """
        Return every record, newest ``createdAt`` first.

        Args:
            filters: Optional field values every returned record must carry
        """

    @abstractmethod
    async def get_by_id(self, record_id: str) -> Optional[Record]:
        """Return the record or None. Never raises for a missing id."""

    @abstractmethod
    async def create(self, fields: Record) -> Record:
        """Persist a new record, assigning id (if absent) and timestamps."""

    @abstractmethod
    async def update(self, record_id: str, fields: Record) -> Record:
        """
        Replace every mutable field of an existing record.

        Raises:
            NotFoundError: If no record has this id
        """

    @abstractmethod
    async def delete(self, record_id: str) -> None:
        """Remove the record. Deleting a missing id is not an error."""

    async def count(self) -> int:
        return len(await self.get_all())
