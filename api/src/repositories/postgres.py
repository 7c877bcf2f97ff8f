"""
PostgreSQL entity repository and schema bootstrap.

Each entity kind lives in its own table (``id``, ``data`` JSONB,
``created_at``, ``updated_at``). Table DDL is compiled from the SQLAlchemy
declarations and applied with ``CREATE ... IF NOT EXISTS`` at startup.
"""

import json
from typing import List, Optional

import asyncpg
import structlog
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex, CreateTable

from api.src.errors import NotFoundError, StoreError, ValidationError
from api.src.models.auth import Base
from api.src.models.entities import ENTITY_TABLES, EntitySpec
from api.src.repositories.base import (
    EntityRepository,
    Record,
    generate_id,
    strip_store_fields,
    to_iso,
    utc_now,
)

logger = structlog.get_logger(__name__)


# ============================================================================
# Pool Setup
# ============================================================================


async def init_connection(conn: asyncpg.Connection) -> None:
    """Decode and encode JSON/JSONB columns as Python objects."""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


async def create_schema(pool: asyncpg.Pool) -> None:
    """Create every declared table and index that does not exist yet."""
    dialect = postgresql.dialect()
    statements: List[str] = []
    for table in Base.metadata.sorted_tables:
        statements.append(str(CreateTable(table, if_not_exists=True).compile(dialect=dialect)))
        for index in table.indexes:
            statements.append(str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect)))

    async with pool.acquire() as conn:
        async with conn.transaction():
            for statement in statements:
                await conn.execute(statement)

    logger.info("database_schema_ready", tables=[t.name for t in Base.metadata.sorted_tables])


# ============================================================================
# Repository
# ============================================================================


class PostgresEntityRepository(EntityRepository):
    """Entity repository backed by one PostgreSQL table."""

    def __init__(self, pool: asyncpg.Pool, spec: EntitySpec):
        """
        Initialize repository.

        Args:
            pool: asyncpg connection pool
            spec: Entity the table stores
        """
        super().__init__(spec)
        self.pool = pool
        self.table = ENTITY_TABLES[spec.name].name

    @staticmethod
    def _row_to_record(row: asyncpg.Record) -> Record:
        record = dict(row["data"] or {})
        record["id"] = row["id"]
        record["createdAt"] = to_iso(row["created_at"])
        record["updatedAt"] = to_iso(row["updated_at"])
        return record

    async def get_all(self, filters: Optional[Record] = None) -> List[Record]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    f"""
                    SELECT id, data, created_at, updated_at
                    FROM {self.table}
                    WHERE data @> $1::jsonb
                    ORDER BY created_at DESC
                    """,
                    filters or {}
                )
                return [self._row_to_record(row) for row in rows]

        except Exception as e:
            logger.error("entity_list_failed", entity=self.spec.name, error=str(e))
            raise StoreError(f"Failed to read {self.spec.plural}") from e

    async def get_by_id(self, record_id: str) -> Optional[Record]:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    SELECT id, data, created_at, updated_at
                    FROM {self.table}
                    WHERE id = $1
                    """,
                    record_id
                )
                return self._row_to_record(row) if row else None

        except Exception as e:
            logger.error("entity_get_failed", entity=self.spec.name, id=record_id, error=str(e))
            raise StoreError(f"Failed to read {self.spec.singular}") from e

    async def create(self, fields: Record) -> Record:
        record_id = fields.get("id") or generate_id(self.spec.id_prefix)
        now = utc_now()

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO {self.table} (id, data, created_at, updated_at)
                    VALUES ($1, $2, $3, $3)
                    RETURNING id, data, created_at, updated_at
                    """,
                    record_id,
                    strip_store_fields(fields),
                    now
                )

        except asyncpg.UniqueViolationError as e:
            logger.warning("entity_id_conflict", entity=self.spec.name, id=record_id)
            raise ValidationError(f"{self.spec.label} '{record_id}' already exists") from e
        except Exception as e:
            logger.error("entity_create_failed", entity=self.spec.name, error=str(e))
            raise StoreError(f"Failed to write {self.spec.singular}") from e

        logger.info("entity_created", entity=self.spec.name, id=record_id)
        return self._row_to_record(row)

    async def update(self, record_id: str, fields: Record) -> Record:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE {self.table}
                    SET data = $2, updated_at = $3
                    WHERE id = $1
                    RETURNING id, data, created_at, updated_at
                    """,
                    record_id,
                    strip_store_fields(fields),
                    utc_now()
                )

        except Exception as e:
            logger.error("entity_update_failed", entity=self.spec.name, id=record_id, error=str(e))
            raise StoreError(f"Failed to write {self.spec.singular}") from e

        if row is None:
            raise NotFoundError(f"{self.spec.label} not found")

        logger.info("entity_updated", entity=self.spec.name, id=record_id)
        return self._row_to_record(row)

    async def delete(self, record_id: str) -> None:
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    f"DELETE FROM {self.table} WHERE id = $1",
                    record_id
                )

        except Exception as e:
            logger.error("entity_delete_failed", entity=self.spec.name, id=record_id, error=str(e))
            raise StoreError(f"Failed to delete {self.spec.singular}") from e

        logger.info("entity_deleted", entity=self.spec.name, id=record_id, deleted=result == "DELETE 1")

    async def count(self) -> int:
        try:
            async with self.pool.acquire() as conn:
                return await conn.fetchval(f"SELECT COUNT(*) FROM {self.table}")

        except Exception as e:
            logger.error("entity_count_failed", entity=self.spec.name, error=str(e))
            raise StoreError(f"Failed to read {self.spec.plural}") from e
