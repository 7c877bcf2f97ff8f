"""
Settings repository.

Application settings are one JSONB document in ``app_settings`` under the
row id ``default``.
"""

from typing import Any, Dict, Optional, Tuple

import asyncpg
import structlog

from api.src.errors import StoreError
from api.src.repositories.base import to_iso, utc_now

logger = structlog.get_logger(__name__)

SETTINGS_ROW_ID = "default"


class SettingsRepository:
    """Reads and upserts the stored settings document."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get_settings(self) -> Optional[Tuple[Dict[str, Any], str]]:
        """
        Return ``(settings, updatedAt)`` or None when nothing has been saved.
        """
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT settings, updated_at FROM app_settings WHERE id = $1",
                    SETTINGS_ROW_ID
                )

        except Exception as e:
            logger.error("settings_get_failed", error=str(e))
            raise StoreError("Failed to read settings") from e

        if not row:
            return None
        return dict(row["settings"] or {}), to_iso(row["updated_at"])

    async def save_settings(self, settings: Dict[str, Any]) -> str:
        """Upsert the settings document and return its ``updatedAt``."""
        now = utc_now()
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO app_settings (id, settings, updated_at)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (id) DO UPDATE
                    SET settings = EXCLUDED.settings, updated_at = EXCLUDED.updated_at
                    """,
                    SETTINGS_ROW_ID,
                    settings,
                    now
                )

        except Exception as e:
            logger.error("settings_save_failed", error=str(e))
            raise StoreError("Failed to save settings") from e

        logger.info("settings_saved", keys=len(settings))
        return to_iso(now)
