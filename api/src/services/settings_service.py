"""
Application settings store and hydration.

``SettingsStore`` is the process-wide settings state: built-in defaults
merged with a local JSON cache file. It can be hydrated once from a remote
source (the settings table, or another instance over HTTP); remote values win
key by key, the merged result is persisted locally and subscribers are told
once, on the next event-loop tick. Hydration failures leave the local
settings in effect.
"""

import asyncio
import copy
import json
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx
import structlog

from api.src.repositories.base import to_iso

logger = structlog.get_logger(__name__)

SettingsDict = Dict[str, Any]
Subscriber = Callable[[SettingsDict], None]


DEFAULT_SETTINGS: SettingsDict = {
    # Document numbering
    "quotationPrefix": "QT",
    "invoicePrefix": "INV",
    "receiptPrefix": "RCP",
    "projectPrefix": "PRJ",
    # Company information
    "companyName": "ALMSAR ALZAKI Transport & Maintenance",
    "tradeLicense": "CN-5570900",
    "taxRegNumber": "TRN: 105061702400003",
    "phone": "+971543114444",
    "poBox": "133615",
    "email": "almsar.uae@gmail.com",
    "address": "Musaffah - Abu Dhabi United Arab Emirates",
    # Financial
    "defaultVATRate": 5,
    "currency": "AED",
    "currencySymbol": "AED",
    "invoiceTerms": "Payment due within 30 days",
    "quotationTerms": "Valid for 30 days",
    # Display
    "dateFormat": "DD/MM/YYYY",
    "timeFormat": "24h",
    "language": "en",
    # Behaviour
    "notificationsEnabled": True,
    "emailNotifications": False,
    "autoSave": True,
    "itemsPerPage": 25,
    # AI assistant
    "aiEnabled": False,
    "openAIApiKey": "",
}


# ============================================================================
# Remote Sources
# ============================================================================


class SettingsSource(Protocol):
    """Something settings can be hydrated from."""

    async def fetch(self) -> Optional[SettingsDict]:
        ...


class RepositorySettingsSource:
    """Reads the stored settings document through the settings repository."""

    def __init__(self, settings_repo):
        self.settings_repo = settings_repo

    async def fetch(self) -> Optional[SettingsDict]:
        stored = await self.settings_repo.get_settings()
        if stored is None:
            return None
        settings, _updated_at = stored
        return settings


class HttpSettingsSource:
    """Reads ``GET {base_url}/api/settings`` from another instance."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        api_prefix: str = "/api",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = f"{base_url.rstrip('/')}{api_prefix}/settings"
        self.timeout = timeout
        self.transport = transport

    async def fetch(self) -> Optional[SettingsDict]:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            return response.json().get("settings")


# ============================================================================
# Store
# ============================================================================


class SettingsStore:
    """Process-wide application settings with local persistence."""

    def __init__(
        self,
        cache_path: Optional[str] = None,
        defaults: Optional[SettingsDict] = None
    ):
        """
        Initialize the store.

        Args:
            cache_path: JSON file used to persist settings (None keeps them in memory)
            defaults: Built-in values (``DEFAULT_SETTINGS`` when omitted)
        """
        self.cache_path = Path(cache_path) if cache_path else None
        self.defaults = copy.deepcopy(defaults if defaults is not None else DEFAULT_SETTINGS)
        self._settings: SettingsDict = {**self.defaults, **self._load_cache()}
        self._subscribers: List[Subscriber] = []

    # =========================================================================
    # Persistence
    # =========================================================================

    def _load_cache(self) -> SettingsDict:
        if not self.cache_path or not self.cache_path.exists():
            return {}
        try:
            cached = json.loads(self.cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("settings_cache_unreadable", path=str(self.cache_path), error=str(e))
            return {}
        if not isinstance(cached, dict):
            logger.warning("settings_cache_invalid", path=str(self.cache_path))
            return {}
        return cached

    def _persist(self) -> None:
        if not self.cache_path:
            return
        try:
            self.cache_path.write_text(json.dumps(self._settings, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("settings_cache_write_failed", path=str(self.cache_path), error=str(e))

    # =========================================================================
    # Access
    # =========================================================================

    def get(self) -> SettingsDict:
        """Return a copy of the current settings."""
        return copy.deepcopy(self._settings)

    def _merge(self, changes: SettingsDict) -> None:
        self._settings = {**self._settings, **copy.deepcopy(changes)}
        self._persist()

    def update(self, changes: SettingsDict, notify: bool = True) -> SettingsDict:
        """
        Merge ``changes`` into the settings, stamp ``updatedAt`` and persist.

        Subscribers are called synchronously unless ``notify`` is False.
        """
        self._merge({**changes, "updatedAt": to_iso(datetime.now(timezone.utc))})
        logger.info("settings_updated", keys=sorted(changes))
        if notify:
            self._notify()
        return self.get()

    def get_defaults(self) -> SettingsDict:
        """Return a copy of the built-in values."""
        return copy.deepcopy(self.defaults)

    def reset(self) -> SettingsDict:
        """Restore the built-in defaults."""
        self._settings = copy.deepcopy(self.defaults)
        self._persist()
        logger.info("settings_reset")
        self._notify()
        return self.get()

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register ``callback(settings)`` for updates.

        Returns:
            A function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.get()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error("settings_subscriber_failed", error=str(e), exc_info=True)

    # =========================================================================
    # Hydration
    # =========================================================================

    async def hydrate(self, source: SettingsSource) -> bool:
        """
        Fetch remote settings once and merge them over the local ones.

        Returns:
            True if remote settings were applied
        """
        try:
            remote = await source.fetch()
        except Exception as e:
            logger.warning("settings_hydration_failed", source=type(source).__name__, error=str(e))
            return False

        if not isinstance(remote, dict) or not remote:
            logger.info("settings_hydration_skipped", source=type(source).__name__)
            return False

        # remote updatedAt is kept as sent
        self._merge(remote)
        asyncio.get_running_loop().call_soon(self._notify)

        logger.info("settings_hydrated", source=type(source).__name__, keys=len(remote))
        return True

    # =========================================================================
    # Document Numbers
    # =========================================================================

    def generate_number(self, prefix_key: str, fallback: str = "DOC") -> str:
        """
        Build a document number such as ``INV-2025-01-812345``.

        The prefix comes from the ``prefix_key`` setting; the suffix is the
        last six digits of the current millisecond timestamp.
        """
        prefix = self._settings.get(prefix_key) or fallback
        now = datetime.now()
        suffix = str(int(time.time() * 1000))[-6:]
        return f"{prefix}-{now.year}-{now.month:02d}-{suffix}"
