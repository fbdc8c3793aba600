"""
Business settings cache

Settings are read-mostly: they live in Redis next to the appointment cache and
are pushed to the backend when online. Every local change invalidates the
slot cache so availability reflects it immediately.
"""

import json
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from smartbooking.config import CACHE_PREFIX
from smartbooking.models.settings import BusinessSettings
from smartbooking.services.availability import AvailabilityCache

logger = logging.getLogger(__name__)


class BusinessSettingsService:

    def __init__(
        self,
        redis_client,
        backend,
        availability_cache: Optional[AvailabilityCache] = None,
        is_online: Callable[[], bool] = lambda: True,
        prefix: str = CACHE_PREFIX,
    ):
        self.redis = redis_client
        self.backend = backend
        self.availability_cache = availability_cache or AvailabilityCache()
        self.is_online = is_online
        self.settings_key = f"{prefix}:settings"
        self.pending_key = f"{prefix}:settings:pending_sync"

    async def _load_cached(self) -> Optional[BusinessSettings]:
        raw = await self.redis.get(self.settings_key)
        if raw is None:
            return None
        try:
            return BusinessSettings.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning(f"Discarding unreadable cached settings: {e}")
            return None

    async def _save_cached(self, settings: BusinessSettings) -> None:
        await self.redis.set(self.settings_key, json.dumps(settings.model_dump(mode="json")))

    async def get_settings(self) -> BusinessSettings:
        """
        Current settings.

        Order: local cache, then the backend when online, then defaults. The
        result is always written back to the local cache.
        """
        settings = await self._load_cached()
        if settings is not None:
            return settings

        if self.is_online():
            try:
                settings = await self.backend.get_settings()
            except Exception as e:
                logger.warning(f"Could not load settings from backend, using defaults: {e}")

        if settings is None:
            logger.info("No stored business settings, using defaults")
            settings = BusinessSettings()

        await self._save_cached(settings)
        return settings

    async def update_settings(self, changes: Dict[str, Any]) -> BusinessSettings:
        """
        Apply a partial update.

        days_open is merged per day. The slot cache is invalidated whether or
        not the backend push succeeds.
        """
        current = await self.get_settings()
        updated = current.merged_with(changes)

        await self._save_cached(updated)
        self.availability_cache.invalidate()

        if not self.is_online():
            await self.redis.set(self.pending_key, "1")
            logger.info("Offline: business settings marked for sync")
            return updated

        try:
            await self.backend.save_settings(updated)
            await self.redis.delete(self.pending_key)
        except Exception as e:
            await self.redis.set(self.pending_key, "1")
            logger.warning(f"Failed to push business settings, marked for sync: {e}")

        return updated

    async def has_pending_changes(self) -> bool:
        return bool(await self.redis.get(self.pending_key))

    async def sync_pending_settings(self) -> bool:
        """
        Push settings still marked for sync.

        Returns:
            True if settings were pushed
        """
        if not await self.has_pending_changes():
            return False

        settings = await self._load_cached()
        if settings is None:
            await self.redis.delete(self.pending_key)
            return False

        try:
            await self.backend.save_settings(settings)
        except Exception as e:
            logger.warning(f"Pending business settings still not synced: {e}")
            return False

        await self.redis.delete(self.pending_key)
        logger.info("Pending business settings synced")
        return True
