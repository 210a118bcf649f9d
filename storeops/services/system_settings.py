"""Loyalty system settings: one row, cached, with a static fallback."""

from typing import Any

from storeops.backend.base import BackendClient, BackendError, timestamp
from storeops.core.config import Settings, get_settings
from storeops.core.logging import get_logger
from storeops.models.loyalty_settings import SYSTEM_TABLE, SystemSettings

log = get_logger(__name__)


def fallback_settings(config: Settings | None = None) -> SystemSettings:
    """Settings used when the settings row can't be read."""
    config = config or get_settings()
    return SystemSettings(
        is_system_enabled=config.loyalty_enabled,
        default_coins_per_rupee=config.loyalty_default_coins_per_rupee,
        global_coins_multiplier=config.loyalty_global_multiplier,
        min_coins_to_redeem=config.loyalty_min_coins_to_redeem,
        festive_multiplier=config.loyalty_festive_multiplier,
        is_festive_active=False,
    )


class SystemSettingsProvider:
    def __init__(self, backend: BackendClient, config: Settings | None = None) -> None:
        self._backend = backend
        self._config = config or get_settings()
        self._cached: SystemSettings | None = None

    async def get_settings(self, refresh: bool = False) -> SystemSettings:
        """Current settings; the fallback object on any backend failure. Never raises."""
        if self._cached is not None and not refresh:
            return self._cached
        try:
            row = await self._backend.select_one(SYSTEM_TABLE)
        except BackendError as exc:
            log.warning("loyalty_settings_fallback", code=exc.code, error=exc.message)
            return fallback_settings(self._config)
        settings = SystemSettings.model_validate(row)
        self._cached = settings
        return settings

    async def update_settings(self, patch: dict[str, Any]) -> SystemSettings:
        """Admin: merge patch into the stored row, creating it from defaults if absent."""
        current = await self.get_settings(refresh=True)
        merged = SystemSettings.model_validate({**current.model_dump(), **patch})
        row = merged.model_dump(mode="json")
        row["updated_at"] = timestamp()
        if merged.id:
            saved = await self._backend.upsert(SYSTEM_TABLE, row, on_conflict="id")
        else:
            row.pop("id", None)
            saved = (await self._backend.insert(SYSTEM_TABLE, row))[0]
        self._cached = SystemSettings.model_validate(saved)
        log.info("loyalty_settings_updated", fields=sorted(patch))
        return self._cached

    def clear(self) -> None:
        self._cached = None
