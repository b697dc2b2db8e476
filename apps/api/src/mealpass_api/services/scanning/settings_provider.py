"""Per-tenant scan configuration with caching and safe defaults."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Any, Mapping
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mealpass_api.core.settings import Settings, settings as app_settings
from mealpass_api.models.meal_plan import MealPlan
from mealpass_api.models.meal_type import MealType
from mealpass_api.models.tenant_settings import DuplicatePolicy, TenantScanSettings
from mealpass_api.services.scanning.meal_windows import (
    MealWindowConfigError,
    parse_window,
    validate_meal_windows,
)
from mealpass_api.services.scanning.shared_state import ExpiringStore

_STALE_TTL_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class ScanSettings:
    """Snapshot of everything the coordinator needs from tenant configuration."""

    tenant_id: str
    meal_windows: dict[str, dict[str, str]]
    double_scan_window_seconds: int
    duplicate_policy: DuplicatePolicy = DuplicatePolicy.WINDOW
    timezone: str = "UTC"
    allowed_meal_types_by_plan: dict[str, tuple[MealType, ...]] = field(default_factory=dict)
    alert_threshold_meals_remaining: int | None = None
    from_defaults: bool = False

    @property
    def tzinfo(self) -> tzinfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown tenant timezone; using UTC", tenant_id=self.tenant_id, timezone=self.timezone)
            return ZoneInfo("UTC")

    def allowed_meal_types_for(self, plan_id: UUID | str | None) -> tuple[MealType, ...]:
        if plan_id is None:
            return ()
        return self.allowed_meal_types_by_plan.get(str(plan_id), ())

    def to_cache(self) -> dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "meal_windows": self.meal_windows,
            "double_scan_window_seconds": self.double_scan_window_seconds,
            "duplicate_policy": self.duplicate_policy.value,
            "timezone": self.timezone,
            "allowed_meal_types_by_plan": {
                plan_id: [meal.value for meal in meals]
                for plan_id, meals in self.allowed_meal_types_by_plan.items()
            },
            "alert_threshold_meals_remaining": self.alert_threshold_meals_remaining,
        }

    @classmethod
    def from_cache(cls, payload: Mapping[str, Any]) -> "ScanSettings":
        return cls(
            tenant_id=payload["tenant_id"],
            meal_windows=dict(payload["meal_windows"]),
            double_scan_window_seconds=int(payload["double_scan_window_seconds"]),
            duplicate_policy=DuplicatePolicy(payload["duplicate_policy"]),
            timezone=payload["timezone"],
            allowed_meal_types_by_plan={
                plan_id: tuple(MealType(value) for value in meals)
                for plan_id, meals in payload.get("allowed_meal_types_by_plan", {}).items()
            },
            alert_threshold_meals_remaining=payload.get("alert_threshold_meals_remaining"),
        )


def sanitize_meal_windows(tenant_id: str, windows: Mapping[str, Any]) -> dict[str, dict[str, str]]:
    """Drop entries that cannot be parsed and log configuration problems."""

    problems = validate_meal_windows(windows)
    if problems:
        logger.warning("Tenant meal windows need attention", tenant_id=tenant_id, problems=problems)

    cleaned: dict[str, dict[str, str]] = {}
    for name, entry in windows.items():
        meal_type = MealType.parse(name)
        if meal_type is None or not isinstance(entry, Mapping):
            continue
        try:
            window = parse_window(entry)
        except MealWindowConfigError:
            continue
        cleaned[meal_type.value] = {
            "start": f"{window.start_minute // 60:02d}:{window.start_minute % 60:02d}",
            "end": f"{window.end_minute // 60:02d}:{window.end_minute % 60:02d}",
        }
    return cleaned


def default_scan_settings(tenant_id: str, config: Settings | None = None) -> ScanSettings:
    config = config or app_settings
    return ScanSettings(
        tenant_id=tenant_id,
        meal_windows={name: dict(window) for name, window in config.default_meal_windows.items()},
        double_scan_window_seconds=config.default_double_scan_window_seconds,
        duplicate_policy=DuplicatePolicy(config.default_duplicate_policy),
        timezone=config.default_timezone,
        alert_threshold_meals_remaining=config.alert_threshold_meals_remaining,
        from_defaults=True,
    )


class TenantSettingsProvider:
    """Load tenant scan settings from the database through a TTL cache."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        store: ExpiringStore,
        *,
        config: Settings | None = None,
        ttl_seconds: int | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._store = store
        self._config = config or app_settings
        self._ttl_seconds = ttl_seconds or self._config.settings_cache_ttl_seconds
        self._timeout_seconds = timeout_seconds or self._config.storage_timeout_seconds

    @staticmethod
    def _cache_key(tenant_id: str) -> str:
        return f"scan-settings:{tenant_id}"

    @staticmethod
    def _stale_key(tenant_id: str) -> str:
        return f"scan-settings:stale:{tenant_id}"

    async def get_settings(self, tenant_id: UUID | str) -> ScanSettings:
        """Return cached settings, reloading on expiry and degrading on failure."""

        tenant_key = str(tenant_id)
        cached = await self._read_cache(self._cache_key(tenant_key))
        if cached is not None:
            return cached

        try:
            loaded = await asyncio.wait_for(self._load(tenant_key), timeout=self._timeout_seconds)
        except Exception as exc:
            logger.warning(
                "Tenant scan settings unavailable; falling back",
                tenant_id=tenant_key,
                error=str(exc) or exc.__class__.__name__,
            )
            stale = await self._read_cache(self._stale_key(tenant_key))
            return stale or default_scan_settings(tenant_key, self._config)

        await self._write_cache(tenant_key, loaded)
        return loaded

    async def invalidate(self, tenant_id: UUID | str) -> None:
        tenant_key = str(tenant_id)
        try:
            await self._store.delete(self._cache_key(tenant_key))
        except Exception as exc:
            logger.warning("Failed to invalidate tenant scan settings", tenant_id=tenant_key, error=str(exc))

    async def _read_cache(self, key: str) -> ScanSettings | None:
        try:
            payload = await self._store.get(key)
        except Exception as exc:
            logger.warning("Scan settings cache read failed", key=key, error=str(exc))
            return None
        if payload is None:
            return None
        try:
            return ScanSettings.from_cache(payload)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Discarding unreadable scan settings cache entry", key=key, error=str(exc))
            return None

    async def _write_cache(self, tenant_key: str, loaded: ScanSettings) -> None:
        payload = loaded.to_cache()
        try:
            await self._store.set(self._cache_key(tenant_key), payload, self._ttl_seconds)
            await self._store.set(self._stale_key(tenant_key), payload, _STALE_TTL_SECONDS)
        except Exception as exc:
            logger.warning("Scan settings cache write failed", tenant_id=tenant_key, error=str(exc))

    async def _load(self, tenant_key: str) -> ScanSettings:
        tenant_uuid = UUID(tenant_key)
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(TenantScanSettings).where(TenantScanSettings.tenant_id == tenant_uuid)
                )
            ).scalar_one_or_none()
            plans = (
                await session.execute(
                    select(MealPlan.id, MealPlan.meal_types).where(MealPlan.tenant_id == tenant_uuid)
                )
            ).all()

        allowed: dict[str, tuple[MealType, ...]] = {}
        for plan_id, meal_types in plans:
            parsed = tuple(
                meal for meal in (MealType.parse(value) for value in (meal_types or [])) if meal is not None
            )
            allowed[str(plan_id)] = parsed

        defaults = default_scan_settings(tenant_key, self._config)
        if row is None:
            return ScanSettings(
                tenant_id=tenant_key,
                meal_windows=defaults.meal_windows,
                double_scan_window_seconds=defaults.double_scan_window_seconds,
                duplicate_policy=defaults.duplicate_policy,
                timezone=defaults.timezone,
                allowed_meal_types_by_plan=allowed,
                alert_threshold_meals_remaining=defaults.alert_threshold_meals_remaining,
            )

        windows = sanitize_meal_windows(tenant_key, row.meal_windows or {}) or defaults.meal_windows
        threshold = row.alert_threshold_meals_remaining
        return ScanSettings(
            tenant_id=tenant_key,
            meal_windows=windows,
            double_scan_window_seconds=int(row.double_scan_window_seconds),
            duplicate_policy=DuplicatePolicy(row.duplicate_policy),
            timezone=row.timezone or defaults.timezone,
            allowed_meal_types_by_plan=allowed,
            alert_threshold_meals_remaining=(
                threshold if threshold is not None else defaults.alert_threshold_meals_remaining
            ),
        )


__all__ = [
    "ScanSettings",
    "TenantSettingsProvider",
    "default_scan_settings",
    "sanitize_meal_windows",
]
