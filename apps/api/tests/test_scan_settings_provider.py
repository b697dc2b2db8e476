from __future__ import annotations

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import update

from mealpass_api.models import DuplicatePolicy, MealPlan, MealType, TenantScanSettings
from mealpass_api.services.scanning import InMemoryExpiringStore, ScanSettings, TenantSettingsProvider
from mealpass_api.services.scanning.settings_provider import sanitize_meal_windows


class FakeClock:
    def __init__(self) -> None:
        self.value = 0.0

    def __call__(self) -> float:
        return self.value


class _HangingSession:
    async def __aenter__(self):
        await asyncio.sleep(5)

    async def __aexit__(self, *exc_info):
        return False


def _unavailable_factory():
    raise ConnectionRefusedError("database unavailable")


async def _store_settings(session_factory, tenant_id, **overrides) -> None:
    values = {
        "meal_windows": {
            "breakfast": {"start": "07:30", "end": "09:30"},
            "lunch": {"from": "12:30", "to": "14:30"},
        },
        "double_scan_window_seconds": 90,
        "duplicate_policy": DuplicatePolicy.SAME_DAY,
        "timezone": "Asia/Kolkata",
        "alert_threshold_meals_remaining": 3,
    }
    values.update(overrides)
    async with session_factory() as session:
        session.add(TenantScanSettings(tenant_id=tenant_id, **values))
        session.add(MealPlan(tenant_id=tenant_id, name="Dinner only", meal_types=["Dinner", "bogus"]))
        await session.commit()


@pytest.mark.asyncio
async def test_stored_settings_are_loaded(session_factory) -> None:
    tenant_id = uuid4()
    await _store_settings(session_factory, tenant_id)
    provider = TenantSettingsProvider(session_factory, InMemoryExpiringStore())

    loaded = await provider.get_settings(tenant_id)

    assert loaded.from_defaults is False
    assert loaded.double_scan_window_seconds == 90
    assert loaded.duplicate_policy is DuplicatePolicy.SAME_DAY
    assert loaded.timezone == "Asia/Kolkata"
    assert loaded.alert_threshold_meals_remaining == 3
    assert loaded.meal_windows["lunch"] == {"start": "12:30", "end": "14:30"}
    [plan_meals] = loaded.allowed_meal_types_by_plan.values()
    assert plan_meals == (MealType.DINNER,)


@pytest.mark.asyncio
async def test_missing_row_uses_configured_defaults(session_factory) -> None:
    provider = TenantSettingsProvider(session_factory, InMemoryExpiringStore())

    loaded = await provider.get_settings(uuid4())

    assert loaded.meal_windows["lunch"] == {"start": "12:00", "end": "15:00"}
    assert loaded.duplicate_policy is DuplicatePolicy.WINDOW
    assert loaded.allowed_meal_types_for(None) == ()


@pytest.mark.asyncio
async def test_settings_are_cached_until_ttl_or_invalidation(session_factory) -> None:
    tenant_id = uuid4()
    await _store_settings(session_factory, tenant_id)
    clock = FakeClock()
    provider = TenantSettingsProvider(session_factory, InMemoryExpiringStore(clock=clock), ttl_seconds=60)

    await provider.get_settings(tenant_id)
    async with session_factory() as session:
        await session.execute(
            update(TenantScanSettings)
            .where(TenantScanSettings.tenant_id == tenant_id)
            .values(double_scan_window_seconds=15)
        )
        await session.commit()

    assert (await provider.get_settings(tenant_id)).double_scan_window_seconds == 90
    clock.value += 61
    assert (await provider.get_settings(tenant_id)).double_scan_window_seconds == 15

    async with session_factory() as session:
        await session.execute(
            update(TenantScanSettings)
            .where(TenantScanSettings.tenant_id == tenant_id)
            .values(double_scan_window_seconds=45)
        )
        await session.commit()
    await provider.invalidate(tenant_id)
    assert (await provider.get_settings(tenant_id)).double_scan_window_seconds == 45


@pytest.mark.asyncio
async def test_outage_serves_last_known_settings(session_factory) -> None:
    tenant_id = uuid4()
    await _store_settings(session_factory, tenant_id)
    clock = FakeClock()
    store = InMemoryExpiringStore(clock=clock)
    await TenantSettingsProvider(session_factory, store, ttl_seconds=60).get_settings(tenant_id)
    clock.value += 61

    degraded = TenantSettingsProvider(_unavailable_factory, store, ttl_seconds=60)
    loaded = await degraded.get_settings(tenant_id)

    assert loaded.double_scan_window_seconds == 90
    assert loaded.timezone == "Asia/Kolkata"


@pytest.mark.asyncio
async def test_outage_without_history_uses_defaults() -> None:
    provider = TenantSettingsProvider(_unavailable_factory, InMemoryExpiringStore())

    loaded = await provider.get_settings(uuid4())

    assert loaded.from_defaults is True
    assert loaded.meal_windows["breakfast"] == {"start": "06:30", "end": "10:00"}


@pytest.mark.asyncio
async def test_slow_store_falls_back_after_timeout() -> None:
    provider = TenantSettingsProvider(lambda: _HangingSession(), InMemoryExpiringStore(), timeout_seconds=0.05)

    loaded = await provider.get_settings(uuid4())

    assert loaded.from_defaults is True


@pytest.mark.asyncio
async def test_unparseable_windows_fall_back_to_defaults(session_factory) -> None:
    tenant_id = uuid4()
    await _store_settings(session_factory, tenant_id, meal_windows={"lunch": {"start": "noon", "end": "2pm"}})
    provider = TenantSettingsProvider(session_factory, InMemoryExpiringStore())

    loaded = await provider.get_settings(tenant_id)

    assert loaded.meal_windows["lunch"] == {"start": "12:00", "end": "15:00"}
    assert loaded.from_defaults is False


def test_sanitize_drops_bad_entries() -> None:
    cleaned = sanitize_meal_windows(
        "tenant",
        {
            "Snacks": {"start": "16:00", "end": "17:00"},
            "brunch": {"start": "10:00", "end": "11:00"},
            "dinner": "19:00-22:00",
        },
    )

    assert cleaned == {"snack": {"start": "16:00", "end": "17:00"}}


def test_unknown_timezone_resolves_to_utc() -> None:
    scan_settings = ScanSettings(
        tenant_id="tenant",
        meal_windows={},
        double_scan_window_seconds=30,
        timezone="Mars/Olympus_Mons",
    )

    assert str(scan_settings.tzinfo) == "UTC"


def test_cache_payload_round_trip_keeps_plan_restrictions() -> None:
    original = ScanSettings(
        tenant_id="tenant",
        meal_windows={"lunch": {"start": "12:00", "end": "15:00"}},
        double_scan_window_seconds=30,
        allowed_meal_types_by_plan={"plan-1": (MealType.LUNCH, MealType.DINNER)},
    )

    restored = ScanSettings.from_cache(original.to_cache())

    assert restored.allowed_meal_types_for("plan-1") == (MealType.LUNCH, MealType.DINNER)
    assert restored == original
