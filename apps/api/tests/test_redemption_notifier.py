from __future__ import annotations

import json
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from mealpass_api.core.settings import Settings
from mealpass_api.models import MealType
from mealpass_api.observability.scanning import ScanObservabilityStore
from mealpass_api.services.scanning import (
    LoggingRedemptionNotifier,
    MealRedeemedEvent,
    RedisRedemptionNotifier,
    build_notifier,
)


class FakePublisher:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 1


def _event() -> MealRedeemedEvent:
    return MealRedeemedEvent(
        tenant_id=uuid4(),
        customer_id=uuid4(),
        subscription_id=uuid4(),
        transaction_id=uuid4(),
        meal_type=MealType.DINNER,
        balance_remaining=2,
        meals_remaining=4,
        scanner_id="gate-3",
        scanned_at=datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc),
        low_balance=True,
    )


@pytest.mark.asyncio
async def test_redis_notifier_publishes_on_tenant_channel() -> None:
    redis = FakePublisher()
    notifier = RedisRedemptionNotifier(redis, channel_prefix="mealpass:redemptions")  # type: ignore[arg-type]
    event = _event()

    await notifier.notify(event)

    [(channel, message)] = redis.published
    assert channel == f"mealpass:redemptions:{event.tenant_id}"
    payload = json.loads(message)
    assert payload["event"] == "meal.redeemed"
    assert payload["mealType"] == "dinner"
    assert payload["lowBalance"] is True
    assert payload["scannedAt"] == "2026-10-19T20:00:00+00:00"


@pytest.mark.asyncio
async def test_logging_notifier_accepts_events() -> None:
    await LoggingRedemptionNotifier().notify(_event())


def test_notifier_backend_selection() -> None:
    assert isinstance(build_notifier(Settings(notifier_backend="log")), LoggingRedemptionNotifier)
    assert isinstance(build_notifier(Settings(notifier_backend="redis")), RedisRedemptionNotifier)


def test_scan_store_counts_outcomes() -> None:
    store = ScanObservabilityStore()

    store.record_redemption("success")
    store.record_redemption("success", idempotent=True)
    store.record_redemption("blocked", "duplicate_scan")
    store.record_race_lost()
    store.record_batch(size=3, success=1, blocked=1, failed=1)
    store.record_notification(True)

    snapshot = store.snapshot().as_dict()
    assert snapshot["outcomes"] == {"success": 2, "idempotent_replays": 1, "blocked": 1, "race_lost": 1}
    assert snapshot["reasons"] == {"duplicate_scan": 1}
    assert snapshot["batches"]["scans"] == 3
    assert snapshot["notifications"] == {"delivered": 1}

    store.reset()
    assert store.snapshot().outcomes == {}
