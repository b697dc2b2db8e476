"""Fire-and-forget "meal redeemed" events for live dashboards."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from loguru import logger
from redis.asyncio import Redis

from mealpass_api.core.settings import Settings, settings as app_settings
from mealpass_api.models.meal_type import MealType


@dataclass(frozen=True)
class MealRedeemedEvent:
    tenant_id: UUID
    customer_id: UUID
    subscription_id: UUID
    transaction_id: UUID
    meal_type: MealType
    balance_remaining: int
    meals_remaining: int
    scanner_id: str
    scanned_at: datetime
    low_balance: bool = False
    subscription_exhausted: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "event": "meal.redeemed",
            "tenantId": str(self.tenant_id),
            "customerId": str(self.customer_id),
            "subscriptionId": str(self.subscription_id),
            "transactionId": str(self.transaction_id),
            "mealType": self.meal_type.value,
            "balanceRemaining": self.balance_remaining,
            "mealsRemaining": self.meals_remaining,
            "scannerId": self.scanner_id,
            "scannedAt": self.scanned_at.isoformat(),
            "lowBalance": self.low_balance,
            "subscriptionExhausted": self.subscription_exhausted,
        }


class RedemptionNotifier(Protocol):
    async def notify(self, event: MealRedeemedEvent) -> None: ...


class LoggingRedemptionNotifier:
    """Emit redemption events to the structured log only."""

    async def notify(self, event: MealRedeemedEvent) -> None:
        logger.bind(event="meal.redeemed").info(
            "Meal redeemed",
            tenant_id=str(event.tenant_id),
            customer_id=str(event.customer_id),
            transaction_id=str(event.transaction_id),
            meal_type=event.meal_type.value,
            balance_remaining=event.balance_remaining,
            low_balance=event.low_balance,
        )


class RedisRedemptionNotifier:
    """Publish events on ``<prefix>:<tenant_id>`` for the socket gateway."""

    def __init__(self, redis_client: Redis | None = None, *, channel_prefix: str | None = None) -> None:
        self._redis = redis_client or Redis.from_url(
            app_settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._channel_prefix = channel_prefix or app_settings.notifier_channel_prefix

    def channel_for(self, tenant_id: UUID) -> str:
        return f"{self._channel_prefix}:{tenant_id}"

    async def notify(self, event: MealRedeemedEvent) -> None:
        receivers = await self._redis.publish(self.channel_for(event.tenant_id), json.dumps(event.as_dict()))
        logger.debug(
            "Published redemption event",
            tenant_id=str(event.tenant_id),
            transaction_id=str(event.transaction_id),
            receivers=receivers,
        )


def build_notifier(config: Settings | None = None) -> RedemptionNotifier:
    config = config or app_settings
    if config.notifier_backend == "redis":
        return RedisRedemptionNotifier(
            Redis.from_url(config.redis_url, encoding="utf-8", decode_responses=True),
            channel_prefix=config.notifier_channel_prefix,
        )
    return LoggingRedemptionNotifier()


__all__ = [
    "LoggingRedemptionNotifier",
    "MealRedeemedEvent",
    "RedemptionNotifier",
    "RedisRedemptionNotifier",
    "build_notifier",
]
