"""Pure eligibility rules for a single redemption attempt."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Collection, Mapping
from uuid import UUID

from mealpass_api.models.meal_transaction import MealTransactionStatus
from mealpass_api.models.meal_type import MealType
from mealpass_api.services.scanning.results import RedemptionReason


@dataclass(frozen=True)
class CustomerSnapshot:
    id: UUID
    tenant_id: UUID
    active: bool
    qr_code_id: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """Balance state of a subscription as read before eligibility runs."""

    id: UUID
    tenant_id: UUID
    customer_id: UUID
    meals_remaining: int
    start_date: date
    end_date: date
    active: bool = True
    plan_id: UUID | None = None
    meals_total: int = 0
    balances: Mapping[MealType, int] = field(default_factory=dict)
    tracks_meal_balances: bool = True
    paused_at: datetime | None = None
    updated_at: datetime | None = None

    def balance_for(self, meal_type: MealType) -> int:
        if not self.tracks_meal_balances:
            return self.meals_remaining
        return min(int(self.balances.get(meal_type, 0)), self.meals_remaining)

    def is_current(self, on: date) -> bool:
        return self.active and self.start_date <= on <= self.end_date


@dataclass(frozen=True)
class TransactionRef:
    """Ledger entry referenced by duplicate and idempotency checks."""

    id: UUID
    customer_id: UUID
    status: MealTransactionStatus
    scanned_at: datetime
    meal_type: MealType | None = None
    subscription_id: UUID | None = None
    balance_after: int | None = None
    idempotency_key: str | None = None
    failure_reason: str | None = None
    duplicate_of_transaction_id: UUID | None = None


@dataclass(frozen=True)
class EligibilityDecision:
    allowed: bool
    reason: RedemptionReason | None = None
    duplicate_of: UUID | None = None

    @classmethod
    def allow(cls) -> "EligibilityDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: RedemptionReason, *, duplicate_of: UUID | None = None) -> "EligibilityDecision":
        return cls(allowed=False, reason=reason, duplicate_of=duplicate_of)


def evaluate_eligibility(
    customer: CustomerSnapshot | None,
    subscription: SubscriptionSnapshot | None,
    meal_type: MealType | None,
    now: datetime,
    recent_transaction: TransactionRef | None,
    *,
    allowed_meal_types: Collection[MealType] | None = None,
) -> EligibilityDecision:
    """Decide whether the scan may consume a meal.

    Checks run in a fixed order and the first failure wins. ``now`` is the
    scan time in the tenant's local timezone and ``recent_transaction`` is
    the earlier success the caller found inside the duplicate scope, if any.
    An empty ``allowed_meal_types`` means the plan is unrestricted.
    """

    if customer is None:
        return EligibilityDecision.deny(RedemptionReason.CUSTOMER_NOT_FOUND)
    if not customer.active:
        return EligibilityDecision.deny(RedemptionReason.CUSTOMER_INACTIVE)

    if subscription is None or not subscription.is_current(now.date()):
        return EligibilityDecision.deny(RedemptionReason.NO_ACTIVE_SUBSCRIPTION)
    if subscription.paused_at is not None:
        return EligibilityDecision.deny(RedemptionReason.SUBSCRIPTION_PAUSED)

    if meal_type is None:
        return EligibilityDecision.deny(RedemptionReason.OUTSIDE_MEAL_WINDOW)
    if allowed_meal_types and meal_type not in allowed_meal_types:
        return EligibilityDecision.deny(RedemptionReason.MEAL_TYPE_NOT_ALLOWED)

    if recent_transaction is not None:
        return EligibilityDecision.deny(RedemptionReason.DUPLICATE_SCAN, duplicate_of=recent_transaction.id)

    if subscription.balance_for(meal_type) <= 0:
        return EligibilityDecision.deny(RedemptionReason.NO_MEALS_REMAINING)

    return EligibilityDecision.allow()


__all__ = [
    "CustomerSnapshot",
    "EligibilityDecision",
    "SubscriptionSnapshot",
    "TransactionRef",
    "evaluate_eligibility",
]
