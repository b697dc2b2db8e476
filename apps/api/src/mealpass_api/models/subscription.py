"""Prepaid meal subscriptions and their per-meal balances."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import InstrumentedAttribute, relationship

from mealpass_api.db.base import Base
from mealpass_api.models.meal_type import MealType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MealSubscription(Base):
    """Meal allowance owned by one customer.

    Balances are only ever decremented through the conditional update in the
    redemption repository; the check constraints keep every counter at or
    above zero even if a caller bypasses it.
    """

    __tablename__ = "meal_subscriptions"
    __table_args__ = (
        CheckConstraint("meals_remaining >= 0", name="ck_meal_subscriptions_meals_remaining"),
        CheckConstraint("breakfast_remaining >= 0", name="ck_meal_subscriptions_breakfast"),
        CheckConstraint("lunch_remaining >= 0", name="ck_meal_subscriptions_lunch"),
        CheckConstraint("dinner_remaining >= 0", name="ck_meal_subscriptions_dinner"),
        CheckConstraint("snack_remaining >= 0", name="ck_meal_subscriptions_snack"),
        Index("ix_meal_subscriptions_customer_active", "tenant_id", "customer_id", "active"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
    )
    plan_id = Column(UUID(as_uuid=True), ForeignKey("meal_plans.id"), nullable=True)
    meals_total = Column(Integer, nullable=False, default=0, server_default="0")
    meals_remaining = Column(Integer, nullable=False, default=0, server_default="0")
    breakfast_remaining = Column(Integer, nullable=False, default=0, server_default="0")
    lunch_remaining = Column(Integer, nullable=False, default=0, server_default="0")
    dinner_remaining = Column(Integer, nullable=False, default=0, server_default="0")
    snack_remaining = Column(Integer, nullable=False, default=0, server_default="0")
    # Latest scan time that consumed each meal; the decrement refuses a second
    # debit inside the tenant's duplicate scope.
    last_breakfast_redeemed_at = Column(DateTime(timezone=True), nullable=True)
    last_lunch_redeemed_at = Column(DateTime(timezone=True), nullable=True)
    last_dinner_redeemed_at = Column(DateTime(timezone=True), nullable=True)
    last_snack_redeemed_at = Column(DateTime(timezone=True), nullable=True)
    # False for legacy plans that only track the aggregate ``meals_remaining``.
    tracks_meal_balances = Column(Boolean, nullable=False, default=True, server_default="true")
    active = Column(Boolean, nullable=False, default=True, server_default="true")
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    paused_at = Column(DateTime(timezone=True), nullable=True)
    needs_renewal = Column(Boolean, nullable=False, default=False, server_default="false")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    customer = relationship("Customer", back_populates="subscriptions")
    plan = relationship("MealPlan", back_populates="subscriptions")

    @classmethod
    def balance_column(cls, meal_type: MealType) -> InstrumentedAttribute:
        return {
            MealType.BREAKFAST: cls.breakfast_remaining,
            MealType.LUNCH: cls.lunch_remaining,
            MealType.DINNER: cls.dinner_remaining,
            MealType.SNACK: cls.snack_remaining,
        }[meal_type]

    @classmethod
    def last_redeemed_column(cls, meal_type: MealType) -> InstrumentedAttribute:
        return {
            MealType.BREAKFAST: cls.last_breakfast_redeemed_at,
            MealType.LUNCH: cls.last_lunch_redeemed_at,
            MealType.DINNER: cls.last_dinner_redeemed_at,
            MealType.SNACK: cls.last_snack_redeemed_at,
        }[meal_type]

    def meal_balances(self) -> dict[MealType, int]:
        return {
            MealType.BREAKFAST: int(self.breakfast_remaining or 0),
            MealType.LUNCH: int(self.lunch_remaining or 0),
            MealType.DINNER: int(self.dinner_remaining or 0),
            MealType.SNACK: int(self.snack_remaining or 0),
        }
