"""Meal plans sold by a tenant."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from mealpass_api.db.base import Base


class MealPlan(Base):
    """Plan template; ``meal_types`` restricts which meals a subscription may redeem."""

    __tablename__ = "meal_plans"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    # Empty list means every meal type is allowed.
    meal_types = Column(JSON, nullable=False, default=list)
    breakfast_allocation = Column(Integer, nullable=False, default=0, server_default="0")
    lunch_allocation = Column(Integer, nullable=False, default=0, server_default="0")
    dinner_allocation = Column(Integer, nullable=False, default=0, server_default="0")
    snack_allocation = Column(Integer, nullable=False, default=0, server_default="0")
    price = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")
    duration_days = Column(Integer, nullable=False, default=30, server_default="30")
    active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    subscriptions = relationship("MealSubscription", back_populates="plan")
