"""Tenant-scoped customer identities."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from mealpass_api.db.base import Base


def _new_qr_code_id() -> str:
    return uuid4().hex


class Customer(Base):
    """Mess customer; read-only for the redemption core."""

    __tablename__ = "customers"
    __table_args__ = (
        UniqueConstraint("tenant_id", "qr_code_id", name="uq_customers_tenant_qr_code"),
        UniqueConstraint("tenant_id", "phone", name="uq_customers_tenant_phone"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=True)
    room_no = Column(String, nullable=True)
    qr_code_id = Column(String, nullable=False, default=_new_qr_code_id)
    active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    subscriptions = relationship(
        "MealSubscription", back_populates="customer", cascade="all, delete-orphan"
    )
