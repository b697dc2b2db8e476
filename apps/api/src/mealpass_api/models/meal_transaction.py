"""Append-only ledger of meal redemption attempts."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID

from mealpass_api.db.base import Base
from mealpass_api.models.meal_type import MealType


def _enum_values(enum_cls: type[Enum]) -> list[str]:
    return [member.value for member in enum_cls]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MealTransactionStatus(str, Enum):
    """Recorded outcome of a redemption attempt."""

    SUCCESS = "success"
    BLOCKED = "blocked"
    FAILED = "failed"
    DUPLICATE = "duplicate"


class MealTransaction(Base):
    """One redemption attempt. Rows are never updated except ``synced_at``."""

    __tablename__ = "meal_transactions"
    __table_args__ = (
        UniqueConstraint("tenant_id", "idempotency_key", name="uq_meal_transactions_idempotency_key"),
        Index("ix_meal_transactions_duplicate_lookup", "customer_id", "meal_type", "status", "scanned_at"),
        Index("ix_meal_transactions_tenant_scanned_at", "tenant_id", "scanned_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False)
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
    )
    subscription_id = Column(
        UUID(as_uuid=True),
        ForeignKey("meal_subscriptions.id", ondelete="SET NULL"),
        nullable=True,
    )
    scanner_id = Column(String, nullable=False)
    meal_type = Column(SqlEnum(MealType, name="meal_type", values_callable=_enum_values), nullable=True)
    status = Column(SqlEnum(MealTransactionStatus, name="meal_transaction_status", values_callable=_enum_values), nullable=False)
    failure_reason = Column(String, nullable=True)
    scanned_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    balance_before = Column(Integer, nullable=True)
    balance_after = Column(Integer, nullable=True)
    duplicate_of_transaction_id = Column(
        UUID(as_uuid=True),
        ForeignKey("meal_transactions.id", ondelete="SET NULL"),
        nullable=True,
    )
    idempotency_key = Column(String(64), nullable=True)
    qr_code_id = Column(String, nullable=True)
    client_id = Column(String, nullable=True)
    client_timestamp = Column(DateTime(timezone=True), nullable=True)
    synced_at = Column(DateTime(timezone=True), nullable=True)
    device_id = Column(String, nullable=True)
    scan_location = Column(String, nullable=True)
    notes = Column(String(200), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
