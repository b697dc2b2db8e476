"""Per-tenant scan configuration."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, Integer, JSON, String, func
from sqlalchemy.dialects.postgresql import UUID

from mealpass_api.db.base import Base


class DuplicatePolicy(str, Enum):
    """How a second successful scan for the same meal is detected."""

    WINDOW = "window"
    SAME_DAY = "same_day"


class TenantScanSettings(Base):
    """Meal windows and duplicate policy configured by a tenant."""

    __tablename__ = "tenant_scan_settings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    tenant_id = Column(UUID(as_uuid=True), nullable=False, unique=True)
    meal_windows = Column(JSON, nullable=False, default=dict)
    double_scan_window_seconds = Column(Integer, nullable=False, default=30, server_default="30")
    duplicate_policy = Column(
        SqlEnum(DuplicatePolicy, name="duplicate_policy", values_callable=lambda enum_cls: [m.value for m in enum_cls]),
        nullable=False,
        default=DuplicatePolicy.WINDOW,
        server_default=DuplicatePolicy.WINDOW.value,
    )
    timezone = Column(String, nullable=False, default="UTC", server_default="UTC")
    alert_threshold_meals_remaining = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
