"""Meal redemption core tables.

Revision ID: 20261019_01
Revises:
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


meal_type_enum = sa.Enum("breakfast", "lunch", "dinner", "snack", name="meal_type")
transaction_status_enum = sa.Enum("success", "blocked", "failed", "duplicate", name="meal_transaction_status")
duplicate_policy_enum = sa.Enum("window", "same_day", name="duplicate_policy")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("phone", sa.String(), nullable=True),
        sa.Column("room_no", sa.String(), nullable=True),
        sa.Column("qr_code_id", sa.String(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "qr_code_id", name="uq_customers_tenant_qr_code"),
        sa.UniqueConstraint("tenant_id", "phone", name="uq_customers_tenant_phone"),
    )
    op.create_index("ix_customers_tenant_id", "customers", ["tenant_id"])

    op.create_table(
        "meal_plans",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("meal_types", sa.JSON(), nullable=False),
        sa.Column("breakfast_allocation", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lunch_allocation", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("dinner_allocation", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("snack_allocation", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("duration_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_meal_plans_tenant_id", "meal_plans", ["tenant_id"])

    op.create_table(
        "meal_subscriptions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("plan_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("meal_plans.id"), nullable=True),
        sa.Column("meals_total", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("meals_remaining", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("breakfast_remaining", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lunch_remaining", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("dinner_remaining", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("snack_remaining", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("tracks_meal_balances", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("needs_renewal", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("meals_remaining >= 0", name="ck_meal_subscriptions_meals_remaining"),
        sa.CheckConstraint("breakfast_remaining >= 0", name="ck_meal_subscriptions_breakfast"),
        sa.CheckConstraint("lunch_remaining >= 0", name="ck_meal_subscriptions_lunch"),
        sa.CheckConstraint("dinner_remaining >= 0", name="ck_meal_subscriptions_dinner"),
        sa.CheckConstraint("snack_remaining >= 0", name="ck_meal_subscriptions_snack"),
    )
    op.create_index("ix_meal_subscriptions_tenant_id", "meal_subscriptions", ["tenant_id"])
    op.create_index(
        "ix_meal_subscriptions_customer_active",
        "meal_subscriptions",
        ["tenant_id", "customer_id", "active"],
    )

    op.create_table(
        "meal_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "customer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("customers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "subscription_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("meal_subscriptions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("scanner_id", sa.String(), nullable=False),
        sa.Column("meal_type", meal_type_enum, nullable=True),
        sa.Column("status", transaction_status_enum, nullable=False),
        sa.Column("failure_reason", sa.String(), nullable=True),
        sa.Column("scanned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("balance_before", sa.Integer(), nullable=True),
        sa.Column("balance_after", sa.Integer(), nullable=True),
        sa.Column(
            "duplicate_of_transaction_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("meal_transactions.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("idempotency_key", sa.String(length=64), nullable=True),
        sa.Column("qr_code_id", sa.String(), nullable=True),
        sa.Column("client_id", sa.String(), nullable=True),
        sa.Column("client_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("device_id", sa.String(), nullable=True),
        sa.Column("scan_location", sa.String(), nullable=True),
        sa.Column("notes", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.UniqueConstraint("tenant_id", "idempotency_key", name="uq_meal_transactions_idempotency_key"),
    )
    op.create_index(
        "ix_meal_transactions_duplicate_lookup",
        "meal_transactions",
        ["customer_id", "meal_type", "status", "scanned_at"],
    )
    op.create_index("ix_meal_transactions_tenant_scanned_at", "meal_transactions", ["tenant_id", "scanned_at"])

    op.create_table(
        "tenant_scan_settings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False, unique=True),
        sa.Column("meal_windows", sa.JSON(), nullable=False),
        sa.Column("double_scan_window_seconds", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("duplicate_policy", duplicate_policy_enum, nullable=False, server_default="window"),
        sa.Column("timezone", sa.String(), nullable=False, server_default="UTC"),
        sa.Column("alert_threshold_meals_remaining", sa.Integer(), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("tenant_scan_settings")
    op.drop_index("ix_meal_transactions_tenant_scanned_at", table_name="meal_transactions")
    op.drop_index("ix_meal_transactions_duplicate_lookup", table_name="meal_transactions")
    op.drop_table("meal_transactions")
    op.drop_index("ix_meal_subscriptions_customer_active", table_name="meal_subscriptions")
    op.drop_index("ix_meal_subscriptions_tenant_id", table_name="meal_subscriptions")
    op.drop_table("meal_subscriptions")
    op.drop_index("ix_meal_plans_tenant_id", table_name="meal_plans")
    op.drop_table("meal_plans")
    op.drop_index("ix_customers_tenant_id", table_name="customers")
    op.drop_table("customers")

    bind = op.get_bind()
    duplicate_policy_enum.drop(bind, checkfirst=True)
    transaction_status_enum.drop(bind, checkfirst=True)
    meal_type_enum.drop(bind, checkfirst=True)
