"""Per-meal last-redeemed markers on subscriptions.

Revision ID: 20261020_01
Revises: 20261019_01
Create Date: 2026-10-20
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261020_01"
down_revision: Union[str, None] = "20261019_01"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MEAL_TYPES = ("breakfast", "lunch", "dinner", "snack")


def upgrade() -> None:
    for meal_type in MEAL_TYPES:
        op.add_column(
            "meal_subscriptions",
            sa.Column(f"last_{meal_type}_redeemed_at", sa.DateTime(timezone=True), nullable=True),
        )


def downgrade() -> None:
    for meal_type in reversed(MEAL_TYPES):
        op.drop_column("meal_subscriptions", f"last_{meal_type}_redeemed_at")
