"""Meal type vocabulary shared by plans, balances and the ledger."""

from __future__ import annotations

from enum import Enum


class MealType(str, Enum):
    """Meal services with independent balances and serving windows."""

    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"

    @classmethod
    def parse(cls, value: object) -> "MealType | None":
        """Coerce loose client input (``"Lunch"``, ``"snacks"``) into a member."""

        if isinstance(value, MealType):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        if normalized == "snacks":
            normalized = "snack"
        try:
            return cls(normalized)
        except ValueError:
            return None


# Resolution priority when windows overlap.
MEAL_TYPE_PRIORITY: tuple[MealType, ...] = (
    MealType.BREAKFAST,
    MealType.LUNCH,
    MealType.DINNER,
    MealType.SNACK,
)
