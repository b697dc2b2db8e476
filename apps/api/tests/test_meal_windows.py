from __future__ import annotations

from datetime import datetime, time

import pytest

from mealpass_api.models import MealType
from mealpass_api.services.scanning import MealWindowConfigError, resolve_meal_type, validate_meal_windows
from mealpass_api.services.scanning.meal_windows import parse_hhmm

WINDOWS = {
    "breakfast": {"start": "07:00", "end": "10:00"},
    "lunch": {"start": "12:00", "end": "15:00"},
    "dinner": {"start": "19:00", "end": "22:00"},
}


@pytest.mark.parametrize(
    ("moment", "expected"),
    [
        (time(12, 0), MealType.LUNCH),
        (time(15, 0), MealType.LUNCH),
        (time(15, 0, 59), MealType.LUNCH),
        (time(7, 0), MealType.BREAKFAST),
        (time(21, 30), MealType.DINNER),
        (time(11, 59), None),
        (time(15, 1), None),
        (time(3, 0), None),
    ],
)
def test_window_boundaries_are_inclusive(moment: time, expected: MealType | None) -> None:
    assert resolve_meal_type(moment, WINDOWS) is expected


def test_accepts_datetimes() -> None:
    assert resolve_meal_type(datetime(2026, 10, 19, 13, 30), WINDOWS) is MealType.LUNCH


def test_window_crossing_midnight() -> None:
    windows = {"snack": {"start": "22:00", "end": "02:00"}}

    assert resolve_meal_type(time(23, 15), windows) is MealType.SNACK
    assert resolve_meal_type(time(1, 59), windows) is MealType.SNACK
    assert resolve_meal_type(time(2, 0), windows) is MealType.SNACK
    assert resolve_meal_type(time(2, 1), windows) is None
    assert resolve_meal_type(time(21, 59), windows) is None


def test_legacy_from_to_keys() -> None:
    windows = {"lunch": {"from": "11:30", "to": "14:00"}}

    assert resolve_meal_type(time(11, 30), windows) is MealType.LUNCH


def test_overlap_resolves_by_priority() -> None:
    windows = {
        "snack": {"start": "09:00", "end": "11:00"},
        "breakfast": {"start": "07:00", "end": "10:00"},
    }

    assert resolve_meal_type(time(9, 30), windows) is MealType.BREAKFAST
    assert resolve_meal_type(time(10, 30), windows) is MealType.SNACK


def test_malformed_entries_are_skipped() -> None:
    windows = {
        "breakfast": {"start": "7am", "end": "10:00"},
        "lunch": {"start": "12:00", "end": "15:00"},
    }

    assert resolve_meal_type(time(8, 0), windows) is None
    assert resolve_meal_type(time(12, 30), windows) is MealType.LUNCH


@pytest.mark.parametrize("value", ["24:00", "7:00", "12:60", "", None, 1200])
def test_parse_hhmm_rejects_bad_values(value) -> None:
    with pytest.raises(MealWindowConfigError):
        parse_hhmm(value)


def test_validation_reports_problems() -> None:
    problems = validate_meal_windows(
        {
            "brunch": {"start": "10:00", "end": "11:00"},
            "breakfast": {"start": "07:00", "end": "10:00"},
            "snack": {"start": "09:30", "end": "10:30"},
            "dinner": {"start": "19:00"},
        }
    )

    assert "unknown meal type 'brunch'" in problems
    assert "breakfast overlaps snack" in problems
    assert any(problem.startswith("dinner:") for problem in problems)


def test_validation_passes_clean_config() -> None:
    assert validate_meal_windows(WINDOWS) == []
