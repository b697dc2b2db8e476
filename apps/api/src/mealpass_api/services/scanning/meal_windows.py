"""Meal-window resolution from time of day."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Mapping

from mealpass_api.models.meal_type import MEAL_TYPE_PRIORITY, MealType

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class MealWindowConfigError(ValueError):
    """Raised when a window boundary is not a valid ``HH:MM`` string."""


@dataclass(frozen=True)
class MealWindow:
    """Inclusive ``[start, end]`` range in minutes after midnight."""

    start_minute: int
    end_minute: int

    @property
    def wraps_midnight(self) -> bool:
        return self.start_minute > self.end_minute

    def contains(self, minute: int) -> bool:
        if self.wraps_midnight:
            return minute >= self.start_minute or minute <= self.end_minute
        return self.start_minute <= minute <= self.end_minute

    def minutes(self) -> set[int]:
        if self.wraps_midnight:
            return set(range(self.start_minute, 24 * 60)) | set(range(0, self.end_minute + 1))
        return set(range(self.start_minute, self.end_minute + 1))


def parse_hhmm(value: Any) -> int:
    if not isinstance(value, str):
        raise MealWindowConfigError(f"Expected HH:MM string, got {value!r}")
    match = _HHMM.match(value.strip())
    if match is None:
        raise MealWindowConfigError(f"Expected HH:MM string, got {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def parse_window(entry: Mapping[str, Any]) -> MealWindow:
    """Parse a ``{"start", "end"}`` (or legacy ``{"from", "to"}``) mapping."""

    start = entry.get("start") or entry.get("from")
    end = entry.get("end") or entry.get("to")
    return MealWindow(start_minute=parse_hhmm(start), end_minute=parse_hhmm(end))


def _minute_of_day(now: datetime | time) -> int:
    # Seconds are ignored so "15:00:59" still matches an end bound of "15:00".
    return now.hour * 60 + now.minute


def resolve_meal_type(
    now: datetime | time,
    windows: Mapping[str, Mapping[str, Any]],
) -> MealType | None:
    """Return the first meal type, in priority order, whose window holds ``now``.

    ``now`` must already be in the tenant's local time. Malformed windows are
    skipped rather than raised; configuration is validated when it is saved.
    """

    minute = _minute_of_day(now)
    for meal_type in MEAL_TYPE_PRIORITY:
        entry = windows.get(meal_type.value)
        if not entry:
            continue
        try:
            window = parse_window(entry)
        except MealWindowConfigError:
            continue
        if window.contains(minute):
            return meal_type
    return None


def validate_meal_windows(windows: Mapping[str, Any]) -> list[str]:
    """Describe every malformed, unknown or overlapping window entry."""

    problems: list[str] = []
    parsed: dict[MealType, MealWindow] = {}
    for name, entry in windows.items():
        meal_type = MealType.parse(name)
        if meal_type is None:
            problems.append(f"unknown meal type {name!r}")
            continue
        if not isinstance(entry, Mapping):
            problems.append(f"{meal_type.value}: window must be a mapping")
            continue
        try:
            parsed[meal_type] = parse_window(entry)
        except MealWindowConfigError as exc:
            problems.append(f"{meal_type.value}: {exc}")

    ordered = [meal for meal in MEAL_TYPE_PRIORITY if meal in parsed]
    for index, first in enumerate(ordered):
        for second in ordered[index + 1:]:
            if parsed[first].minutes() & parsed[second].minutes():
                problems.append(f"{first.value} overlaps {second.value}")
    return problems


__all__ = [
    "MealWindow",
    "MealWindowConfigError",
    "parse_window",
    "resolve_meal_type",
    "validate_meal_windows",
]
