from datetime import date, timedelta
from typing import Iterable, List, Tuple

from tutoring_cli.errors import ValidationError

# Week order used for display and storage, matching the centre's Sunday-first week
WEEKDAYS: Tuple[str, ...] = (
    "sunday",
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
)


def weekday_name(day: date) -> str:
    """Return the lowercase weekday name for ``day`` (Python counts Monday as 0)."""
    return WEEKDAYS[(day.weekday() + 1) % 7]


def normalize_days(days: Iterable[str]) -> List[str]:
    """
    Validate and sort a set of weekday names into canonical week order.

    Raises:
        ValidationError: If the set is empty or contains an unknown day
    """
    cleaned = {d.strip().lower() for d in days if d and d.strip()}
    if not cleaned:
        raise ValidationError("At least one day of the week is required")

    unknown = cleaned - set(WEEKDAYS)
    if unknown:
        raise ValidationError(f"Unknown day(s) of week: {', '.join(sorted(unknown))}")

    return [d for d in WEEKDAYS if d in cleaned]


def month_bounds(month: int, year: int) -> Tuple[date, date]:
    """
    Return the first day of the month and the first day of the following month.

    The pair forms the half-open range [start, next_start) used by every
    month-scoped query.
    """
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month: {month}")
    start = date(year, month, 1)
    if month == 12:
        next_start = date(year + 1, 1, 1)
    else:
        next_start = date(year, month + 1, 1)
    return start, next_start


def last_day_of_month(month: int, year: int) -> date:
    _, next_start = month_bounds(month, year)
    return next_start - timedelta(days=1)
