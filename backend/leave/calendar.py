"""Working-day arithmetic and date-range overlap on a fixed Mon–Fri week.

No holiday calendar is consulted: a working day is any Monday to Friday.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterator

from backend.common.constants import LeaveDuration

SATURDAY = 5


def iter_days(start_date: date, end_date: date) -> Iterator[date]:
    """Every calendar day from ``start_date`` to ``end_date`` inclusive."""
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def is_working_day(day: date) -> bool:
    return day.weekday() < SATURDAY


def working_days_between(start_date: date, end_date: date) -> int:
    """Count of Mon–Fri days in the inclusive range; 0 when the range is inverted."""
    return sum(1 for day in iter_days(start_date, end_date) if is_working_day(day))


def calculate_working_days(
    start_date: date,
    end_date: date,
    duration: LeaveDuration,
) -> float:
    """Days of leave consumed: working-day count times the duration unit."""
    return working_days_between(start_date, end_date) * duration.value_in_days


def is_weekend_only(start_date: date, end_date: date) -> bool:
    """True when no day of the (non-empty) range is a working day."""
    if end_date < start_date:
        return False
    return not any(is_working_day(day) for day in iter_days(start_date, end_date))


def next_working_day(day: date) -> date:
    candidate = day + timedelta(days=1)
    while not is_working_day(candidate):
        candidate += timedelta(days=1)
    return candidate


def previous_working_day(day: date) -> date:
    candidate = day - timedelta(days=1)
    while not is_working_day(candidate):
        candidate -= timedelta(days=1)
    return candidate


def ranges_overlap(
    start_a: date,
    end_a: date,
    start_b: date,
    end_b: date,
) -> bool:
    """Inclusive overlap: a shared boundary day counts."""
    return not (end_a < start_b or start_a > end_b)
