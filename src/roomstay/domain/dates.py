"""Calendar-day arithmetic.

All values are datetime.date (no time component). Stays are half-open:
[check_in, check_out), so the check-out day is not an occupied night.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta

from roomstay.domain.errors import InvalidRange

ONE_DAY = timedelta(days=1)


def month_start(anchor: date) -> date:
    return anchor.replace(day=1)


def month_bounds(anchor: date) -> tuple[date, date]:
    """Return (first_day, last_day) of the month containing anchor, inclusive."""
    last = calendar.monthrange(anchor.year, anchor.month)[1]
    return anchor.replace(day=1), anchor.replace(day=last)


def next_month(anchor: date) -> date:
    _, last = month_bounds(anchor)
    return last + ONE_DAY


def days_in_month(anchor: date) -> list[date]:
    """Every day of the calendar month containing anchor, ascending (28-31 items)."""
    first, last = month_bounds(anchor)
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


def enumerate_nights(check_in: date, check_out: date) -> list[date]:
    """Nights actually occupied by a stay: check_in inclusive to check_out exclusive.

    Empty when check_out <= check_in.
    """
    return [check_in + timedelta(days=i) for i in range((check_out - check_in).days)]


def nights_between(check_in: date, check_out: date) -> int:
    """Number of nights in [check_in, check_out).

    Raises:
        InvalidRange: If check_out <= check_in.
    """
    if check_out <= check_in:
        raise InvalidRange(check_in, check_out)
    return (check_out - check_in).days


def months_spanned(start: date, end_exclusive: date) -> list[date]:
    """First days of every month touched by [start, end_exclusive).

    A single-day window (end_exclusive == start + 1) yields one month.
    """
    if end_exclusive <= start:
        return []
    months = []
    current = month_start(start)
    while current < end_exclusive:
        months.append(current)
        current = next_month(current)
    return months


def parse_month(value: str) -> date:
    """Parse a month anchor given as YYYY-MM or YYYY-MM-DD.

    Raises:
        InvalidRange: On malformed input.
    """
    text = value.strip()
    try:
        if len(text) == 7:
            return date.fromisoformat(f"{text}-01")
        return date.fromisoformat(text)
    except ValueError:
        raise InvalidRange(reason=f"Invalid month: {value!r} (expected YYYY-MM)", fields=["month"])
