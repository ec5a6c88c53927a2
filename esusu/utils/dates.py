"""Calendar helpers shared by the scheduling and reporting services."""

import calendar
from datetime import date, datetime, time, timezone


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(start: date, months: int, day: int | None = None) -> date:
    """Shift a date by whole months, optionally forcing the day of month.

    The day is clamped to the last day of the target month, so day 31 in
    February lands on the 28th (or 29th).

    Args:
        start: Base date
        months: Number of months to add (may be negative)
        day: Day of month to force; defaults to start.day

    Returns:
        Shifted date
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day or start.day, last_day))


def months_spanned(start: date, end: date) -> int:
    """Number of calendar months touched by the range, both ends included."""
    return (end.year - start.year) * 12 + (end.month - start.month) + 1


def month_bounds(month: int, year: int) -> tuple[datetime, datetime]:
    """Half-open UTC window [first day, first day of next month)."""
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    next_start = add_months(start.date(), 1, day=1)
    return start, datetime.combine(next_start, time.min, tzinfo=timezone.utc)


def days_between(earlier: date, later: date) -> int:
    """Whole days from earlier to later (negative if reversed)."""
    return (later - earlier).days


def trailing_month_starts(today: date, count: int = 12) -> list[date]:
    """First days of the last ``count`` months, oldest first, ending with today's month."""
    first = today.replace(day=1)
    return [add_months(first, -offset, day=1) for offset in range(count - 1, -1, -1)]


__all__ = [
    "utcnow",
    "ensure_utc",
    "add_months",
    "months_spanned",
    "month_bounds",
    "days_between",
    "trailing_month_starts",
]
