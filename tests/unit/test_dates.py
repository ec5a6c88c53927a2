"""Unit tests for calendar helpers."""

from datetime import date, datetime, timezone

from esusu.utils.dates import (
    add_months,
    days_between,
    ensure_utc,
    month_bounds,
    months_spanned,
    trailing_month_starts,
)


class TestAddMonths:
    def test_keeps_day_by_default(self):
        assert add_months(date(2025, 1, 15), 3) == date(2025, 4, 15)

    def test_crosses_year_boundary(self):
        assert add_months(date(2025, 11, 10), 3) == date(2026, 2, 10)

    def test_negative_offset(self):
        assert add_months(date(2025, 2, 1), -3, day=1) == date(2024, 11, 1)

    def test_forced_day_is_clamped_to_month_end(self):
        assert add_months(date(2025, 1, 1), 1, day=31) == date(2025, 2, 28)
        assert add_months(date(2024, 1, 1), 1, day=30) == date(2024, 2, 29)
        assert add_months(date(2025, 1, 1), 3, day=31) == date(2025, 4, 30)


class TestMonthsSpanned:
    def test_same_month_counts_once(self):
        assert months_spanned(date(2025, 1, 1), date(2025, 1, 31)) == 1

    def test_full_year(self):
        assert months_spanned(date(2025, 1, 1), date(2025, 12, 31)) == 12

    def test_across_years(self):
        assert months_spanned(date(2024, 11, 15), date(2025, 2, 1)) == 4


def test_month_bounds_is_half_open_utc_window():
    start, end = month_bounds(12, 2025)
    assert start == datetime(2025, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 1, tzinfo=timezone.utc)


def test_ensure_utc_treats_naive_as_utc():
    naive = datetime(2025, 5, 1, 12, 0)
    assert ensure_utc(naive) == datetime(2025, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_days_between():
    assert days_between(date(2025, 1, 29), date(2025, 2, 2)) == 4
    assert days_between(date(2025, 2, 2), date(2025, 1, 29)) == -4


def test_trailing_month_starts_oldest_first():
    months = trailing_month_starts(date(2025, 3, 17), 4)
    assert months == [date(2024, 12, 1), date(2025, 1, 1), date(2025, 2, 1), date(2025, 3, 1)]
