from datetime import date
from decimal import Decimal

import pytest

from portfolio_tracker.core.exceptions import NoDataError, NotFoundError, ValidationError
from portfolio_tracker.services.value_summary import (
    DailyValuePoint,
    TimeRange,
    calculate_summary,
    get_date_range,
    subtract_months,
)


def points(*values):
    return [
        DailyValuePoint(date=date(2026, 1, day), total_value=Decimal(str(value)))
        for day, value in enumerate(values, start=1)
    ]


def test_summary_over_window():
    summary = calculate_summary(points(100, 120, 90, 110))

    assert summary.start_value == Decimal("100")
    assert summary.end_value == Decimal("110")
    assert summary.highest_value == Decimal("120")
    assert summary.highest_date == date(2026, 1, 2)
    assert summary.lowest_value == Decimal("90")
    assert summary.lowest_date == date(2026, 1, 3)
    assert summary.change_percentage == Decimal("10.00")


def test_ties_pick_first_occurrence():
    summary = calculate_summary(points(50, 80, 50, 80))

    assert summary.highest_date == date(2026, 1, 2)
    assert summary.lowest_date == date(2026, 1, 1)


def test_change_is_rounded_to_two_places():
    summary = calculate_summary(points(3, 4))

    assert summary.change_percentage == Decimal("33.33")


def test_zero_start_value_gives_zero_change():
    summary = calculate_summary(points(0, 500))

    assert summary.change_percentage == Decimal("0")


def test_empty_window_is_no_data():
    with pytest.raises(NoDataError) as exc_info:
        calculate_summary([])

    assert isinstance(exc_info.value, NotFoundError)
    assert exc_info.value.status_code == 404


def test_one_month_window_ends_tomorrow():
    start, end = get_date_range(TimeRange.ONE_MONTH, date(2026, 6, 15))

    assert end == date(2026, 6, 16)
    assert start == date(2026, 5, 16)


def test_window_start_is_clamped_to_month_end():
    start, end = get_date_range(TimeRange.ONE_MONTH, date(2026, 3, 30))

    assert end == date(2026, 3, 31)
    assert start == date(2026, 2, 28)


def test_one_year_window_across_leap_day():
    start, end = get_date_range(TimeRange.ONE_YEAR, date(2024, 2, 28))

    assert end == date(2024, 2, 29)
    assert start == date(2023, 2, 28)


def test_subtract_months_crosses_year_boundary():
    assert subtract_months(date(2026, 2, 10), 3) == date(2025, 11, 10)
    assert subtract_months(date(2026, 8, 31), 6) == date(2026, 2, 28)


def test_parse_time_range():
    assert TimeRange.parse("6mo") is TimeRange.SIX_MONTHS
    assert TimeRange.parse("1yr").months == 12

    with pytest.raises(ValidationError):
        TimeRange.parse("2wk")
