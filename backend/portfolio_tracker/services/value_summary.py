"""
Historical daily value summaries.

Date-window helpers for the history endpoints and the summary statistics
computed over a window of daily valuations.
"""
import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Sequence, Tuple

from portfolio_tracker.core.exceptions import NoDataError, ValidationError
from portfolio_tracker.services.valuation_engine import round_half_away

ZERO = Decimal("0")


class TimeRange(str, Enum):
    ONE_MONTH = "1mo"
    THREE_MONTHS = "3mo"
    SIX_MONTHS = "6mo"
    ONE_YEAR = "1yr"

    @property
    def months(self) -> int:
        return {"1mo": 1, "3mo": 3, "6mo": 6, "1yr": 12}[self.value]

    @classmethod
    def parse(cls, value: str) -> "TimeRange":
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(r.value for r in cls)
            raise ValidationError(f"Invalid time range '{value}'. Use one of: {allowed}")


@dataclass(frozen=True)
class DailyValuePoint:
    date: date
    total_value: Decimal


@dataclass(frozen=True)
class ValueSummary:
    start_value: Decimal
    end_value: Decimal
    highest_value: Decimal
    highest_date: date
    lowest_value: Decimal
    lowest_date: date
    change_percentage: Decimal


def subtract_months(day: date, months: int) -> date:
    """Step back whole months, clamping to the last day of the target month."""
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def get_date_range(time_range: TimeRange, today: date) -> Tuple[date, date]:
    """
    Half-open window [start, end) ending tomorrow so today's row is included.
    """
    end = today + timedelta(days=1)
    start = subtract_months(end, time_range.months)
    return start, end


def calculate_summary(values: Sequence[DailyValuePoint]) -> ValueSummary:
    """Summarize values ordered by date ascending."""
    if not values:
        raise NoDataError("No data found for the specified time range")

    first = values[0]
    last = values[-1]

    # max()/min() return the first occurrence on ties
    highest = max(values, key=lambda p: p.total_value)
    lowest = min(values, key=lambda p: p.total_value)

    if first.total_value == ZERO:
        change = ZERO
    else:
        change = round_half_away(
            (last.total_value - first.total_value) / first.total_value * Decimal("100"), 2
        )

    return ValueSummary(
        start_value=first.total_value,
        end_value=last.total_value,
        highest_value=highest.total_value,
        highest_date=highest.date,
        lowest_value=lowest.total_value,
        lowest_date=lowest.date,
        change_percentage=change,
    )


def to_points(rows: Sequence) -> List[DailyValuePoint]:
    return [DailyValuePoint(date=row.date, total_value=Decimal(str(row.total_value))) for row in rows]
