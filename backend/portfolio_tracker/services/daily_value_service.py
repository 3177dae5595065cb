"""
Daily portfolio value snapshots and history queries.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Dict, List
from zoneinfo import ZoneInfo

from portfolio_tracker.core.config import settings
from portfolio_tracker.models.base import utcnow
from portfolio_tracker.services.exchange_rate_provider import GoogleFinanceRateProvider
from portfolio_tracker.services.portfolio_store import PortfolioStore
from portfolio_tracker.services.valuation_engine import compute_valuation
from portfolio_tracker.services.value_summary import (
    DailyValuePoint,
    TimeRange,
    ValueSummary,
    calculate_summary,
    get_date_range,
    to_points,
)

logger = logging.getLogger(__name__)


@dataclass
class DailyValueHistory:
    portfolio_id: str
    time_range: TimeRange
    start_date: date
    end_date: date
    values: List[DailyValuePoint]
    summary: ValueSummary


@dataclass
class DailyValueRunResult:
    date: date
    exchange_rate: Decimal
    recorded: int = 0
    skipped: int = 0
    failed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "date": str(self.date),
            "exchange_rate": str(self.exchange_rate),
            "recorded": self.recorded,
            "skipped": self.skipped,
            "failed": len(self.failed),
        }


class DailyValueService:
    """Records one valuation per portfolio per reference-timezone day."""

    def __init__(
        self,
        store: PortfolioStore,
        provider: GoogleFinanceRateProvider,
        timezone: str = settings.REFERENCE_TIMEZONE,
        foreign_currency: str = settings.FOREIGN_CURRENCY,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.provider = provider
        self.tz = ZoneInfo(timezone)
        self.foreign_currency = foreign_currency
        self._clock = clock

    def today(self) -> date:
        return self._clock().astimezone(self.tz).date()

    async def record_daily_values(self) -> DailyValueRunResult:
        """
        Snapshot every portfolio at the current stored prices and live rate.

        A failing rate fetch aborts the run before anything is written.
        Portfolios already recorded today are skipped.
        """
        rate = await self.provider.fetch_current_rate()
        day = self.today()
        logger.info(f"Recording daily values for {day} at rate {rate}")

        portfolios = await self.store.find_all_portfolios()
        stocks = await self.store.list_stocks()
        prices = {s.id: s.price for s in stocks}
        currencies = {s.id: s.currency for s in stocks}

        result = DailyValueRunResult(date=day, exchange_rate=rate)
        for portfolio in portfolios:
            try:
                valuation = compute_valuation(
                    portfolio.holdings, prices, currencies, rate, self.foreign_currency
                )
                written = await self.store.insert_daily_value_if_absent(
                    portfolio.id, day, valuation.total_value
                )
            except Exception as e:
                logger.error(f"Failed to record daily value for portfolio {portfolio.id}: {e}")
                result.failed.append(portfolio.id)
                continue

            if written:
                result.recorded += 1
            else:
                result.skipped += 1

        logger.info(
            f"Daily values for {day}: {result.recorded} recorded, "
            f"{result.skipped} skipped, {len(result.failed)} failed"
        )
        return result

    async def get_history(self, portfolio_id: str, time_range: TimeRange) -> DailyValueHistory:
        start, end = get_date_range(time_range, self.today())
        rows = await self.store.find_daily_values(portfolio_id, start, end)
        points = to_points(rows)
        return DailyValueHistory(
            portfolio_id=portfolio_id,
            time_range=time_range,
            start_date=start,
            end_date=end,
            values=points,
            summary=calculate_summary(points),
        )

    async def get_summary(self, portfolio_id: str, time_range: TimeRange) -> ValueSummary:
        start, end = get_date_range(time_range, self.today())
        rows = await self.store.find_daily_values(portfolio_id, start, end)
        return calculate_summary(to_points(rows))
