"""
Portfolio update pipeline.

Reacts to stock price and exchange rate changes by recomputing the affected
portfolios, persisting the new valuations and invalidating their cache
entries. Transient failures are retried with exponential backoff; bad input
and missing data fail on the first attempt.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from portfolio_tracker.core.exceptions import (
    NON_RETRYABLE_ERRORS,
    ConcurrentUpdateError,
    NotFoundError,
    ValidationError,
)
from portfolio_tracker.events.bus import EventBus
from portfolio_tracker.events.types import (
    ExchangeRateChanged,
    PortfolioValuationUpdated,
    StockPriceChanged,
)
from portfolio_tracker.models.base import utcnow
from portfolio_tracker.services.portfolio_cache import PortfolioCache
from portfolio_tracker.services.portfolio_store import PortfolioStore
from portfolio_tracker.services.valuation_engine import compute_valuation, positive_price, to_decimal

logger = logging.getLogger(__name__)


@dataclass
class ExchangeRateUpdateResult:
    rate: Decimal
    old_rate: Optional[Decimal]
    timestamp: datetime
    modified_count: int
    recomputed_count: int
    failed_portfolio_ids: List[str] = field(default_factory=list)


@dataclass
class StockPriceUpdateResult:
    stock_id: str
    name: str
    old_price: Decimal
    new_price: Decimal
    currency: str
    timestamp: datetime
    recalculation_failed: bool = False


class PortfolioUpdateService:
    """
    Recalculates portfolio valuations when prices or the exchange rate move.

    Flow per notification:
        resolve affected portfolios -> fetch price map -> compute
        -> persist -> invalidate cache -> publish PortfolioValuationUpdated
    """

    def __init__(
        self,
        store: PortfolioStore,
        cache: PortfolioCache,
        event_bus: EventBus,
        max_retry_attempts: int = 3,
        batch_size: int = 100,
        lock_timeout: float = 5.0,
        foreign_currency: str = "USD",
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.cache = cache
        self.event_bus = event_bus
        self.max_retry_attempts = max_retry_attempts
        self.batch_size = batch_size
        self.lock_timeout = lock_timeout
        self.foreign_currency = foreign_currency
        self._sleep = sleep
        # Guards the bulk exchange rate update
        self._rate_lock = asyncio.Lock()

    # Event handlers

    async def handle_stock_price_updated(
        self,
        event: StockPriceChanged,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[str]:
        """Recalculate every portfolio holding the stock. Returns updated portfolio ids."""
        return await self._with_retry(
            f"Stock price update for {event.stock_id}",
            lambda: self._recalculate_for_stock(event),
            cancel_event,
        )

    async def handle_exchange_rate_updated(
        self,
        event: ExchangeRateChanged,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExchangeRateUpdateResult:
        """Apply a new rate to all rated portfolios and recalculate the foreign holders."""
        return await self._with_retry(
            f"Exchange rate update to {event.new_rate}",
            lambda: self._apply_exchange_rate(event),
            cancel_event,
        )

    # Commands

    async def set_exchange_rate(
        self,
        rate: Any,
        updated_by: str = "System",
        source: str = "Manual",
    ) -> ExchangeRateUpdateResult:
        rate = to_decimal(rate)
        if rate <= 0:
            raise ValidationError("Exchange rate must be greater than zero")

        try:
            await asyncio.wait_for(self._rate_lock.acquire(), timeout=self.lock_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Exchange rate update to {rate} rejected, another update holds the lock")
            raise ConcurrentUpdateError()

        try:
            current = await self.store.get_current_exchange_rate()
            event = ExchangeRateChanged(
                old_rate=current[0] if current else None,
                new_rate=rate,
                timestamp=utcnow(),
                updated_by=updated_by,
                source=source,
            )

            result = await self.handle_exchange_rate_updated(event)
            if result.modified_count == 0:
                raise NotFoundError("No portfolios with exchange rates found")

            await self.event_bus.publish(event)
            logger.info(
                f"Exchange rate {event.old_rate} -> {rate} by {updated_by} ({source}): "
                f"{result.modified_count} portfolios updated, "
                f"{result.recomputed_count} recalculated, {len(result.failed_portfolio_ids)} failed"
            )
            return result
        finally:
            self._rate_lock.release()

    async def update_stock_price(self, name: str, new_price: Any) -> StockPriceUpdateResult:
        new_price = positive_price(new_price)

        stock = await self.store.find_stock_by_name(name)
        if stock is None:
            raise NotFoundError(f"Stock {name} not found")

        old_price = stock.price
        timestamp = utcnow()
        await self.store.update_stock_price(stock.id, new_price, timestamp)

        event = StockPriceChanged(
            stock_id=stock.id,
            old_price=old_price,
            new_price=new_price,
            timestamp=timestamp,
        )
        failures = await self.event_bus.publish(event)
        if failures:
            logger.error(f"Price of {name} saved but portfolio recalculation failed: {failures[0]!r}")

        return StockPriceUpdateResult(
            stock_id=stock.id,
            name=stock.name,
            old_price=old_price,
            new_price=new_price,
            currency=stock.currency,
            timestamp=timestamp,
            recalculation_failed=bool(failures),
        )

    async def get_affected_portfolios(self, stock_id: str) -> List[str]:
        return await self.store.find_portfolio_ids_containing_stock(stock_id)

    # Internals

    async def _recalculate_for_stock(self, event: StockPriceChanged) -> List[str]:
        portfolios = await self.store.find_portfolios_containing_stock(event.stock_id)
        if not portfolios:
            logger.info(f"No portfolios hold stock {event.stock_id}, nothing to recalculate")
            return []

        stock_ids = {h.stock_id for p in portfolios for h in p.holdings}
        prices, currencies = await self._price_map(stock_ids)

        updated = []
        for portfolio in portfolios:
            try:
                valuation_event = await self._persist_valuation(
                    portfolio, prices, currencies, portfolio.exchange_rate, event.timestamp
                )
            except NotFoundError:
                # Deleted after the affected-portfolio lookup
                logger.warning(f"Portfolio {portfolio.id} disappeared before its valuation was saved")
                continue
            await self._notify(valuation_event)
            updated.append(portfolio.id)

        logger.info(
            f"Recalculated {len(updated)} portfolios after stock {event.stock_id} "
            f"moved {event.old_price} -> {event.new_price}"
        )
        return updated

    async def _apply_exchange_rate(self, event: ExchangeRateChanged) -> ExchangeRateUpdateResult:
        modified = await self.store.bulk_set_exchange_rate(event.new_rate, event.timestamp)

        portfolios = await self.store.find_portfolios_with_foreign_holdings(self.foreign_currency)
        prices, currencies = await self._price_map({h.stock_id for p in portfolios for h in p.holdings})

        valuation_events: List[PortfolioValuationUpdated] = []
        failed: List[str] = []
        for portfolio in portfolios:
            try:
                valuation_events.append(
                    await self._persist_valuation(
                        portfolio, prices, currencies, event.new_rate, event.timestamp
                    )
                )
            except Exception as e:
                logger.error(f"Failed to recalculate portfolio {portfolio.id} for new rate: {e}")
                failed.append(portfolio.id)

        for start in range(0, len(valuation_events), self.batch_size):
            chunk = valuation_events[start:start + self.batch_size]
            await asyncio.gather(*(self._notify(e) for e in chunk))

        return ExchangeRateUpdateResult(
            rate=event.new_rate,
            old_rate=event.old_rate,
            timestamp=event.timestamp,
            modified_count=modified,
            recomputed_count=len(valuation_events),
            failed_portfolio_ids=failed,
        )

    async def _price_map(self, stock_ids: Set[str]) -> Tuple[Dict[str, Decimal], Dict[str, str]]:
        if not stock_ids:
            return {}, {}
        stocks = await self.store.find_stocks_by_ids(stock_ids)
        prices = {s.id: s.price for s in stocks}
        currencies = {s.id: s.currency for s in stocks}
        return prices, currencies

    async def _persist_valuation(
        self,
        portfolio,
        prices: Dict[str, Decimal],
        currencies: Dict[str, str],
        fx_rate: Optional[Decimal],
        timestamp: datetime,
    ) -> PortfolioValuationUpdated:
        valuation = compute_valuation(
            portfolio.holdings, prices, currencies, fx_rate, self.foreign_currency
        )
        await self.store.update_portfolio_valuation(
            portfolio.id, valuation.total_value, valuation.percentages, timestamp
        )
        return PortfolioValuationUpdated(
            portfolio_id=portfolio.id,
            total_value=valuation.total_value,
            exchange_rate=fx_rate,
            timestamp=timestamp,
        )

    async def _notify(self, event: PortfolioValuationUpdated) -> None:
        # Only after a successful persist
        await self.cache.invalidate(event.portfolio_id)
        await self.event_bus.publish(event)

    async def _with_retry(
        self,
        operation: str,
        func: Callable[[], Awaitable[Any]],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Any:
        for attempt in range(self.max_retry_attempts):
            try:
                return await func()
            except NON_RETRYABLE_ERRORS:
                raise
            except Exception as e:
                if attempt + 1 >= self.max_retry_attempts:
                    logger.error(f"{operation} failed after {self.max_retry_attempts} attempts: {e}")
                    raise
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning(f"{operation} cancelled after attempt {attempt + 1}: {e}")
                    raise

                delay = 2 ** attempt
                logger.warning(
                    f"{operation} attempt {attempt + 1}/{self.max_retry_attempts} failed: {e}. "
                    f"Retrying in {delay}s"
                )
                await self._sleep(delay)
