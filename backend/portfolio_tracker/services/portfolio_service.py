"""
Portfolio and stock read/maintenance operations for the API.

Reads go through the Redis cache; every holding edit invalidates the
portfolio's cache entry. Percentages are not recomputed on edits, the next
price or rate update refreshes them.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from portfolio_tracker.core.exceptions import NotFoundError
from portfolio_tracker.models.portfolio import Portfolio
from portfolio_tracker.models.stock import Stock
from portfolio_tracker.services.portfolio_cache import (
    CachedPortfolio,
    CachedStock,
    PortfolioCache,
    StockListCache,
)
from portfolio_tracker.services.portfolio_store import PortfolioStore

logger = logging.getLogger(__name__)


@dataclass
class EnrichedHolding:
    stock_id: str
    quantity: Decimal
    percentage_of_total: Decimal
    stock: Optional[Stock]


@dataclass
class EnrichedPortfolio:
    portfolio: Portfolio
    holdings: List[EnrichedHolding]


class PortfolioService:
    def __init__(
        self,
        store: PortfolioStore,
        cache: PortfolioCache,
        stock_list_cache: StockListCache,
    ):
        self.store = store
        self.cache = cache
        self.stock_list_cache = stock_list_cache

    async def get_portfolio(self, portfolio_id: str) -> CachedPortfolio:
        cached = await self.cache.get(portfolio_id)
        if cached is not None:
            return cached

        portfolio = await self.store.get_portfolio(portfolio_id)
        if portfolio is None:
            raise NotFoundError.for_resource("Portfolio", portfolio_id)

        value = CachedPortfolio.model_validate(portfolio)
        await self.cache.set(portfolio_id, value)
        return value

    async def get_portfolio_by_username(self, username: str) -> EnrichedPortfolio:
        portfolio = await self.store.get_portfolio_by_username(username)
        if portfolio is None:
            raise NotFoundError(f"Portfolio for user {username} not found")

        stocks = await self.store.find_stocks_by_ids(h.stock_id for h in portfolio.holdings)
        by_id = {s.id: s for s in stocks}
        holdings = [
            EnrichedHolding(
                stock_id=h.stock_id,
                quantity=h.quantity,
                percentage_of_total=h.percentage_of_total,
                stock=by_id.get(h.stock_id),
            )
            for h in portfolio.holdings
        ]
        return EnrichedPortfolio(portfolio=portfolio, holdings=holdings)

    async def create_portfolio(
        self, user_id: Optional[str] = None, exchange_rate: Optional[Decimal] = None
    ) -> Portfolio:
        return await self.store.create_portfolio(user_id=user_id, exchange_rate=exchange_rate)

    async def add_holding(self, portfolio_id: str, stock_id: str, quantity: Decimal) -> Portfolio:
        portfolio = await self.store.add_holding(portfolio_id, stock_id, quantity)
        await self.cache.invalidate(portfolio_id)
        logger.info(f"Added {quantity} of {stock_id} to portfolio {portfolio_id}")
        return portfolio

    async def update_holding(self, portfolio_id: str, stock_id: str, quantity: Decimal) -> Portfolio:
        portfolio = await self.store.update_holding_quantity(portfolio_id, stock_id, quantity)
        await self.cache.invalidate(portfolio_id)
        return portfolio

    async def remove_holding(self, portfolio_id: str, stock_id: str) -> Portfolio:
        portfolio = await self.store.remove_holding(portfolio_id, stock_id)
        await self.cache.invalidate(portfolio_id)
        logger.info(f"Removed {stock_id} from portfolio {portfolio_id}")
        return portfolio

    # Stocks

    async def list_stocks(self) -> List[CachedStock]:
        cached = await self.stock_list_cache.get_list()
        if cached is not None:
            return cached.stocks

        stocks = await self.store.list_stocks()
        await self.stock_list_cache.set_list(stocks)
        return [CachedStock.model_validate(s) for s in stocks]

    async def get_stock(self, stock_id: str) -> Stock:
        stock = await self.store.find_stock(stock_id)
        if stock is None:
            raise NotFoundError.for_resource("Stock", stock_id)
        return stock

    async def create_stock(
        self,
        name: str,
        currency: str,
        price: Optional[Decimal] = None,
        alias: Optional[str] = None,
    ) -> Stock:
        stock = await self.store.create_stock(name=name, currency=currency, price=price, alias=alias)
        await self.stock_list_cache.clear()
        return stock
