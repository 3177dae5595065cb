"""
Persistence for stocks, portfolios and daily values.

Every method opens its own session from the factory (committing on success)
unless the store was constructed around an existing session, in which case
the caller owns the transaction.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portfolio_tracker.core.database import AsyncSessionLocal
from portfolio_tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from portfolio_tracker.models.base import new_id, utcnow
from portfolio_tracker.models.portfolio import Holding, Portfolio
from portfolio_tracker.models.portfolio_daily_value import PortfolioDailyValue
from portfolio_tracker.models.stock import Stock
from portfolio_tracker.models.user import User
from portfolio_tracker.services.valuation_engine import positive_price

logger = logging.getLogger(__name__)


def current_exchange_rate_query():
    """Most recently set rate across portfolios, with its timestamp."""
    return (
        select(Portfolio.exchange_rate, Portfolio.exchange_rate_updated)
        .where(Portfolio.exchange_rate.is_not(None))
        .order_by(Portfolio.exchange_rate_updated.desc())
        .limit(1)
    )


class PortfolioStore:
    """Stock, portfolio and daily value queries and writes."""

    def __init__(
        self,
        session: Optional[AsyncSession] = None,
        session_factory: async_sessionmaker = AsyncSessionLocal,
    ):
        self.session = session
        self.session_factory = session_factory

    # Stocks

    async def find_stocks_by_ids(self, stock_ids: Iterable[str]) -> List[Stock]:
        ids = list(set(stock_ids))
        if not ids:
            return []
        async with self._get_session() as session:
            result = await session.execute(select(Stock).where(Stock.id.in_(ids)))
            return list(result.scalars().all())

    async def find_stock(self, stock_id: str) -> Optional[Stock]:
        async with self._get_session() as session:
            return await session.get(Stock, stock_id)

    async def find_stock_by_name(self, name: str) -> Optional[Stock]:
        async with self._get_session() as session:
            result = await session.execute(select(Stock).where(Stock.name == name))
            return result.scalar_one_or_none()

    async def list_stocks(self) -> List[Stock]:
        async with self._get_session() as session:
            result = await session.execute(select(Stock).order_by(Stock.name.asc()))
            return list(result.scalars().all())

    async def create_stock(
        self,
        name: str,
        currency: str,
        price: Optional[Decimal] = None,
        alias: Optional[str] = None,
    ) -> Stock:
        """A stock created without a price stays at 0 until its first price update."""
        price = Decimal("0") if price is None else positive_price(price)

        try:
            async with self._get_session() as session:
                clash = select(Stock.id).where(Stock.name == name)
                if alias:
                    clash = select(Stock.id).where((Stock.name == name) | (Stock.alias == alias))
                if (await session.execute(clash)).first() is not None:
                    raise ConflictError(f"Stock {name} already exists")

                stock = Stock(
                    name=name,
                    alias=alias,
                    price=price,
                    currency=currency.upper(),
                    last_updated=utcnow(),
                )
                session.add(stock)
                await session.flush()
                logger.info(f"Created stock {name} ({stock.currency})")
                return stock
        except IntegrityError:
            raise ConflictError(f"Stock {name} already exists")

    async def update_stock_price(self, stock_id: str, price: Decimal, timestamp: datetime) -> None:
        async with self._get_session() as session:
            result = await session.execute(
                update(Stock)
                .where(Stock.id == stock_id)
                .values(price=price, last_updated=timestamp)
            )
            if result.rowcount == 0:
                raise NotFoundError.for_resource("Stock", stock_id)

    # Portfolios

    async def find_portfolios_containing_stock(self, stock_id: str) -> List[Portfolio]:
        async with self._get_session() as session:
            stmt = (
                select(Portfolio)
                .join(Holding, Holding.portfolio_id == Portfolio.id)
                .where(Holding.stock_id == stock_id)
                .order_by(Portfolio.id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().unique().all())

    async def find_portfolio_ids_containing_stock(self, stock_id: str) -> List[str]:
        async with self._get_session() as session:
            result = await session.execute(
                select(Holding.portfolio_id)
                .where(Holding.stock_id == stock_id)
                .order_by(Holding.portfolio_id)
            )
            return list(result.scalars().all())

    async def find_portfolios_with_foreign_holdings(self, currency: str) -> List[Portfolio]:
        """Portfolios that carry an exchange rate and hold at least one `currency` stock."""
        async with self._get_session() as session:
            foreign_holders = (
                select(Holding.portfolio_id)
                .join(Stock, Stock.id == Holding.stock_id)
                .where(Stock.currency == currency)
            )
            stmt = (
                select(Portfolio)
                .where(Portfolio.exchange_rate.is_not(None))
                .where(Portfolio.id.in_(foreign_holders))
                .order_by(Portfolio.id)
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def find_all_portfolios(self) -> List[Portfolio]:
        async with self._get_session() as session:
            result = await session.execute(select(Portfolio).order_by(Portfolio.id))
            return list(result.scalars().all())

    async def get_portfolio(self, portfolio_id: str) -> Optional[Portfolio]:
        async with self._get_session() as session:
            return await session.get(Portfolio, portfolio_id)

    async def get_portfolio_by_username(self, username: str) -> Optional[Portfolio]:
        async with self._get_session() as session:
            stmt = (
                select(Portfolio)
                .join(User, User.portfolio_id == Portfolio.id)
                .where(User.username == username)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def create_portfolio(
        self,
        user_id: Optional[str] = None,
        exchange_rate: Optional[Decimal] = None,
    ) -> Portfolio:
        """
        Insert an empty portfolio.

        Without an explicit rate the portfolio inherits the current one, so
        later rate updates reach it.
        """
        if exchange_rate is not None and exchange_rate <= 0:
            raise ValidationError("Exchange rate must be greater than zero")

        async with self._get_session() as session:
            if user_id is not None and await session.get(User, user_id) is None:
                raise NotFoundError.for_resource("User", user_id)

            rate_updated = utcnow() if exchange_rate is not None else None
            if exchange_rate is None:
                current = (await session.execute(current_exchange_rate_query())).first()
                if current is not None:
                    exchange_rate, rate_updated = current

            portfolio = Portfolio(
                id=new_id(),
                user_id=user_id,
                holdings=[],
                total_value=Decimal("0"),
                exchange_rate=exchange_rate,
                exchange_rate_updated=rate_updated,
                last_updated=utcnow(),
            )
            session.add(portfolio)
            await session.flush()

        logger.info(f"Created portfolio {portfolio.id} with exchange rate {exchange_rate}")
        return portfolio

    async def update_portfolio_valuation(
        self,
        portfolio_id: str,
        total_value: Decimal,
        percentages: Mapping[str, Decimal],
        last_updated: datetime,
    ) -> None:
        """Write the total, every holding percentage and the timestamp together."""
        async with self._get_session() as session:
            result = await session.execute(
                update(Portfolio)
                .where(Portfolio.id == portfolio_id)
                .values(total_value=total_value, last_updated=last_updated)
            )
            if result.rowcount == 0:
                raise NotFoundError.for_resource("Portfolio", portfolio_id)

            for stock_id, percentage in percentages.items():
                await session.execute(
                    update(Holding)
                    .where(Holding.portfolio_id == portfolio_id, Holding.stock_id == stock_id)
                    .values(percentage_of_total=percentage)
                )

    async def bulk_set_exchange_rate(self, rate: Decimal, timestamp: datetime) -> int:
        """Set the rate on every portfolio that already has one. Returns modified count."""
        async with self._get_session() as session:
            result = await session.execute(
                update(Portfolio)
                .where(Portfolio.exchange_rate.is_not(None))
                .values(exchange_rate=rate, exchange_rate_updated=timestamp)
            )
            return result.rowcount

    async def get_current_exchange_rate(self) -> Optional[Tuple[Decimal, Optional[datetime]]]:
        async with self._get_session() as session:
            row = (await session.execute(current_exchange_rate_query())).first()
            if row is None:
                return None
            return row[0], row[1]

    # Holdings

    async def add_holding(self, portfolio_id: str, stock_id: str, quantity: Decimal) -> Portfolio:
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")

        async with self._get_session() as session:
            portfolio = await session.get(Portfolio, portfolio_id)
            if portfolio is None:
                raise NotFoundError.for_resource("Portfolio", portfolio_id)
            if await session.get(Stock, stock_id) is None:
                raise NotFoundError.for_resource("Stock", stock_id)
            if any(h.stock_id == stock_id for h in portfolio.holdings):
                raise ConflictError(f"Portfolio {portfolio_id} already holds stock {stock_id}")

            next_position = max((h.position for h in portfolio.holdings), default=-1) + 1
            portfolio.holdings.append(
                Holding(
                    stock_id=stock_id,
                    quantity=quantity,
                    percentage_of_total=Decimal("0"),
                    position=next_position,
                )
            )
            portfolio.last_updated = utcnow()
            await session.flush()
            return portfolio

    async def update_holding_quantity(
        self, portfolio_id: str, stock_id: str, quantity: Decimal
    ) -> Portfolio:
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")

        async with self._get_session() as session:
            portfolio = await session.get(Portfolio, portfolio_id)
            if portfolio is None:
                raise NotFoundError.for_resource("Portfolio", portfolio_id)
            holding = next((h for h in portfolio.holdings if h.stock_id == stock_id), None)
            if holding is None:
                raise NotFoundError(f"Holding for stock {stock_id} not found in portfolio {portfolio_id}")

            holding.quantity = quantity
            portfolio.last_updated = utcnow()
            await session.flush()
            return portfolio

    async def remove_holding(self, portfolio_id: str, stock_id: str) -> Portfolio:
        async with self._get_session() as session:
            portfolio = await session.get(Portfolio, portfolio_id)
            if portfolio is None:
                raise NotFoundError.for_resource("Portfolio", portfolio_id)
            holding = next((h for h in portfolio.holdings if h.stock_id == stock_id), None)
            if holding is None:
                raise NotFoundError(f"Holding for stock {stock_id} not found in portfolio {portfolio_id}")

            portfolio.holdings.remove(holding)
            portfolio.last_updated = utcnow()
            await session.flush()
            return portfolio

    # Daily values

    async def insert_daily_value_if_absent(
        self, portfolio_id: str, day: date, total_value: Decimal
    ) -> bool:
        """
        Record a snapshot unless one already exists for (portfolio, day).

        Returns True when a row was written.
        """
        try:
            async with self._get_session() as session:
                existing = await session.execute(
                    select(PortfolioDailyValue.id).where(
                        PortfolioDailyValue.portfolio_id == portfolio_id,
                        PortfolioDailyValue.date == day,
                    )
                )
                if existing.first() is not None:
                    return False

                session.add(
                    PortfolioDailyValue(
                        portfolio_id=portfolio_id,
                        date=day,
                        total_value=total_value,
                        created_at=utcnow(),
                    )
                )
                await session.flush()
        except IntegrityError:
            # Lost a race with a concurrent run for the same day
            logger.info(f"Daily value for portfolio {portfolio_id} on {day} already recorded")
            return False
        return True

    async def find_daily_values(
        self, portfolio_id: str, start: date, end: date
    ) -> List[PortfolioDailyValue]:
        """Rows with start <= date < end, oldest first."""
        async with self._get_session() as session:
            stmt = (
                select(PortfolioDailyValue)
                .where(
                    PortfolioDailyValue.portfolio_id == portfolio_id,
                    PortfolioDailyValue.date >= start,
                    PortfolioDailyValue.date < end,
                )
                .order_by(PortfolioDailyValue.date.asc())
            )
            result = await session.execute(stmt)
            return list(result.scalars().all())

    @asynccontextmanager
    async def _get_session(self):
        if self.session is not None:
            yield self.session
        else:
            async with self.session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
