from decimal import Decimal
from types import SimpleNamespace

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import portfolio_tracker.models  # noqa: F401  registers tables on Base.metadata
from portfolio_tracker.core.database import Base
from portfolio_tracker.core.exceptions import NotFoundError


class FakeRedis:
    """The subset of redis.asyncio.Redis used by the caches and notifier."""

    def __init__(self):
        self.data = {}
        self.expiry = {}
        self.published = []
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("redis unavailable")

    async def get(self, key):
        self._check()
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self._check()
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, *keys):
        self._check()
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    async def publish(self, channel, message):
        self._check()
        self.published.append((channel, message))
        return 1


def make_stock(stock_id, price, currency, name=None):
    return SimpleNamespace(
        id=stock_id,
        name=name or stock_id,
        alias=None,
        price=Decimal(str(price)),
        currency=currency,
    )


def make_holding(stock_id, quantity):
    return SimpleNamespace(stock_id=stock_id, quantity=Decimal(str(quantity)))


def make_portfolio(portfolio_id, holdings, exchange_rate=None):
    return SimpleNamespace(
        id=portfolio_id,
        holdings=list(holdings),
        exchange_rate=Decimal(str(exchange_rate)) if exchange_rate is not None else None,
    )


class FakeStore:
    """In-memory stand-in for PortfolioStore used by the update pipeline."""

    def __init__(self, stocks=(), portfolios=()):
        self.stocks = {s.id: s for s in stocks}
        self.portfolios = {p.id: p for p in portfolios}
        self.valuations = {}
        self.lookups = 0
        self.lookup_errors = []
        self.failing_portfolios = set()
        self.missing_portfolios = set()
        self.requested_stock_ids = []

    def fail_lookups(self, *errors):
        """Raise these errors, in order, from the next affected-portfolio lookups."""
        self.lookup_errors.extend(errors)

    async def find_stock_by_name(self, name):
        return next((s for s in self.stocks.values() if s.name == name), None)

    async def update_stock_price(self, stock_id, price, timestamp):
        self.stocks[stock_id].price = price

    async def find_stocks_by_ids(self, stock_ids):
        stock_ids = set(stock_ids)
        self.requested_stock_ids.append(stock_ids)
        return [self.stocks[i] for i in stock_ids if i in self.stocks]

    async def find_portfolios_containing_stock(self, stock_id):
        self.lookups += 1
        if self.lookup_errors:
            raise self.lookup_errors.pop(0)
        return [
            p for p in self.portfolios.values()
            if any(h.stock_id == stock_id for h in p.holdings)
        ]

    async def find_portfolio_ids_containing_stock(self, stock_id):
        return [p.id for p in await self.find_portfolios_containing_stock(stock_id)]

    async def find_portfolios_with_foreign_holdings(self, currency):
        return [
            p for p in self.portfolios.values()
            if p.exchange_rate is not None
            and any(self.stocks[h.stock_id].currency == currency for h in p.holdings)
        ]

    async def update_portfolio_valuation(self, portfolio_id, total_value, percentages, last_updated):
        if portfolio_id in self.missing_portfolios:
            raise NotFoundError.for_resource("Portfolio", portfolio_id)
        if portfolio_id in self.failing_portfolios:
            raise OSError(f"write failed for {portfolio_id}")
        self.valuations[portfolio_id] = (total_value, dict(percentages), last_updated)

    async def bulk_set_exchange_rate(self, rate, timestamp):
        modified = 0
        for portfolio in self.portfolios.values():
            if portfolio.exchange_rate is not None:
                portfolio.exchange_rate = rate
                modified += 1
        return modified

    async def get_current_exchange_rate(self):
        rates = [p.exchange_rate for p in self.portfolios.values() if p.exchange_rate is not None]
        return (rates[0], None) if rates else None


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()
