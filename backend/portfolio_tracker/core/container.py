"""
Application wiring.

Builds every long-lived component once and registers the event handlers.
The API builds a container at startup; Celery tasks build one per run.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from redis.asyncio import Redis as AsyncRedis
from sqlalchemy.ext.asyncio import async_sessionmaker

from portfolio_tracker.core.config import settings
from portfolio_tracker.core.database import AsyncSessionLocal
from portfolio_tracker.core.redis import get_async_redis
from portfolio_tracker.events.bus import EventBus
from portfolio_tracker.events.types import (
    ExchangeRateChanged,
    PortfolioValuationUpdated,
    StockPriceChanged,
)
from portfolio_tracker.services.daily_value_service import DailyValueService
from portfolio_tracker.services.exchange_rate_provider import GoogleFinanceRateProvider
from portfolio_tracker.services.notifier import PortfolioUpdateNotifier
from portfolio_tracker.services.portfolio_cache import (
    ExchangeRateCache,
    PortfolioCache,
    StockListCache,
)
from portfolio_tracker.services.portfolio_service import PortfolioService
from portfolio_tracker.services.portfolio_store import PortfolioStore
from portfolio_tracker.services.portfolio_update_service import PortfolioUpdateService
from portfolio_tracker.services.position_event_service import PositionEventService
from portfolio_tracker.services.user_service import UserService

logger = logging.getLogger(__name__)


@dataclass
class Container:
    event_bus: EventBus
    store: PortfolioStore
    portfolio_cache: PortfolioCache
    exchange_rate_cache: ExchangeRateCache
    stock_list_cache: StockListCache
    rate_provider: GoogleFinanceRateProvider
    update_service: PortfolioUpdateService
    portfolio_service: PortfolioService
    daily_value_service: DailyValueService
    user_service: UserService
    position_event_service: PositionEventService
    notifier: PortfolioUpdateNotifier


async def build_container(
    redis: Optional[AsyncRedis] = None,
    session_factory: async_sessionmaker = AsyncSessionLocal,
    rate_provider: Optional[GoogleFinanceRateProvider] = None,
) -> Container:
    if redis is None:
        redis = await get_async_redis()

    ttl = timedelta(minutes=settings.CACHE_EXPIRATION_MINUTES)
    event_bus = EventBus()
    store = PortfolioStore(session_factory=session_factory)
    portfolio_cache = PortfolioCache(redis, ttl=ttl)
    exchange_rate_cache = ExchangeRateCache(redis, currency=settings.FOREIGN_CURRENCY, ttl=ttl)
    stock_list_cache = StockListCache(redis, ttl=ttl)
    rate_provider = rate_provider or GoogleFinanceRateProvider()

    update_service = PortfolioUpdateService(
        store=store,
        cache=portfolio_cache,
        event_bus=event_bus,
        max_retry_attempts=settings.MAX_RETRY_ATTEMPTS,
        batch_size=settings.BATCH_SIZE,
        lock_timeout=settings.RATE_UPDATE_LOCK_TIMEOUT_SECONDS,
        foreign_currency=settings.FOREIGN_CURRENCY,
    )
    notifier = PortfolioUpdateNotifier(redis)

    event_bus.subscribe(StockPriceChanged, update_service.handle_stock_price_updated)
    event_bus.subscribe(ExchangeRateChanged, exchange_rate_cache.on_exchange_rate_changed)
    event_bus.subscribe(PortfolioValuationUpdated, notifier.on_valuation_updated)

    container = Container(
        event_bus=event_bus,
        store=store,
        portfolio_cache=portfolio_cache,
        exchange_rate_cache=exchange_rate_cache,
        stock_list_cache=stock_list_cache,
        rate_provider=rate_provider,
        update_service=update_service,
        portfolio_service=PortfolioService(store, portfolio_cache, stock_list_cache),
        daily_value_service=DailyValueService(store, rate_provider),
        user_service=UserService(session_factory=session_factory),
        position_event_service=PositionEventService(session_factory=session_factory),
        notifier=notifier,
    )
    logger.info("Application container built")
    return container
