"""
Redis-backed caches.

Values are stored as pydantic JSON with an absolute TTL. The cache is best
effort: Redis or payload errors are logged and reported as a miss (reads)
or ignored (writes). A miss never triggers a recomputation here.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from portfolio_tracker.core.redis import CacheKeys
from portfolio_tracker.events.types import ExchangeRateChanged

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

DEFAULT_TTL = timedelta(minutes=5)


# Cached payloads

class CachedHolding(BaseModel):
    stock_id: str
    quantity: Decimal
    percentage_of_total: Decimal

    class Config:
        from_attributes = True


class CachedPortfolio(BaseModel):
    id: str
    user_id: Optional[str] = None
    holdings: List[CachedHolding] = []
    total_value: Decimal
    exchange_rate: Optional[Decimal] = None
    exchange_rate_updated: Optional[datetime] = None
    last_updated: datetime

    class Config:
        from_attributes = True


class CachedExchangeRate(BaseModel):
    rate: Decimal
    updated_at: datetime
    updated_by: str = "System"
    source: str = "Manual"


class CachedStock(BaseModel):
    id: str
    name: str
    alias: Optional[str] = None

    class Config:
        from_attributes = True


class CachedStockList(BaseModel):
    stocks: List[CachedStock]


class RedisJsonCache(Generic[T]):
    """Key/value cache of one pydantic model type under a key prefix."""

    model: Type[T]

    def __init__(self, redis: AsyncRedis, prefix: str, ttl: timedelta = DEFAULT_TTL):
        self.redis = redis
        self.prefix = prefix
        self.ttl = ttl

    def key(self, identifier: str) -> str:
        return f"{self.prefix}:{identifier}"

    async def get(self, identifier: str) -> Optional[T]:
        key = self.key(identifier)
        try:
            raw = await self.redis.get(key)
        except RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

        if raw is None:
            return None

        try:
            return self.model.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e}")
            return None

    async def set(
        self,
        identifier: str,
        value: Any,
        ttl: Optional[Union[timedelta, int]] = None,
    ) -> None:
        key = self.key(identifier)
        expiry = ttl if ttl is not None else self.ttl
        try:
            if not isinstance(value, self.model):
                value = self.model.model_validate(value)
            payload = value.model_dump_json()
        except (PydanticValidationError, TypeError, ValueError) as e:
            logger.warning(f"Not caching {key}, value is not serializable: {e}")
            return

        try:
            await self.redis.set(key, payload, ex=expiry)
        except RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    async def invalidate(self, identifier: str) -> None:
        key = self.key(identifier)
        try:
            await self.redis.delete(key)
        except RedisError as e:
            logger.warning(f"Cache invalidation failed for {key}: {e}")


class PortfolioCache(RedisJsonCache[CachedPortfolio]):
    """Valuations keyed by portfolio id (`portfolio:{id}`)."""

    model = CachedPortfolio

    def __init__(self, redis: AsyncRedis, ttl: timedelta = DEFAULT_TTL):
        super().__init__(redis, CacheKeys.PORTFOLIO, ttl)


class ExchangeRateCache(RedisJsonCache[CachedExchangeRate]):
    """Current foreign currency rate (`exchange-rate:usd`)."""

    model = CachedExchangeRate

    def __init__(self, redis: AsyncRedis, currency: str = "USD", ttl: timedelta = DEFAULT_TTL):
        super().__init__(redis, CacheKeys.EXCHANGE_RATE, ttl)
        self.currency = currency.lower()

    async def get_current(self) -> Optional[CachedExchangeRate]:
        return await self.get(self.currency)

    async def set_current(self, rate: CachedExchangeRate) -> None:
        await self.set(self.currency, rate)

    async def on_exchange_rate_changed(self, event: ExchangeRateChanged) -> None:
        await self.set_current(
            CachedExchangeRate(
                rate=event.new_rate,
                updated_at=event.timestamp,
                updated_by=event.updated_by,
                source=event.source,
            )
        )


class StockListCache(RedisJsonCache[CachedStockList]):
    """Stock id/name/alias listing (`stocks:list`)."""

    model = CachedStockList

    def __init__(self, redis: AsyncRedis, ttl: timedelta = DEFAULT_TTL):
        prefix, _, self._identifier = CacheKeys.STOCK_LIST.partition(":")
        super().__init__(redis, prefix, ttl)

    async def get_list(self) -> Optional[CachedStockList]:
        return await self.get(self._identifier)

    async def set_list(self, stocks: List[Any]) -> None:
        await self.set(self._identifier, {"stocks": stocks})

    async def clear(self) -> None:
        await self.invalidate(self._identifier)
