"""
Redis connection management.

Provides Redis clients for both sync and async operations. Redis backs the
valuation cache and the pub/sub channel feeding the UI stream.
"""

from typing import Optional
from redis import Redis
from redis.asyncio import Redis as AsyncRedis
from portfolio_tracker.core.config import settings

# Synchronous Redis client (for Celery tasks)
redis_client: Optional[Redis] = None


def get_redis() -> Redis:
    """Get synchronous Redis client."""
    global redis_client
    if redis_client is None:
        redis_client = Redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
    return redis_client


# Async Redis client (for the API and the update pipeline)
async_redis_client: Optional[AsyncRedis] = None


async def get_async_redis() -> AsyncRedis:
    """Get async Redis client."""
    global async_redis_client
    if async_redis_client is None:
        async_redis_client = AsyncRedis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
    return async_redis_client


async def close_redis() -> None:
    """Close Redis connections."""
    global redis_client, async_redis_client

    if redis_client is not None:
        redis_client.close()
        redis_client = None

    if async_redis_client is not None:
        await async_redis_client.close()
        async_redis_client = None


class Channels:
    """Redis pub/sub channel names."""

    PORTFOLIO_UPDATES = "portfolio-updates"


class CacheKeys:
    """Redis key prefixes for cached values."""

    PORTFOLIO = "portfolio"
    EXCHANGE_RATE = "exchange-rate"
    STOCK_LIST = "stocks:list"
