"""
Forwards persisted valuation updates to the UI through Redis pub/sub.
"""

import json
import logging

from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from portfolio_tracker.core.redis import Channels
from portfolio_tracker.events.types import PortfolioValuationUpdated

logger = logging.getLogger(__name__)


class PortfolioUpdateNotifier:
    def __init__(self, redis: AsyncRedis, channel: str = Channels.PORTFOLIO_UPDATES):
        self.redis = redis
        self.channel = channel

    async def on_valuation_updated(self, event: PortfolioValuationUpdated) -> None:
        try:
            await self.redis.publish(self.channel, json.dumps(event.to_message()))
        except RedisError as e:
            logger.error(f"Failed to publish update for portfolio {event.portfolio_id}: {e}")
