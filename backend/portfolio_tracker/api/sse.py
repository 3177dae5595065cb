import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Request
from sse_starlette.sse import EventSourceResponse
from portfolio_tracker.core.redis import Channels, get_async_redis

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/stream")
async def portfolio_update_stream(request: Request) -> EventSourceResponse:
    """
    Server-Sent Events endpoint.
    Relays portfolio valuation updates published on Redis to connected clients.
    """
    async def event_generator() -> AsyncGenerator[dict, None]:
        pubsub = None
        try:
            redis = await get_async_redis()
            pubsub = redis.pubsub()
            await pubsub.subscribe(Channels.PORTFOLIO_UPDATES)

            yield {
                "event": "connected",
                "data": json.dumps({"message": "Connected to portfolio updates"}),
            }

            while True:
                if await request.is_disconnected():
                    break

                message = await pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
                if message and message.get("data"):
                    data = message["data"]
                    if isinstance(data, bytes):
                        data = data.decode("utf-8")
                    yield {"event": "portfolio_update", "data": data}

                await asyncio.sleep(0.1)

        except asyncio.CancelledError:
            logger.info("Stream connection cancelled")
        except Exception as e:
            logger.error(f"SSE generator error: {e}")
            yield {
                "event": "error",
                "data": json.dumps({"message": "Stream interrupted"}),
            }
        finally:
            if pubsub is not None:
                await pubsub.unsubscribe(Channels.PORTFOLIO_UPDATES)
                await pubsub.close()

    return EventSourceResponse(event_generator(), ping=15)
