from portfolio_tracker.scheduler.celery_app import app
from portfolio_tracker.core.container import build_container
from portfolio_tracker.core.database import close_db
from portfolio_tracker.core.exceptions import RateUnavailableError
from portfolio_tracker.core.redis import close_redis
import logging
import asyncio
import time

logger = logging.getLogger(__name__)


async def _record_daily_values_async() -> dict:
    try:
        container = await build_container()
        result = await container.daily_value_service.record_daily_values()
        return result.to_dict()
    finally:
        # Connections are bound to this run's event loop
        await close_redis()
        await close_db()


@app.task(name="portfolio_tracker.tasks.daily_values.record_daily_values")
def record_daily_values():
    """
    Scheduled task to snapshot every portfolio's value for the day.
    Runs once per evening in the reference timezone.
    """
    started = time.monotonic()
    try:
        summary = asyncio.run(_record_daily_values_async())
    except RateUnavailableError as e:
        logger.error(f"Daily value recording aborted, no exchange rate: {e}")
        return {"status": "failed", "error": str(e)}

    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info(f"Daily value recording finished in {duration_ms}ms: {summary}")
    return {"status": "completed", "duration_ms": duration_ms, **summary}
