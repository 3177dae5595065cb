from portfolio_tracker.scheduler.celery_app import app
from portfolio_tracker.core.config import settings
import logging
import httpx

logger = logging.getLogger(__name__)


def run_stock_updater(stock_type: str, client: httpx.Client | None = None) -> dict:
    """
    Ask the external price updater to refresh one market ("tw" or "us").

    Failures are logged, never raised.
    """
    base_url = settings.STOCK_UPDATER_BASE_URL
    if not base_url:
        logger.error("STOCK_UPDATER_BASE_URL is not configured")
        return {"status": "skipped", "stock_type": stock_type}

    url = f"{base_url.rstrip('/')}/run"
    logger.info(f"Starting stock updater for {stock_type} at {url}")

    try:
        if client is None:
            with httpx.Client(timeout=60.0) as owned:
                response = owned.get(url, params={"stockType": stock_type})
        else:
            response = client.get(url, params={"stockType": stock_type})
    except httpx.HTTPError as e:
        logger.error(f"Error executing stock updater for {stock_type}: {e}")
        return {"status": "failed", "stock_type": stock_type, "error": str(e)}

    if response.is_success:
        logger.info(f"Stock updater for {stock_type} completed. Status: {response.status_code}")
        return {"status": "completed", "stock_type": stock_type, "status_code": response.status_code}

    logger.warning(f"Stock updater for {stock_type} failed. Status: {response.status_code}")
    return {"status": "failed", "stock_type": stock_type, "status_code": response.status_code}


@app.task(name="portfolio_tracker.tasks.stock_updater.trigger_stock_updater")
def trigger_stock_updater(stock_type: str):
    return run_stock_updater(stock_type)
