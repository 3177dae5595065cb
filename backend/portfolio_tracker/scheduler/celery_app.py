from celery import Celery
from celery.schedules import crontab
from celery.signals import setup_logging as celery_setup_logging

from portfolio_tracker.core.config import settings
from portfolio_tracker.core.logging import setup_logging

app = Celery("portfolio_tracker")
app.conf.broker_url = settings.CELERY_BROKER_URL
app.conf.result_backend = settings.CELERY_RESULT_BACKEND
app.conf.timezone = settings.REFERENCE_TIMEZONE
app.conf.enable_utc = False

app.autodiscover_tasks(["portfolio_tracker"])
app.conf.imports = (
    "portfolio_tracker.tasks.daily_values",
    "portfolio_tracker.tasks.stock_updater",
)

app.conf.beat_schedule = {
    "record-daily-values": {
        "task": "portfolio_tracker.tasks.daily_values.record_daily_values",
        "schedule": crontab(
            hour=settings.DAILY_VALUE_HOUR,
            minute=settings.DAILY_VALUE_MINUTE,
        ),
    },
    "update-tw-stock-prices": {
        "task": "portfolio_tracker.tasks.stock_updater.trigger_stock_updater",
        "schedule": crontab(
            day_of_week="mon-fri",
            hour=settings.STOCK_UPDATE_TW_HOUR,
            minute=settings.STOCK_UPDATE_TW_MINUTE,
        ),
        "args": ("tw",),
    },
    "update-us-stock-prices": {
        "task": "portfolio_tracker.tasks.stock_updater.trigger_stock_updater",
        "schedule": crontab(
            day_of_week="tue-sat",
            hour=settings.STOCK_UPDATE_US_HOUR,
            minute=settings.STOCK_UPDATE_US_MINUTE,
        ),
        "args": ("us",),
    },
}


@celery_setup_logging.connect
def configure_worker_logging(**kwargs):
    # Workers log with the same format as the API
    setup_logging()
