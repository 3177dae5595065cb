"""
Logging setup shared by the API process and the Celery workers.
"""

import logging
import sys
from portfolio_tracker.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Library loggers and the level they are capped at
LIBRARY_LEVELS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "celery": logging.INFO,
    "redis": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sse_starlette": logging.INFO,
}


def setup_logging(level: str | None = None) -> None:
    """Route every logger to stdout at LOG_LEVEL (DEBUG when DEBUG is set)."""
    if level is None:
        level = "DEBUG" if settings.DEBUG else settings.LOG_LEVEL

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    for name, cap in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(cap)

    if settings.DB_ECHO:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
