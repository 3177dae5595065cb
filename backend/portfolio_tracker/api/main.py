"""
FastAPI application entry point.

Main API server for the Portfolio Tracker.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from portfolio_tracker.core.config import settings
from portfolio_tracker.core.container import build_container
from portfolio_tracker.core.database import close_db
from portfolio_tracker.core.exceptions import PortfolioTrackerError
from portfolio_tracker.core.logging import setup_logging
from portfolio_tracker.core.redis import close_redis

# Setup logging
setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Portfolio tracking with live valuation updates",
    debug=settings.DEBUG,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PortfolioTrackerError)
async def domain_error_handler(request: Request, exc: PortfolioTrackerError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.on_event("startup")
async def startup() -> None:
    """Run on application startup."""
    # Schema is managed by Alembic
    app.state.container = await build_container()


@app.on_event("shutdown")
async def shutdown() -> None:
    """Run on application shutdown."""
    await close_db()
    await close_redis()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }


from portfolio_tracker.api.sse import router as sse_router
from portfolio_tracker.api.stocks import router as stocks_router
from portfolio_tracker.api.exchange_rate import router as exchange_rate_router
from portfolio_tracker.api.portfolios import router as portfolios_router
from portfolio_tracker.api.users import router as users_router
from portfolio_tracker.api.portfolio_daily_values import router as daily_values_router
from portfolio_tracker.api.position_events import router as position_events_router

app.include_router(sse_router, prefix="/api/v1", tags=["stream"])
app.include_router(stocks_router, prefix="/api/v1/stocks", tags=["stocks"])
app.include_router(exchange_rate_router, prefix="/api/v1/exchange-rate", tags=["exchange-rate"])
app.include_router(portfolios_router, prefix="/api/v1/portfolios", tags=["portfolios"])
app.include_router(users_router, prefix="/api/v1/users", tags=["users"])
app.include_router(daily_values_router, prefix="/api/v1/portfolio-daily-values", tags=["history"])
app.include_router(position_events_router, prefix="/api/v1/position-events", tags=["position-events"])
