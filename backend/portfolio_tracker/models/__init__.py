# Base
from portfolio_tracker.models.base import IdMixin, CreatedAtMixin

# Market Data
from portfolio_tracker.models.stock import Stock

# Portfolios
from portfolio_tracker.models.user import User
from portfolio_tracker.models.portfolio import Portfolio, Holding
from portfolio_tracker.models.portfolio_daily_value import PortfolioDailyValue

# Audit
from portfolio_tracker.models.position_event import PositionEvent

__all__ = [
    "IdMixin",
    "CreatedAtMixin",
    "Stock",
    "User",
    "Portfolio",
    "Holding",
    "PortfolioDailyValue",
    "PositionEvent",
]
