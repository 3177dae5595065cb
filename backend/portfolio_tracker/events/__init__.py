from portfolio_tracker.events.bus import EventBus, EventHandler
from portfolio_tracker.events.types import (
    ExchangeRateChanged,
    PortfolioValuationUpdated,
    StockPriceChanged,
)

__all__ = [
    "EventBus",
    "EventHandler",
    "ExchangeRateChanged",
    "PortfolioValuationUpdated",
    "StockPriceChanged",
]
