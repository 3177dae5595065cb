"""
Domain events published on the in-process event bus.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


@dataclass(frozen=True)
class StockPriceChanged:
    stock_id: str
    old_price: Decimal
    new_price: Decimal
    timestamp: datetime


@dataclass(frozen=True)
class ExchangeRateChanged:
    old_rate: Optional[Decimal]
    new_rate: Decimal
    timestamp: datetime
    updated_by: str = "System"
    source: str = "Manual"


@dataclass(frozen=True)
class PortfolioValuationUpdated:
    """Emitted after a recalculated valuation has been persisted."""

    portfolio_id: str
    total_value: Decimal
    exchange_rate: Optional[Decimal]
    timestamp: datetime

    def to_message(self) -> dict:
        return {
            "type": "portfolio_valuation_updated",
            "portfolio_id": self.portfolio_id,
            "total_value": str(self.total_value),
            "exchange_rate": str(self.exchange_rate) if self.exchange_rate is not None else None,
            "timestamp": self.timestamp.isoformat(),
        }
