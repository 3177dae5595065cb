"""
Valuation Engine.

Pure computation of a portfolio's total value and per-holding percentage
breakdown in the base currency. No I/O; inputs are never mutated.

Rounding is half away from zero throughout:
  converted price  -> 4 dp (foreign currency only)
  holding value    -> 4 dp
  total value      -> 2 dp
  percentage       -> 2 dp, remainder assigned to the largest holding
"""
import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from portfolio_tracker.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def round_half_away(value: Decimal, places: int) -> Decimal:
    """Round to `places` decimals, ties away from zero."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def positive_price(value: Any) -> Decimal:
    """Prices written to a stock must be strictly positive."""
    price = to_decimal(value)
    if not price.is_finite() or price <= 0:
        raise ValidationError("Price must be greater than zero")
    return price


@dataclass(frozen=True)
class HoldingValuation:
    stock_id: str
    quantity: Decimal
    currency: Optional[str]
    original_price: Optional[Decimal]
    converted_price: Optional[Decimal]
    original_value: Decimal
    value: Decimal
    percentage: Decimal
    exchange_rate: Optional[Decimal] = None

    @property
    def priced(self) -> bool:
        return self.converted_price is not None


@dataclass(frozen=True)
class CurrencyBreakdown:
    currency: str
    total_value: Decimal
    percentage: Decimal


@dataclass(frozen=True)
class PortfolioValuation:
    total_value: Decimal
    holdings: Tuple[HoldingValuation, ...]
    currency_distribution: Tuple[CurrencyBreakdown, ...] = ()
    missing_stock_ids: Tuple[str, ...] = field(default=())

    @property
    def percentages(self) -> Dict[str, Decimal]:
        return {h.stock_id: h.percentage for h in self.holdings}


def compute_valuation(
    holdings: Iterable[Any],
    prices: Mapping[str, Any],
    currencies: Mapping[str, str],
    fx_rate: Optional[Any],
    foreign_currency: str = "USD",
) -> PortfolioValuation:
    """
    Value a portfolio.

    Args:
        holdings: Objects exposing `stock_id` and `quantity`, in portfolio order
        prices: stock_id -> latest price in the stock's own currency
        currencies: stock_id -> currency code
        fx_rate: Base-currency units per one unit of `foreign_currency`
        foreign_currency: The only currency that gets converted

    Returns:
        PortfolioValuation with percentages summing to exactly 100.00
        when the total is non-zero, and all zero otherwise.
    """
    holdings = list(holdings)

    for holding in holdings:
        if to_decimal(holding.quantity) < ZERO:
            raise ValidationError(
                f"Holding {holding.stock_id} has negative quantity {holding.quantity}"
            )

    rate = to_decimal(fx_rate) if fx_rate is not None else None

    # First pass: per-holding values
    rows: List[Dict[str, Any]] = []
    missing: List[str] = []
    for holding in holdings:
        stock_id = holding.stock_id
        quantity = to_decimal(holding.quantity)
        price = prices.get(stock_id)
        currency = currencies.get(stock_id)

        row = {
            "stock_id": stock_id,
            "quantity": quantity,
            "currency": currency,
            "original_price": None,
            "converted_price": None,
            "original_value": ZERO,
            "value": ZERO,
            "exchange_rate": None,
        }

        if price is None or currency is None:
            logger.warning(f"Data integrity: no price/currency for stock {stock_id}, valued at 0")
            missing.append(stock_id)
            rows.append(row)
            continue

        price = to_decimal(price)
        row["original_price"] = price
        row["original_value"] = round_half_away(quantity * price, 4)

        if currency == foreign_currency:
            if rate is None:
                logger.warning(
                    f"Data integrity: no {foreign_currency} rate for stock {stock_id}, valued at 0"
                )
                missing.append(stock_id)
                rows.append(row)
                continue
            converted = round_half_away(price * rate, 4)
            row["exchange_rate"] = rate
        else:
            converted = price

        row["converted_price"] = converted
        row["value"] = round_half_away(quantity * converted, 4)
        rows.append(row)

    raw_total = sum((row["value"] for row in rows), ZERO)

    # Second pass: percentages against the unrounded sum
    percentages = [
        round_half_away(row["value"] / raw_total * HUNDRED, 2) if raw_total != ZERO else ZERO
        for row in rows
    ]

    if raw_total != ZERO and rows:
        diff = HUNDRED - sum(percentages, ZERO)
        if diff != ZERO:
            largest = 0
            for index, row in enumerate(rows):
                if row["value"] > rows[largest]["value"]:
                    largest = index
            percentages[largest] += diff

    valued = tuple(
        HoldingValuation(percentage=percentage, **row)
        for row, percentage in zip(rows, percentages)
    )

    return PortfolioValuation(
        total_value=round_half_away(raw_total, 2),
        holdings=valued,
        currency_distribution=_currency_distribution(valued, raw_total),
        missing_stock_ids=tuple(missing),
    )


def _currency_distribution(
    holdings: Tuple[HoldingValuation, ...], raw_total: Decimal
) -> Tuple[CurrencyBreakdown, ...]:
    totals: Dict[str, Decimal] = {}
    for holding in holdings:
        if not holding.priced:
            continue
        totals[holding.currency] = totals.get(holding.currency, ZERO) + holding.value

    return tuple(
        CurrencyBreakdown(
            currency=currency,
            total_value=round_half_away(value, 2),
            percentage=round_half_away(value / raw_total * HUNDRED, 2) if raw_total != ZERO else ZERO,
        )
        for currency, value in totals.items()
    )
