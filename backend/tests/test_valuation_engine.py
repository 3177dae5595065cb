import logging
from decimal import Decimal

import pytest

from portfolio_tracker.core.exceptions import ValidationError
from portfolio_tracker.services.valuation_engine import compute_valuation, round_half_away
from tests.conftest import make_holding


PRICES = {"A": Decimal("100"), "B": Decimal("20")}
CURRENCIES = {"A": "TWD", "B": "USD"}


def test_mixed_currency_portfolio():
    holdings = [make_holding("A", 10), make_holding("B", 5)]

    valuation = compute_valuation(holdings, PRICES, CURRENCIES, Decimal("31.5"))

    a, b = valuation.holdings
    assert b.converted_price == Decimal("630.0000")
    assert b.value == Decimal("3150.0000")
    assert b.original_value == Decimal("100.0000")
    assert b.exchange_rate == Decimal("31.5")
    assert a.value == Decimal("1000.0000")
    assert a.converted_price == Decimal("100")
    assert valuation.total_value == Decimal("4150.00")
    assert a.percentage == Decimal("24.10")
    assert b.percentage == Decimal("75.90")


def test_remainder_goes_to_first_largest_holding():
    holdings = [make_holding("X", 1), make_holding("Y", 1), make_holding("Z", 1)]
    prices = {"X": Decimal("100"), "Y": Decimal("100"), "Z": Decimal("100")}
    currencies = {"X": "TWD", "Y": "TWD", "Z": "TWD"}

    valuation = compute_valuation(holdings, prices, currencies, None)

    assert [h.percentage for h in valuation.holdings] == [
        Decimal("33.34"), Decimal("33.33"), Decimal("33.33")
    ]
    assert sum(h.percentage for h in valuation.holdings) == Decimal("100.00")


def test_remainder_can_be_negative():
    ids = ["S1", "S2", "S3", "S4", "S5", "S6"]
    holdings = [make_holding(i, 1) for i in ids]
    prices = {i: Decimal("10") for i in ids}
    currencies = {i: "TWD" for i in ids}

    valuation = compute_valuation(holdings, prices, currencies, None)

    # 6 x 16.67 overshoots by 0.02
    assert valuation.holdings[0].percentage == Decimal("16.65")
    assert all(h.percentage == Decimal("16.67") for h in valuation.holdings[1:])
    assert sum(h.percentage for h in valuation.holdings) == Decimal("100.00")


def test_zero_total_gives_zero_percentages():
    holdings = [make_holding("A", 0), make_holding("B", 0)]

    valuation = compute_valuation(holdings, PRICES, CURRENCIES, Decimal("31.5"))

    assert valuation.total_value == Decimal("0.00")
    assert all(h.percentage == Decimal("0") for h in valuation.holdings)


def test_empty_portfolio():
    valuation = compute_valuation([], PRICES, CURRENCIES, Decimal("31.5"))

    assert valuation.total_value == Decimal("0.00")
    assert valuation.holdings == ()


def test_missing_price_contributes_zero(caplog):
    holdings = [make_holding("A", 10), make_holding("GONE", 3)]

    with caplog.at_level(logging.WARNING):
        valuation = compute_valuation(holdings, PRICES, CURRENCIES, Decimal("31.5"))

    assert valuation.total_value == Decimal("1000.00")
    assert valuation.missing_stock_ids == ("GONE",)
    gone = valuation.holdings[1]
    assert gone.value == Decimal("0")
    assert gone.percentage == Decimal("0")
    assert valuation.holdings[0].percentage == Decimal("100.00")
    assert "GONE" in caplog.text


def test_usd_holding_without_rate_contributes_zero():
    holdings = [make_holding("A", 10), make_holding("B", 5)]

    valuation = compute_valuation(holdings, PRICES, CURRENCIES, None)

    assert valuation.total_value == Decimal("1000.00")
    assert valuation.missing_stock_ids == ("B",)


def test_only_foreign_currency_is_converted():
    holdings = [make_holding("J", 2)]

    valuation = compute_valuation(holdings, {"J": Decimal("1500")}, {"J": "JPY"}, Decimal("31.5"))

    assert valuation.holdings[0].converted_price == Decimal("1500")
    assert valuation.holdings[0].exchange_rate is None
    assert valuation.total_value == Decimal("3000.00")


def test_conversion_rounds_to_four_places():
    holdings = [make_holding("B", 1)]

    valuation = compute_valuation(holdings, {"B": Decimal("10.123456")}, {"B": "USD"}, Decimal("31.5"))

    assert valuation.holdings[0].converted_price == round_half_away(
        Decimal("10.123456") * Decimal("31.5"), 4
    )


def test_negative_quantity_is_rejected():
    with pytest.raises(ValidationError):
        compute_valuation([make_holding("A", -1)], PRICES, CURRENCIES, Decimal("31.5"))


def test_valuation_is_deterministic_and_does_not_mutate_inputs():
    holdings = [make_holding("A", 10), make_holding("B", 5)]
    prices = dict(PRICES)

    first = compute_valuation(holdings, prices, CURRENCIES, Decimal("31.5"))
    second = compute_valuation(holdings, prices, CURRENCIES, Decimal("31.5"))

    assert first == second
    assert prices == PRICES
    assert holdings[0].quantity == Decimal("10")


def test_currency_distribution():
    holdings = [make_holding("A", 10), make_holding("B", 5)]

    valuation = compute_valuation(holdings, PRICES, CURRENCIES, Decimal("31.5"))

    by_currency = {c.currency: c for c in valuation.currency_distribution}
    assert by_currency["TWD"].total_value == Decimal("1000.00")
    assert by_currency["USD"].total_value == Decimal("3150.00")
    assert by_currency["USD"].percentage == Decimal("75.90")


def test_round_half_away_from_zero():
    assert round_half_away(Decimal("2.345"), 2) == Decimal("2.35")
    assert round_half_away(Decimal("-2.345"), 2) == Decimal("-2.35")
    assert round_half_away(Decimal("0.00005"), 4) == Decimal("0.0001")
