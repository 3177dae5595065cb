from datetime import datetime, timedelta, timezone
from decimal import Decimal
import uuid

import pytest

from portfolio_tracker.core.exceptions import DuplicateOperationError, ValidationError
from portfolio_tracker.services.position_event_service import PositionEventService

T0 = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)


def trade(**overrides):
    data = {
        "operation_id": str(uuid.uuid4()),
        "user_id": "u1",
        "stock_id": "s1",
        "type": "BUY",
        "trade_at": T0,
        "quantity_before": Decimal("0"),
        "quantity_after": Decimal("10"),
        "quantity_delta": Decimal("10"),
        "currency": "TWD",
        "total_cost_after": Decimal("6000"),
        "unit_price": Decimal("600"),
        "source": "ios",
        "app_version": "1.4.0",
    }
    data.update(overrides)
    return data


@pytest.fixture
def events(session_factory):
    return PositionEventService(session_factory=session_factory)


async def test_record_and_check_operation(events):
    data = trade()

    event = await events.record_event(data)

    assert event.id
    assert event.type == "BUY"
    assert await events.operation_exists(data["operation_id"]) is True
    assert await events.operation_exists("never-seen") is False
    assert (await events.get_event(event.id)).operation_id == data["operation_id"]


async def test_duplicate_operation_is_rejected(events):
    data = trade()
    await events.record_event(data)

    with pytest.raises(DuplicateOperationError) as exc_info:
        await events.record_event(dict(data, trade_at=T0 + timedelta(hours=1)))

    assert exc_info.value.status_code == 409
    assert data["operation_id"] in exc_info.value.detail


@pytest.mark.parametrize(
    "overrides",
    [
        {"type": "HOLD"},
        {"source": "fax"},
        {"quantity_after": Decimal("9")},
        {"quantity_before": Decimal("0"), "quantity_delta": Decimal("-1"), "quantity_after": Decimal("-1"), "type": "SELL"},
        {"quantity_delta": Decimal("0"), "quantity_after": Decimal("0")},
        {"type": "SELL"},
    ],
)
async def test_invalid_events_are_rejected(events, overrides):
    with pytest.raises(ValidationError):
        await events.record_event(trade(**overrides))


async def test_listing_is_newest_first_and_paged(events):
    for hour in range(5):
        await events.record_event(trade(trade_at=T0 + timedelta(hours=hour)))
    await events.record_event(trade(user_id="u2", trade_at=T0))

    page_one = await events.list_events(user_id="u1", page=1, page_size=2)
    page_three = await events.list_events(user_id="u1", page=3, page_size=2)

    assert [e.trade_at.hour for e in page_one] == [13, 12]
    assert [e.trade_at.hour for e in page_three] == [9]
    assert len(await events.list_events()) == 6
    assert len(await events.list_events(user_id="u1", stock_id="s1")) == 5
    assert await events.list_events(stock_id="other") == []


async def test_user_stats(events):
    await events.record_event(trade())
    await events.record_event(
        trade(
            type="SELL",
            trade_at=T0 + timedelta(days=2),
            quantity_before=Decimal("10"),
            quantity_delta=Decimal("-4"),
            quantity_after=Decimal("6"),
            currency="usd",
        )
    )

    stats = await events.user_stats("u1")

    assert stats.total_transactions == 2
    assert (stats.buy_count, stats.sell_count) == (1, 1)
    assert stats.total_buy_volume == Decimal("10")
    assert stats.total_sell_volume == Decimal("4")
    assert stats.currencies == ["TWD", "USD"]
    assert stats.earliest_trade.date() == T0.date()
    assert stats.latest_trade.date() == (T0 + timedelta(days=2)).date()


async def test_user_stats_without_events(events):
    stats = await events.user_stats("nobody")

    assert stats.total_transactions == 0
    assert stats.earliest_trade is None
    assert stats.currencies == []
