from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from portfolio_tracker.core.exceptions import ConflictError, NotFoundError, ValidationError
from portfolio_tracker.services.portfolio_store import PortfolioStore
from portfolio_tracker.services.user_service import UserService

NOW = datetime(2026, 10, 18, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def store(session_factory):
    return PortfolioStore(session_factory=session_factory)


async def new_portfolio(session_factory, username):
    user = await UserService(session_factory=session_factory).create_user(
        username, f"{username}@example.com"
    )
    return user.portfolio_id


async def test_create_stock_rejects_duplicates(store):
    await store.create_stock("2330:TPE", "twd", price=Decimal("600"), alias="TSMC")

    with pytest.raises(ConflictError):
        await store.create_stock("2330:TPE", "TWD")
    with pytest.raises(ConflictError):
        await store.create_stock("2330.TW", "TWD", alias="TSMC")

    stock = await store.find_stock_by_name("2330:TPE")
    assert stock.currency == "TWD"
    assert stock.price == Decimal("600")


async def test_stock_prices_must_be_positive(store):
    unpriced = await store.create_stock("0050:TPE", "TWD")

    assert unpriced.price == Decimal("0")
    with pytest.raises(ValidationError):
        await store.create_stock("0056:TPE", "TWD", price=Decimal("0"))
    with pytest.raises(ValidationError):
        await store.create_stock("00878:TPE", "TWD", price=Decimal("-1"))
    assert await store.find_stock_by_name("0056:TPE") is None


async def test_new_portfolios_inherit_the_current_rate(store, session_factory):
    first = await store.create_portfolio()
    assert first.exchange_rate is None

    rated = await store.create_portfolio(exchange_rate=Decimal("31.5"))
    inherited = await store.create_portfolio()
    user_portfolio_id = await new_portfolio(session_factory, "ivy")

    assert rated.exchange_rate == Decimal("31.5")
    assert inherited.exchange_rate == Decimal("31.5")
    assert (await store.get_portfolio(user_portfolio_id)).exchange_rate == Decimal("31.5")
    assert inherited.holdings == []

    with pytest.raises(ValidationError):
        await store.create_portfolio(exchange_rate=Decimal("0"))
    with pytest.raises(NotFoundError):
        await store.create_portfolio(user_id="missing")


async def test_extra_portfolio_for_existing_user(store, session_factory):
    users = UserService(session_factory=session_factory)
    user = await users.create_user("jack", "jack@example.com")

    extra = await store.create_portfolio(user_id=user.id)

    assert extra.user_id == user.id
    assert extra.id != user.portfolio_id
    assert (await users.get_user(user.id)).portfolio_id == user.portfolio_id


async def test_holdings_lifecycle(store, session_factory):
    portfolio_id = await new_portfolio(session_factory, "carol")
    a = await store.create_stock("A", "TWD", price=Decimal("10"))
    b = await store.create_stock("B", "USD", price=Decimal("2"))

    await store.add_holding(portfolio_id, a.id, Decimal("3"))
    portfolio = await store.add_holding(portfolio_id, b.id, Decimal("4"))
    assert [h.stock_id for h in portfolio.holdings] == [a.id, b.id]

    with pytest.raises(ConflictError):
        await store.add_holding(portfolio_id, a.id, Decimal("1"))
    with pytest.raises(ValidationError):
        await store.add_holding(portfolio_id, b.id, Decimal("-1"))
    with pytest.raises(NotFoundError):
        await store.add_holding(portfolio_id, "no-such-stock", Decimal("1"))

    portfolio = await store.update_holding_quantity(portfolio_id, a.id, Decimal("7"))
    assert portfolio.holdings[0].quantity == Decimal("7")

    portfolio = await store.remove_holding(portfolio_id, a.id)
    assert [h.stock_id for h in portfolio.holdings] == [b.id]

    with pytest.raises(NotFoundError):
        await store.remove_holding(portfolio_id, a.id)
    with pytest.raises(NotFoundError):
        await store.update_holding_quantity("missing", b.id, Decimal("1"))


async def test_portfolio_queries(store, session_factory):
    first = await new_portfolio(session_factory, "dave")
    second = await new_portfolio(session_factory, "erin")
    twd = await store.create_stock("T", "TWD", price=Decimal("10"))
    usd = await store.create_stock("U", "USD", price=Decimal("2"))
    await store.add_holding(first, twd.id, Decimal("1"))
    await store.add_holding(first, usd.id, Decimal("1"))
    await store.add_holding(second, twd.id, Decimal("1"))

    containing = await store.find_portfolios_containing_stock(twd.id)
    assert sorted(p.id for p in containing) == sorted([first, second])
    assert all(p.holdings for p in containing)
    assert await store.find_portfolio_ids_containing_stock(usd.id) == [first]

    # Neither portfolio has a rate yet
    assert await store.bulk_set_exchange_rate(Decimal("31"), NOW) == 0
    assert await store.find_portfolios_with_foreign_holdings("USD") == []
    assert await store.get_current_exchange_rate() is None

    by_name = await store.get_portfolio_by_username("dave")
    assert by_name.id == first


async def test_exchange_rate_only_touches_rated_portfolios(store, session_factory):
    unrated = await new_portfolio(session_factory, "grace")
    rated = (await store.create_portfolio(exchange_rate=Decimal("30"))).id
    usd = await store.create_stock("U", "USD", price=Decimal("2"))
    await store.add_holding(rated, usd.id, Decimal("1"))
    await store.add_holding(unrated, usd.id, Decimal("1"))

    assert await store.bulk_set_exchange_rate(Decimal("32.1234"), NOW) == 1

    foreign = await store.find_portfolios_with_foreign_holdings("USD")
    assert [p.id for p in foreign] == [rated]
    assert foreign[0].exchange_rate == Decimal("32.1234")
    assert (await store.get_portfolio(unrated)).exchange_rate is None
    rate, _ = await store.get_current_exchange_rate()
    assert rate == Decimal("32.1234")


async def test_update_portfolio_valuation(store, session_factory):
    portfolio_id = await new_portfolio(session_factory, "heidi")
    a = await store.create_stock("A", "TWD", price=Decimal("10"))
    b = await store.create_stock("B", "TWD", price=Decimal("30"))
    await store.add_holding(portfolio_id, a.id, Decimal("1"))
    await store.add_holding(portfolio_id, b.id, Decimal("1"))

    await store.update_portfolio_valuation(
        portfolio_id,
        Decimal("40.00"),
        {a.id: Decimal("25.00"), b.id: Decimal("75.00")},
        NOW,
    )

    portfolio = await store.get_portfolio(portfolio_id)
    assert portfolio.total_value == Decimal("40.00")
    assert [h.percentage_of_total for h in portfolio.holdings] == [Decimal("25.00"), Decimal("75.00")]

    with pytest.raises(NotFoundError):
        await store.update_portfolio_valuation("missing", Decimal("0"), {}, NOW)


async def test_daily_values_are_insert_if_absent_and_half_open(store):
    assert await store.insert_daily_value_if_absent("p1", date(2026, 1, 1), Decimal("10")) is True
    assert await store.insert_daily_value_if_absent("p1", date(2026, 1, 1), Decimal("99")) is False
    await store.insert_daily_value_if_absent("p1", date(2026, 1, 2), Decimal("11"))
    await store.insert_daily_value_if_absent("p1", date(2026, 1, 3), Decimal("12"))

    rows = await store.find_daily_values("p1", date(2026, 1, 1), date(2026, 1, 3))

    assert [(r.date, r.total_value) for r in rows] == [
        (date(2026, 1, 1), Decimal("10")),
        (date(2026, 1, 2), Decimal("11")),
    ]
