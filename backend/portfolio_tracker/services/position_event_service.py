"""
Position event audit log.

Each BUY/SELL is recorded once, keyed by a client supplied operation id so
that retried submissions are rejected instead of applied twice.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from portfolio_tracker.core.database import AsyncSessionLocal
from portfolio_tracker.core.exceptions import DuplicateOperationError, ValidationError
from portfolio_tracker.models.base import utcnow
from portfolio_tracker.models.position_event import PositionEvent
from portfolio_tracker.services.valuation_engine import to_decimal

logger = logging.getLogger(__name__)

EVENT_TYPES = ("BUY", "SELL")
SOURCES = ("ios", "android", "web")
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

ZERO = Decimal("0")


@dataclass
class UserTradeStats:
    user_id: str
    total_transactions: int = 0
    buy_count: int = 0
    sell_count: int = 0
    total_buy_volume: Decimal = ZERO
    total_sell_volume: Decimal = ZERO
    currencies: List[str] = field(default_factory=list)
    earliest_trade: Optional[datetime] = None
    latest_trade: Optional[datetime] = None


def validate_event(data: Mapping[str, Any]) -> dict:
    """Normalize and check a new event. Raises ValidationError."""
    event_type = str(data.get("type", "")).upper()
    if event_type not in EVENT_TYPES:
        raise ValidationError(f"Invalid event type '{data.get('type')}'. Use BUY or SELL")

    source = str(data.get("source", "")).lower()
    if source not in SOURCES:
        raise ValidationError(f"Invalid source '{data.get('source')}'. Use one of: {', '.join(SOURCES)}")

    before = to_decimal(data["quantity_before"])
    after = to_decimal(data["quantity_after"])
    delta = to_decimal(data["quantity_delta"])

    if after < ZERO:
        raise ValidationError("quantity_after cannot be negative")
    if before + delta != after:
        raise ValidationError(
            f"quantity_after ({after}) must equal quantity_before ({before}) + quantity_delta ({delta})"
        )
    if event_type == "BUY" and delta <= ZERO:
        raise ValidationError("BUY events require a positive quantity_delta")
    if event_type == "SELL" and delta >= ZERO:
        raise ValidationError("SELL events require a negative quantity_delta")

    return {
        "operation_id": data["operation_id"],
        "user_id": data["user_id"],
        "stock_id": data["stock_id"],
        "type": event_type,
        "trade_at": data["trade_at"],
        "quantity_before": before,
        "quantity_after": after,
        "quantity_delta": delta,
        "currency": str(data["currency"]).upper(),
        "total_cost_after": to_decimal(data["total_cost_after"]),
        "unit_price": to_decimal(data["unit_price"]),
        "source": source,
        "app_version": data["app_version"],
    }


class PositionEventService:
    def __init__(
        self,
        session: Optional[AsyncSession] = None,
        session_factory: async_sessionmaker = AsyncSessionLocal,
    ):
        self.session = session
        self.session_factory = session_factory

    async def record_event(self, data: Mapping[str, Any]) -> PositionEvent:
        values = validate_event(data)
        operation_id = values["operation_id"]

        try:
            async with self._get_session() as session:
                exists = await session.execute(
                    select(PositionEvent.id).where(PositionEvent.operation_id == operation_id)
                )
                if exists.first() is not None:
                    raise DuplicateOperationError(operation_id)

                event = PositionEvent(created_at=utcnow(), **values)
                session.add(event)
                await session.flush()
        except IntegrityError:
            raise DuplicateOperationError(operation_id)

        logger.info(
            f"Recorded {event.type} of {event.quantity_delta} {event.stock_id} "
            f"for user {event.user_id} (operation {operation_id})"
        )
        return event

    async def operation_exists(self, operation_id: str) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                select(PositionEvent.id).where(PositionEvent.operation_id == operation_id)
            )
            return result.first() is not None

    async def get_event(self, event_id: str) -> Optional[PositionEvent]:
        async with self._get_session() as session:
            return await session.get(PositionEvent, event_id)

    async def list_events(
        self,
        user_id: Optional[str] = None,
        stock_id: Optional[str] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> List[PositionEvent]:
        """
        Newest first. Unfiltered listings sort by created_at, filtered ones
        by trade_at.
        """
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

        stmt = select(PositionEvent)
        if user_id is not None:
            stmt = stmt.where(PositionEvent.user_id == user_id)
        if stock_id is not None:
            stmt = stmt.where(PositionEvent.stock_id == stock_id)

        if user_id is None and stock_id is None:
            stmt = stmt.order_by(PositionEvent.created_at.desc())
        else:
            stmt = stmt.order_by(PositionEvent.trade_at.desc())

        stmt = stmt.offset((page - 1) * page_size).limit(page_size)

        async with self._get_session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def user_stats(self, user_id: str) -> UserTradeStats:
        is_buy = PositionEvent.type == "BUY"
        is_sell = PositionEvent.type == "SELL"
        stmt = select(
            func.count(PositionEvent.id),
            func.sum(case((is_buy, 1), else_=0)),
            func.sum(case((is_sell, 1), else_=0)),
            func.sum(case((is_buy, PositionEvent.quantity_delta), else_=0)),
            func.sum(case((is_sell, func.abs(PositionEvent.quantity_delta)), else_=0)),
            func.min(PositionEvent.trade_at),
            func.max(PositionEvent.trade_at),
        ).where(PositionEvent.user_id == user_id)

        async with self._get_session() as session:
            row = (await session.execute(stmt)).one()
            currencies = await session.execute(
                select(PositionEvent.currency)
                .where(PositionEvent.user_id == user_id)
                .distinct()
                .order_by(PositionEvent.currency)
            )
            currency_list = list(currencies.scalars().all())

        total, buys, sells, buy_volume, sell_volume, earliest, latest = row
        if not total:
            return UserTradeStats(user_id=user_id)

        return UserTradeStats(
            user_id=user_id,
            total_transactions=total,
            buy_count=int(buys or 0),
            sell_count=int(sells or 0),
            total_buy_volume=to_decimal(buy_volume or 0),
            total_sell_volume=to_decimal(sell_volume or 0),
            currencies=currency_list,
            earliest_trade=earliest,
            latest_trade=latest,
        )

    @asynccontextmanager
    async def _get_session(self):
        if self.session is not None:
            yield self.session
        else:
            async with self.session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise
