from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from portfolio_tracker.api.deps import get_container
from portfolio_tracker.core.container import Container
from portfolio_tracker.core.exceptions import NotFoundError
from portfolio_tracker.services.position_event_service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

router = APIRouter()


# Schemas

class PositionEventCreate(BaseModel):
    operation_id: str = Field(..., min_length=1, max_length=64)
    user_id: str
    stock_id: str
    type: str
    trade_at: datetime
    quantity_before: Decimal
    quantity_after: Decimal
    quantity_delta: Decimal
    currency: str = Field(..., min_length=3, max_length=3)
    total_cost_after: Decimal
    unit_price: Decimal
    source: str
    app_version: str = Field(..., max_length=20)


class PositionEventResponse(BaseModel):
    id: str
    operation_id: str
    user_id: str
    stock_id: str
    type: str
    trade_at: datetime
    created_at: datetime
    quantity_before: Decimal
    quantity_after: Decimal
    quantity_delta: Decimal
    currency: str
    total_cost_after: Decimal
    unit_price: Decimal
    source: str
    app_version: str

    class Config:
        from_attributes = True


class OperationCheck(BaseModel):
    operation_id: str
    exists: bool


class UserTradeStatsResponse(BaseModel):
    user_id: str
    total_transactions: int
    buy_count: int
    sell_count: int
    total_buy_volume: Decimal
    total_sell_volume: Decimal
    currencies: list[str]
    earliest_trade: Optional[datetime]
    latest_trade: Optional[datetime]

    class Config:
        from_attributes = True


def _page(page: int = Query(default=1, ge=1)) -> int:
    return page


def _page_size(page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE)) -> int:
    return page_size


# Endpoints


@router.get("", response_model=list[PositionEventResponse])
async def list_events(
    page: int = Depends(_page),
    page_size: int = Depends(_page_size),
    container: Container = Depends(get_container),
):
    return await container.position_event_service.list_events(page=page, page_size=page_size)


@router.post("", response_model=PositionEventResponse, status_code=status.HTTP_201_CREATED)
async def record_event(payload: PositionEventCreate, container: Container = Depends(get_container)):
    """Record a trade. 409 when the operation id was already applied."""
    return await container.position_event_service.record_event(payload.model_dump())


@router.get("/check/{operation_id}", response_model=OperationCheck)
async def check_operation(operation_id: str, container: Container = Depends(get_container)):
    exists = await container.position_event_service.operation_exists(operation_id)
    return OperationCheck(operation_id=operation_id, exists=exists)


@router.get("/stats/user/{user_id}", response_model=UserTradeStatsResponse)
async def get_user_stats(user_id: str, container: Container = Depends(get_container)):
    return await container.position_event_service.user_stats(user_id)


@router.get("/user/{user_id}/stock/{stock_id}", response_model=list[PositionEventResponse])
async def list_user_stock_events(
    user_id: str,
    stock_id: str,
    page: int = Depends(_page),
    page_size: int = Depends(_page_size),
    container: Container = Depends(get_container),
):
    return await container.position_event_service.list_events(
        user_id=user_id, stock_id=stock_id, page=page, page_size=page_size
    )


@router.get("/user/{user_id}", response_model=list[PositionEventResponse])
async def list_user_events(
    user_id: str,
    page: int = Depends(_page),
    page_size: int = Depends(_page_size),
    container: Container = Depends(get_container),
):
    return await container.position_event_service.list_events(
        user_id=user_id, page=page, page_size=page_size
    )


@router.get("/stock/{stock_id}", response_model=list[PositionEventResponse])
async def list_stock_events(
    stock_id: str,
    page: int = Depends(_page),
    page_size: int = Depends(_page_size),
    container: Container = Depends(get_container),
):
    return await container.position_event_service.list_events(
        stock_id=stock_id, page=page, page_size=page_size
    )


@router.get("/{event_id}", response_model=PositionEventResponse)
async def get_event(event_id: str, container: Container = Depends(get_container)):
    event = await container.position_event_service.get_event(event_id)
    if event is None:
        raise NotFoundError.for_resource("Position event", event_id)
    return event
