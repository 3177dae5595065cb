from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from portfolio_tracker.api.deps import get_container
from portfolio_tracker.core.container import Container
from portfolio_tracker.services.value_summary import TimeRange

router = APIRouter()


# Schemas

class DailyValue(BaseModel):
    date: date
    total_value: Decimal

    class Config:
        from_attributes = True


class ValueSummaryResponse(BaseModel):
    start_value: Decimal
    end_value: Decimal
    highest_value: Decimal
    highest_date: date
    lowest_value: Decimal
    lowest_date: date
    change_percentage: Decimal

    class Config:
        from_attributes = True


class HistoryResponse(BaseModel):
    portfolio_id: str
    range: str
    start_date: date
    end_date: date
    values: list[DailyValue]
    summary: ValueSummaryResponse


# Endpoints


@router.get("/{portfolio_id}/history", response_model=HistoryResponse)
async def get_history(
    portfolio_id: str,
    time_range: str = Query(default="1mo", alias="range"),
    container: Container = Depends(get_container),
):
    """Daily values over 1mo, 3mo, 6mo or 1yr ending today. 404 when empty."""
    history = await container.daily_value_service.get_history(
        portfolio_id, TimeRange.parse(time_range)
    )
    return HistoryResponse(
        portfolio_id=history.portfolio_id,
        range=history.time_range.value,
        start_date=history.start_date,
        end_date=history.end_date,
        values=[DailyValue.model_validate(p) for p in history.values],
        summary=ValueSummaryResponse.model_validate(history.summary),
    )


@router.get("/{portfolio_id}/summary", response_model=ValueSummaryResponse)
async def get_summary(
    portfolio_id: str,
    time_range: str = Query(default="1mo", alias="range"),
    container: Container = Depends(get_container),
):
    return await container.daily_value_service.get_summary(
        portfolio_id, TimeRange.parse(time_range)
    )
