from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from portfolio_tracker.api.deps import get_container
from portfolio_tracker.core.container import Container

router = APIRouter()


# Schemas

class StockListItem(BaseModel):
    id: str
    name: str
    alias: Optional[str] = None

    class Config:
        from_attributes = True


class StockPriceInfo(BaseModel):
    id: str
    price: Decimal
    currency: str
    last_updated: Optional[datetime] = None

    class Config:
        from_attributes = True


class StockCreate(BaseModel):
    name: str = Field(..., max_length=100)
    alias: Optional[str] = Field(None, max_length=100)
    price: Optional[Decimal] = None
    currency: str = Field(..., min_length=3, max_length=3)


class StockResponse(StockPriceInfo):
    name: str
    alias: Optional[str] = None


class StockPriceUpdate(BaseModel):
    price: Decimal


class UpdateStockPriceResponse(BaseModel):
    name: str
    old_price: Decimal
    new_price: Decimal
    currency: str
    last_updated: datetime
    recalculation_failed: bool


# Endpoints


@router.get("", response_model=list[StockListItem])
async def list_stocks(container: Container = Depends(get_container)):
    return await container.portfolio_service.list_stocks()


@router.get("/{stock_id}/price", response_model=StockPriceInfo)
async def get_stock_price(stock_id: str, container: Container = Depends(get_container)):
    return await container.portfolio_service.get_stock(stock_id)


@router.post("", response_model=StockResponse, status_code=status.HTTP_201_CREATED)
async def create_stock(payload: StockCreate, container: Container = Depends(get_container)):
    return await container.portfolio_service.create_stock(
        name=payload.name,
        currency=payload.currency,
        price=payload.price,
        alias=payload.alias,
    )


@router.put("/name/{name}/price", response_model=UpdateStockPriceResponse)
async def update_stock_price(
    name: str,
    payload: StockPriceUpdate,
    container: Container = Depends(get_container),
):
    """Set a stock's price and recalculate every portfolio holding it."""
    result = await container.update_service.update_stock_price(name, payload.price)
    return UpdateStockPriceResponse(
        name=result.name,
        old_price=result.old_price,
        new_price=result.new_price,
        currency=result.currency,
        last_updated=result.timestamp,
        recalculation_failed=result.recalculation_failed,
    )
