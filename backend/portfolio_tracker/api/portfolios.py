from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from portfolio_tracker.api.deps import get_container
from portfolio_tracker.core.container import Container

router = APIRouter()


# Schemas

class HoldingResponse(BaseModel):
    stock_id: str
    quantity: Decimal
    percentage_of_total: Decimal

    class Config:
        from_attributes = True


class PortfolioResponse(BaseModel):
    id: str
    user_id: Optional[str]
    holdings: list[HoldingResponse]
    total_value: Decimal
    exchange_rate: Optional[Decimal]
    exchange_rate_updated: Optional[datetime]
    last_updated: datetime

    class Config:
        from_attributes = True


class StockDetails(BaseModel):
    id: str
    name: str
    alias: Optional[str]
    price: Decimal
    currency: str
    last_updated: Optional[datetime]

    class Config:
        from_attributes = True


class EnrichedHoldingResponse(HoldingResponse):
    stock: Optional[StockDetails]


class EnrichedPortfolioResponse(BaseModel):
    id: str
    user_id: Optional[str]
    total_value: Decimal
    last_updated: datetime
    holdings: list[EnrichedHoldingResponse]


class PortfolioCreate(BaseModel):
    user_id: Optional[str] = None
    exchange_rate: Optional[Decimal] = None


class HoldingCreate(BaseModel):
    stock_id: str
    quantity: Decimal


class HoldingUpdate(BaseModel):
    quantity: Decimal


# Endpoints


@router.post("", response_model=PortfolioResponse, status_code=status.HTTP_201_CREATED)
async def create_portfolio(payload: PortfolioCreate, container: Container = Depends(get_container)):
    """Create an empty portfolio. Without a rate it takes the current USD rate."""
    return await container.portfolio_service.create_portfolio(
        user_id=payload.user_id, exchange_rate=payload.exchange_rate
    )


@router.get("/{portfolio_id}", response_model=PortfolioResponse)
async def get_portfolio(portfolio_id: str, container: Container = Depends(get_container)):
    return await container.portfolio_service.get_portfolio(portfolio_id)


@router.get("/user/{username}", response_model=EnrichedPortfolioResponse)
async def get_portfolio_by_username(username: str, container: Container = Depends(get_container)):
    """Portfolio of a user with each holding's stock details."""
    enriched = await container.portfolio_service.get_portfolio_by_username(username)
    portfolio = enriched.portfolio
    return EnrichedPortfolioResponse(
        id=portfolio.id,
        user_id=portfolio.user_id,
        total_value=portfolio.total_value,
        last_updated=portfolio.last_updated,
        holdings=[
            EnrichedHoldingResponse(
                stock_id=h.stock_id,
                quantity=h.quantity,
                percentage_of_total=h.percentage_of_total,
                stock=StockDetails.model_validate(h.stock) if h.stock is not None else None,
            )
            for h in enriched.holdings
        ],
    )


@router.post(
    "/{portfolio_id}/holdings",
    response_model=PortfolioResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_holding(
    portfolio_id: str,
    payload: HoldingCreate,
    container: Container = Depends(get_container),
):
    return await container.portfolio_service.add_holding(
        portfolio_id, payload.stock_id, payload.quantity
    )


@router.put("/{portfolio_id}/holdings/{stock_id}", response_model=PortfolioResponse)
async def update_holding(
    portfolio_id: str,
    stock_id: str,
    payload: HoldingUpdate,
    container: Container = Depends(get_container),
):
    return await container.portfolio_service.update_holding(portfolio_id, stock_id, payload.quantity)


@router.delete("/{portfolio_id}/holdings/{stock_id}", response_model=PortfolioResponse)
async def remove_holding(
    portfolio_id: str,
    stock_id: str,
    container: Container = Depends(get_container),
):
    return await container.portfolio_service.remove_holding(portfolio_id, stock_id)
