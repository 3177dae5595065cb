from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from portfolio_tracker.api.deps import get_container
from portfolio_tracker.core.container import Container
from portfolio_tracker.core.exceptions import NotFoundError
from portfolio_tracker.services.portfolio_cache import CachedExchangeRate

router = APIRouter()


# Schemas

class ExchangeRateUpdate(BaseModel):
    rate: Decimal
    updated_by: str = "System"
    source: str = "Manual"


class ExchangeRateUpdateResponse(BaseModel):
    rate: Decimal
    old_rate: Optional[Decimal]
    updated_at: datetime
    modified_count: int
    recomputed_count: int
    failed_portfolio_ids: list[str]


class CurrentExchangeRate(BaseModel):
    rate: Decimal
    updated_at: Optional[datetime]
    updated_by: Optional[str] = None
    source: Optional[str] = None


class LiveExchangeRate(BaseModel):
    currency_pair: str
    exchange_rate: Decimal


# Endpoints


@router.put("/usd", response_model=ExchangeRateUpdateResponse)
async def update_usd_rate(
    payload: ExchangeRateUpdate,
    container: Container = Depends(get_container),
):
    """
    Set the USD rate on every rated portfolio and recalculate USD holders.

    Returns 429 while another rate update is running and 404 when no
    portfolio carries a rate.
    """
    result = await container.update_service.set_exchange_rate(
        payload.rate, updated_by=payload.updated_by, source=payload.source
    )
    return ExchangeRateUpdateResponse(
        rate=result.rate,
        old_rate=result.old_rate,
        updated_at=result.timestamp,
        modified_count=result.modified_count,
        recomputed_count=result.recomputed_count,
        failed_portfolio_ids=result.failed_portfolio_ids,
    )


@router.get("/usd", response_model=CurrentExchangeRate)
async def get_usd_rate(container: Container = Depends(get_container)):
    cached = await container.exchange_rate_cache.get_current()
    if cached is not None:
        return CurrentExchangeRate(**cached.model_dump())

    current = await container.store.get_current_exchange_rate()
    if current is None:
        raise NotFoundError("No exchange rate has been set")

    rate, updated_at = current
    if updated_at is not None:
        await container.exchange_rate_cache.set_current(
            CachedExchangeRate(rate=rate, updated_at=updated_at)
        )
    return CurrentExchangeRate(rate=rate, updated_at=updated_at)


@router.get("/{currency_pair}", response_model=LiveExchangeRate)
async def get_live_rate(currency_pair: str, container: Container = Depends(get_container)):
    """Scrape the current rate for a pair such as USD-TWD."""
    rate = await container.rate_provider.fetch_rate(currency_pair.upper())
    return LiveExchangeRate(currency_pair=currency_pair.upper(), exchange_rate=rate)
