from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from datetime import datetime, timezone
from typing import List, Optional
import logging

from floor_tracker.core.sheets import SheetsStore
from floor_tracker.crud.price_sample import get_latest_sample, get_price_history, resolve_cutoff
from floor_tracker.schemas.price_sample import MarketCapResponse, PricePoint
from floor_tracker.services.backfill_service import recompute_market_caps

logger = logging.getLogger(__name__)

router = APIRouter()


def get_store(request: Request) -> SheetsStore:
    """Dependency that provides the process-wide store client."""
    return request.app.state.store


def get_current_time() -> datetime:
    return datetime.now(timezone.utc)


@router.get(
    "/prices",
    response_model=List[PricePoint],
    summary="Query floor price history",
    description="Returns stored samples newer than the requested range, oldest first.",
)
async def get_prices(
    range_key: Optional[str] = Query(None, alias="range", description="One of 1h, 3h, 1d, 7d, 1m, all. Unknown values mean all."),
    store: SheetsStore = Depends(get_store),
    now: datetime = Depends(get_current_time),
):
    cutoff = resolve_cutoff(range_key, now)
    logger.info(f"Querying price history for range={range_key or 'all'} (cutoff {cutoff.isoformat()}).")
    samples = await get_price_history(store, cutoff)
    logger.info(f"Returned {len(samples)} samples.")
    return [
        PricePoint(timestamp=s.timestamp, price=s.floor_price, market_cap=s.market_cap)
        for s in samples
    ]


@router.get(
    "/marketcap",
    response_model=MarketCapResponse,
    summary="Get latest market cap",
    description="Returns the market cap of the most recently appended sample.",
)
async def get_market_cap(store: SheetsStore = Depends(get_store)):
    sample = await get_latest_sample(store)
    if sample is None:
        logger.warning("Market cap requested but the store holds no samples.")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No data found.")
    return MarketCapResponse(market_cap=sample.market_cap)


@router.get(
    "/backfill-marketcap",
    response_class=PlainTextResponse,
    summary="Manually trigger market cap recompute",
)
async def trigger_market_cap_backfill(store: SheetsStore = Depends(get_store)):
    logger.info("Manual market cap recompute triggered.")
    changed = await recompute_market_caps(store)
    return f"Market cap backfill completed. Updated {changed} rows."
