import httpx
import asyncio
import math
import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional
from aiolimiter import AsyncLimiter
import logging

from floor_tracker.core.config import settings
from floor_tracker.core.exceptions import StoreError, UpstreamFetchError
from floor_tracker.core.sheets import SheetsStore
from floor_tracker.crud.price_sample import create_price_sample
from floor_tracker.schemas.price_sample import PriceSample

logger = logging.getLogger(__name__)

# Shared by the sampler and the recompute pass; a manual backfill trigger
# should not be able to flood the reference price provider.
rate_limiter = AsyncLimiter(settings.REFERENCE_RATE_LIMIT_PER_MINUTE, 60)


async def _get_json(url: str) -> Any:
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS) as client:
        try:
            response = await client.get(url)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise UpstreamFetchError(f"HTTP {e.response.status_code} from {url}") from e
        except httpx.RequestError as e:
            raise UpstreamFetchError(f"Network error calling {url}: {e}") from e
        except ValueError as e:
            raise UpstreamFetchError(f"Invalid JSON from {url}: {e}") from e


def _positive_number(value: Any, what: str) -> float:
    if isinstance(value, bool):
        raise UpstreamFetchError(f"{what} is not numeric: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise UpstreamFetchError(f"{what} is not numeric: {value!r}") from e
    if not math.isfinite(number):
        raise UpstreamFetchError(f"{what} is not finite: {number}")
    if not number > 0:
        raise UpstreamFetchError(f"{what} is not positive: {number}")
    return number


async def fetch_floor_price() -> Optional[float]:
    """Fetches the tracked asset's floor price from the marketplace index."""
    symbol = settings.ASSET_SYMBOL
    try:
        data = await _get_json(settings.MARKETPLACE_URL)
        if not isinstance(data, dict):
            raise UpstreamFetchError(f"Marketplace index is not an object: {type(data).__name__}")
        asset = data.get(symbol)
        if asset is None:
            logger.warning(f"Asset {symbol} not present in marketplace index.")
            return None
        if not isinstance(asset, dict):
            raise UpstreamFetchError(f"Entry for {symbol} is not an object: {asset!r}")
        floor_price = _positive_number(asset.get("floor_price"), f"{symbol} floor_price")
    except UpstreamFetchError as e:
        logger.error(f"Error fetching {symbol} floor price: {e}")
        return None
    logger.info(f"Fetched {symbol} floor price: {floor_price}")
    return floor_price


async def fetch_reference_price() -> Optional[float]:
    """Fetches the reference coin price used to convert floor price into market cap."""
    field = settings.REFERENCE_PRICE_FIELD
    try:
        async with rate_limiter:
            data = await _get_json(settings.REFERENCE_PRICE_URL)
        if not isinstance(data, dict):
            raise UpstreamFetchError(f"Reference price payload is not an object: {type(data).__name__}")
        price = _positive_number(data.get(field), f"reference '{field}'")
    except UpstreamFetchError as e:
        logger.error(f"Error fetching reference price: {e}")
        return None
    logger.info(f"Fetched reference price: {price}")
    return price


def compute_market_cap(floor_price: float, reference_price: float) -> float:
    """supply x floor price x reference price, rounded half-up to MARKET_CAP_DECIMALS places."""
    exact = (
        Decimal(str(settings.SUPPLY_CONSTANT))
        * Decimal(str(floor_price))
        * Decimal(str(reference_price))
    )
    quantum = Decimal(1).scaleb(-settings.MARKET_CAP_DECIMALS)
    return float(exact.quantize(quantum, rounding=ROUND_HALF_UP))


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


async def append_sample(store: SheetsStore, sample: PriceSample) -> None:
    """Appends one sample row. Not idempotent: a retried append can duplicate the row."""
    await create_price_sample(store, sample)
    logger.info(f"Stored sample {sample.timestamp}: floor price {sample.floor_price}, market cap {sample.market_cap}")


async def sample_once(store: SheetsStore) -> Optional[PriceSample]:
    """
    Runs one sampler tick: floor price, reference price, market cap, append.
    Returns the stored sample, or None when the tick was skipped.
    """
    floor_price = await fetch_floor_price()
    if floor_price is None:
        logger.info("Floor price unavailable, skipping this tick.")
        return None

    reference_price = await fetch_reference_price()
    if reference_price is None:
        logger.info("Reference price unavailable, skipping this tick.")
        return None

    sample = PriceSample(
        timestamp=utc_timestamp(),
        floor_price=floor_price,
        market_cap=compute_market_cap(floor_price, reference_price),
    )
    try:
        await append_sample(store, sample)
    except StoreError as e:
        logger.error(f"Failed to store sample {sample.timestamp}: {e}")
        return None
    return sample


async def start_ingestion_loop(store: SheetsStore, interval_seconds: int = 900):
    """
    Continuously samples the floor price every interval_seconds.
    """
    logger.info(f"Starting sampler loop for {settings.ASSET_SYMBOL} every {interval_seconds} seconds...")
    while True:
        started = time.monotonic()
        try:
            await sample_once(store)
        except Exception:
            logger.exception("Unexpected error in sampler tick.")

        sleep_duration = interval_seconds - (time.monotonic() - started)
        if sleep_duration < 0:
            logger.warning("Sampler tick took longer than interval. Starting next tick immediately.")
            sleep_duration = 0

        logger.debug(f"Next sample in {sleep_duration:.2f} seconds.")
        await asyncio.sleep(sleep_duration)
