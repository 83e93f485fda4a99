"""Read/append helpers for price samples kept in the spreadsheet store."""
from datetime import datetime, timedelta, timezone
import math
from typing import Any, Dict, List, Optional, Sequence
import logging

from pydantic import ValidationError

from floor_tracker.core.exceptions import SampleValidationError
from floor_tracker.core.sheets import SheetsStore
from floor_tracker.schemas.price_sample import PriceSample

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

RANGE_WINDOWS: Dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "3h": timedelta(hours=3),
    "1d": timedelta(days=1),
    "7d": timedelta(days=7),
    "1m": timedelta(days=30),
}


def resolve_cutoff(range_key: Optional[str], now: datetime) -> datetime:
    """Returns the earliest instant included by a range. Unknown ranges mean all history."""
    window = RANGE_WINDOWS.get(range_key or "all")
    if window is None:
        if range_key not in (None, "all"):
            logger.debug(f"Unrecognized range '{range_key}', falling back to all history.")
        return EPOCH
    return now - window


def _optional_float(value: Any) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) and number > 0 else None


def row_to_sample(row: Sequence[Any]) -> PriceSample:
    """Parses a [timestamp, floorPrice, marketCap?] row."""
    if len(row) < 2:
        raise SampleValidationError(f"Row has {len(row)} cells, expected at least 2: {row!r}")
    timestamp, floor_price = row[0], row[1]
    if not isinstance(timestamp, str):
        raise SampleValidationError(f"Timestamp is not a string: {timestamp!r}")
    try:
        return PriceSample(
            timestamp=timestamp,
            floor_price=float(floor_price),
            market_cap=_optional_float(row[2]) if len(row) > 2 else None,
        )
    except (TypeError, ValueError, ValidationError) as e:
        raise SampleValidationError(f"Malformed row {row!r}: {e}") from e


def sample_to_row(sample: PriceSample) -> List[Any]:
    row: List[Any] = [sample.timestamp, sample.floor_price]
    if sample.market_cap is not None:
        row.append(sample.market_cap)
    return row


def parse_rows(rows: Sequence[Sequence[Any]]) -> List[PriceSample]:
    """Parses rows in store order, skipping the ones that cannot be parsed."""
    samples = []
    for index, row in enumerate(rows):
        try:
            samples.append(row_to_sample(row))
        except SampleValidationError as e:
            logger.warning(f"Skipping row {index}: {e}")
    return samples


def filter_samples_since(samples: Sequence[PriceSample], cutoff: datetime) -> List[PriceSample]:
    """Keeps samples recorded at or after the cutoff, preserving order."""
    return [s for s in samples if s.recorded_at >= cutoff]


async def create_price_sample(store: SheetsStore, sample: PriceSample) -> PriceSample:
    """Append a sample as a new row."""
    await store.append([sample_to_row(sample)])
    return sample


async def get_price_history(store: SheetsStore, cutoff: datetime) -> List[PriceSample]:
    """Get samples at or after the cutoff, in append order."""
    rows = await store.read()
    return filter_samples_since(parse_rows(rows), cutoff)


async def get_latest_sample(store: SheetsStore) -> Optional[PriceSample]:
    """Get the most recently appended parseable sample, or None for an empty store."""
    rows = await store.read()
    for row in reversed(rows):
        try:
            return row_to_sample(row)
        except SampleValidationError as e:
            logger.warning(f"Ignoring malformed trailing row while looking up latest sample: {e}")
    return None
