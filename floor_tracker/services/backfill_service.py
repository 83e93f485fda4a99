"""
This service recomputes the derived market cap column of stored samples,
either on a timer or on demand from the API.

Two policies are supported:

* ``sparse`` fills only rows that have no market cap yet. Historical values
  stay frozen at the reference price that was current when they were filled.
* ``full`` overwrites every row with a market cap computed from the freshly
  fetched reference price. This rewrites history.
"""
import asyncio
import logging
from enum import Enum
from typing import Any, List, Optional

from floor_tracker.core.config import settings
from floor_tracker.core.exceptions import SampleValidationError, UpstreamFetchError
from floor_tracker.core.sheets import SheetsStore
from floor_tracker.crud.price_sample import row_to_sample, sample_to_row
from floor_tracker.services.ingestion_service import compute_market_cap, fetch_reference_price

logger = logging.getLogger(__name__)


class RecomputePolicy(str, Enum):
    SPARSE = "sparse"
    FULL = "full"


async def recompute_market_caps(store: SheetsStore, policy: Optional[RecomputePolicy] = None) -> int:
    """
    Recomputes market caps for stored rows and writes the row set back.
    Returns the number of rows whose market cap was written.

    Raises UpstreamFetchError when the reference price is unavailable and
    StoreError when the store cannot be read or written.
    """
    policy = RecomputePolicy(policy or settings.RECOMPUTE_POLICY)
    logger.info(f"Starting market cap recompute ({policy.value}).")

    rows = await store.read()
    if not rows:
        logger.info("Store is empty, nothing to recompute.")
        return 0

    reference_price = await fetch_reference_price()
    if reference_price is None:
        raise UpstreamFetchError("Reference price unavailable, market cap recompute aborted")

    updated_rows: List[List[Any]] = []
    changed = 0
    for index, row in enumerate(rows):
        try:
            sample = row_to_sample(row)
        except SampleValidationError as e:
            logger.warning(f"Leaving malformed row {index} untouched: {e}")
            updated_rows.append(list(row))
            continue

        if policy is RecomputePolicy.SPARSE and sample.market_cap is not None:
            updated_rows.append(list(row))
            continue

        sample.market_cap = compute_market_cap(sample.floor_price, reference_price)
        updated_rows.append(sample_to_row(sample))
        changed += 1
        logger.debug(f"Row {index} ({sample.timestamp}): market cap {sample.market_cap}")

    if changed:
        await store.update(updated_rows)
        logger.info(f"Market cap recompute ({policy.value}) updated {changed} of {len(rows)} rows.")
    else:
        logger.info("No rows needed a market cap.")
    return changed


async def run_auto_backfill_loop(store: SheetsStore, interval_seconds: int = 3600, initial_delay_seconds: int = 60):
    """Runs the recompute pass periodically in a loop."""
    await asyncio.sleep(initial_delay_seconds)
    while True:
        try:
            await recompute_market_caps(store)
        except Exception as e:
            logger.error(f"Market cap recompute failed: {e}", exc_info=True)
        logger.info(f"Auto-backfill loop finished. Sleeping for {interval_seconds} seconds.")
        await asyncio.sleep(interval_seconds)
