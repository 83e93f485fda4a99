import argparse
import asyncio
import sys
import os
import logging

# Add parent directory to path to allow imports from `floor_tracker`
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from floor_tracker.core.config import settings
from floor_tracker.core.exceptions import TrackerError
from floor_tracker.core.logging_config import setup_logging
from floor_tracker.core.sheets import build_store
from floor_tracker.services.backfill_service import RecomputePolicy, recompute_market_caps

# Set up logging for the script
setup_logging()
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Fill in or recompute the market cap column of the price sheet")
    p.add_argument(
        "--policy",
        choices=[policy.value for policy in RecomputePolicy],
        default=settings.RECOMPUTE_POLICY,
        help="sparse fills missing market caps only, full rewrites every row",
    )
    return p.parse_args(argv)


async def run_backfill(policy: RecomputePolicy) -> int:
    store = build_store(settings)
    try:
        return await recompute_market_caps(store, policy)
    finally:
        await store.aclose()


def main(argv=None) -> int:
    args = parse_args(argv)
    logger.info(f"Starting one-off market cap backfill ({args.policy}).")
    try:
        changed = asyncio.run(run_backfill(RecomputePolicy(args.policy)))
    except TrackerError as e:
        logger.critical(f"Market cap backfill failed: {e}", exc_info=True)
        return 1
    logger.info(f"Market cap backfill completed. Updated {changed} rows.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
