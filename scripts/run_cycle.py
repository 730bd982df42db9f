#!/usr/bin/env python3
"""
Run PulseWatch pipeline stages once from the command line.

Useful for cron-less setups and for debugging a single profile or source
without starting the API server.

USAGE:
    # One full monitoring cycle (due profiles only)
    python scripts/run_cycle.py

    # Discovery for one profile
    python scripts/run_cycle.py --discover 12

    # Scrape one source and wait for its analysis
    python scripts/run_cycle.py --scrape 34

    # Re-queue analysis for content that never got an insight
    python scripts/run_cycle.py --backfill
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from pulsewatch.archivist import close_db, init_db
from pulsewatch.common.errors import PipelineError
from pulsewatch.config import settings
from pulsewatch.pipeline import build_pipeline
from pulsewatch.scheduler.jobs import backfill_unprocessed

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def run(args) -> int:
    if settings.storage_backend == "sql":
        await init_db()

    pipeline = build_pipeline()
    await pipeline.start()
    try:
        if args.discover is not None:
            result = await pipeline.discoverer.discover(args.discover)
            logger.info(result.message)
            for source in result.added_sources:
                logger.info(f"  + {source.url} ({source.relevance_score:.2f})")
        elif args.scrape is not None:
            result = await pipeline.scraper.scrape(args.scrape)
            logger.info(f"{result.message} (content #{result.content_id})")
        elif args.backfill:
            queued = await backfill_unprocessed(pipeline)
            logger.info(f"Queued {queued} content rows for analysis")
        else:
            report = await pipeline.scheduler.run_cycle()
            logger.info(report.message)
            if not report.success:
                return 1

        # Let queued analysis finish before exiting
        await pipeline.queue.join()
        logger.info(f"Task queue: {pipeline.queue.stats}")
        return 0
    except PipelineError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    finally:
        await pipeline.close()
        if settings.storage_backend == "sql":
            await close_db()


def main():
    parser = argparse.ArgumentParser(description="Run PulseWatch pipeline stages once")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--discover", type=int, metavar="PROFILE_ID", help="Discover sources for one profile")
    group.add_argument("--scrape", type=int, metavar="SOURCE_ID", help="Scrape one source")
    group.add_argument("--backfill", action="store_true", help="Queue analysis for unprocessed content")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
