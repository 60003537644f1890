"""
Script to crawl the remote catalog for one warehouse
"""

import argparse
import asyncio
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.database import build_session_maker
from core.exceptions import CrawlAbortedError, CrawlerException
from core.logging import setup_logging
from crawler.checkpoint import CheckpointStore
from crawler.client import CatalogClient
from crawler.orchestrator import CrawlContext, CrawlOrchestrator
from crawler.scheduler import CrawlScheduler

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Mirror the remote catalog into the local database")
    parser.add_argument("--warehouse", default=settings.WAREHOUSE, help="Warehouse code (default: %(default)s)")
    parser.add_argument("--reset", action="store_true", help="Discard the checkpoint and start a fresh pass")
    parser.add_argument("--schedule", action="store_true", help="Keep running and crawl every CRAWL_INTERVAL_MINUTES")
    return parser.parse_args(argv)


async def run_crawl(warehouse: str, reset: bool = False) -> int:
    """Run one crawl; returns the process exit code"""

    engine, AsyncSessionLocal = build_session_maker()

    try:
        async with AsyncSessionLocal() as session:
            if reset:
                await CheckpointStore(session).clear(warehouse)
                logger.info(f"Checkpoint for {warehouse} cleared")

            async with CatalogClient(warehouse=warehouse) as client:
                result = await CrawlOrchestrator(session, client, CrawlContext()).run()

            logger.info(
                f"Crawl completed for {warehouse}: status={result['status']}, "
                f"created={result['products_created']}, updated={result['products_updated']}"
            )
            return 0 if result["status"] in ("success", "partial") else 1

    except CrawlAbortedError as e:
        logger.error(f"Crawl aborted: {e.message}")
        return 1
    except CrawlerException as e:
        logger.error(f"Crawl failed: {e.message}")
        return 1
    finally:
        await engine.dispose()


async def run_scheduled(warehouse: str):
    scheduler = CrawlScheduler(warehouse=warehouse)
    scheduler.start(run_now=True)
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()


if __name__ == "__main__":
    args = parse_args()
    setup_logging()

    if args.schedule:
        asyncio.run(run_scheduled(args.warehouse))
    else:
        sys.exit(asyncio.run(run_crawl(args.warehouse, reset=args.reset)))
