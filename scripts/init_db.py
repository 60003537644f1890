"""
Create the crawler tables (checkpoints, product records, identities, runs)
"""

import argparse
import asyncio
import logging
import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.database import build_session_maker
from core.logging import setup_logging
# Importing the package registers every model on Base.metadata
from models import Base

logger = logging.getLogger(__name__)


async def init_database(drop: bool = False):
    engine, _ = build_session_maker()

    try:
        async with engine.begin() as conn:
            if drop:
                logger.warning("Dropping existing tables")
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create the catalog mirror tables")
    parser.add_argument("--drop", action="store_true", help="Drop every table first (loses all history)")
    args = parser.parse_args()

    setup_logging()
    asyncio.run(init_database(drop=args.drop))
