import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from core.database import build_session_maker
from core.exceptions import CrawlerException
from crawler.client import CatalogClient
from crawler.orchestrator import CrawlContext, CrawlOrchestrator

logger = logging.getLogger(__name__)


class CrawlScheduler:
    """Run the crawl of the configured warehouse on a fixed interval."""

    def __init__(self, warehouse: str = None, interval_minutes: int = None):
        self.warehouse = warehouse or settings.WAREHOUSE
        self.interval_minutes = interval_minutes or settings.CRAWL_INTERVAL_MINUTES
        self.scheduler = AsyncIOScheduler()
        self.engine, self.SessionLocal = build_session_maker()

    async def run_crawl_job(self):
        """Job to run one crawl of the warehouse"""
        logger.info(f"Scheduler: Starting crawl of {self.warehouse}")
        async with self.SessionLocal() as session:
            try:
                async with CatalogClient(warehouse=self.warehouse) as client:
                    orchestrator = CrawlOrchestrator(session, client, CrawlContext())
                    result = await orchestrator.run()
                logger.info(f"Scheduler: Crawl finished with status {result['status']}")
            except CrawlerException as e:
                logger.error(f"Scheduler: Crawl failed - {e}")

    def start(self, run_now: bool = False):
        """Start the scheduler"""
        job_options = {"next_run_time": datetime.now()} if run_now else {}
        # max_instances=1: one crawl owns the warehouse checkpoint at a time
        self.scheduler.add_job(
            self.run_crawl_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=f"crawl_{self.warehouse}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **job_options
        )
        self.scheduler.start()
        logger.info(f"Crawl scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("Crawl scheduler stopped")
