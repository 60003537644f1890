# ============================================================================
# File: crawler/orchestrator.py
# Description: Resumable crawl state machine
# ============================================================================
"""
Crawl orchestrator.

Drives one warehouse through:

    ColdStart -> SeedingCategories -> DrainingCategory -> DrainingProduct -> Done

The checkpoint is the only retry queue. A rate-limited call suspends the
pass where it is, the orchestrator sleeps the backoff, and the next pass
starts again from the checkpoint, which already reflects every product
completed so far.
"""

import asyncio
import enum
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from core.config import EmptyCategoryPolicy, Settings, settings as default_settings
from core.events import EventSink, LoggingEventSink
from core.exceptions import (
    CrawlAbortedError,
    CrawlerException,
    DataAbsentError,
    RateLimitError,
    RemoteError,
)
from crawler.checkpoint import CategoryProgress, CheckpointStore
from crawler.client import CallResult, CatalogClient
from crawler.identity import IdentityMap
from crawler.merge import field_value, merge_product, new_record, sort_product
from crawler.records import ProductRecordStore
from models.base import CategoryState, CrawlStatus
from models.crawl_run import CrawlRun
import logging

logger = logging.getLogger(__name__)


class PassOutcome(str, enum.Enum):
    """How a pass over the checkpoint ended"""
    CONTINUE = "continue"
    DONE = "done"
    RATE_LIMITED = "rate_limited"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass
class CrawlStats:
    """Running counters of one crawl invocation."""
    reviewed: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    rate_limit_pauses: int = 0


@dataclass
class CrawlContext:
    """
    Everything the orchestrator needs besides storage and the client.

    ``clock`` returns epoch seconds for field timestamps; ``sleep`` is the
    blocking wait used for rate-limit backoff.
    """
    settings: Settings = field(default_factory=lambda: default_settings)
    events: EventSink = field(default_factory=LoggingEventSink)
    clock: Callable[[], int] = field(default=lambda: int(time.time()))
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    stats: CrawlStats = field(default_factory=CrawlStats)
    started: float = field(default_factory=time.monotonic)

    def elapsed(self) -> int:
        return round(time.monotonic() - self.started)


class CrawlOrchestrator:
    """
    Resumable crawl of one warehouse.

    Responsibilities:
    - Seed the checkpoint on a cold start
    - Drain categories and products in checkpoint order
    - Merge every product into its versioned record
    - Keep the identity map and the checkpoint in step with saved records
    - Pause and resume on rate limiting
    """

    def __init__(
        self,
        db_session: AsyncSession,
        client: CatalogClient,
        context: Optional[CrawlContext] = None,
        warehouse: Optional[str] = None
    ):
        self.db = db_session
        self.client = client
        self.context = context or CrawlContext()
        self.settings = self.context.settings
        self.events = self.context.events
        self.stats = self.context.stats
        self.warehouse = warehouse or client.warehouse or self.settings.WAREHOUSE

        self.client.set_warehouse(self.warehouse)

        self.checkpoints = CheckpointStore(db_session)
        self.records = ProductRecordStore(db_session)
        self.identities = IdentityMap(db_session)
        self.crawl_run: Optional[CrawlRun] = None
        self._last_rate_limit: Optional[RateLimitError] = None
        self._aborted_category: Optional[int] = None

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def run(self) -> Dict[str, Any]:
        """
        Crawl until the checkpoint is drained.

        Returns:
            Dictionary with run statistics

        Raises:
            CrawlAbortedError: If the empty-category policy is ``abort`` and
                a category listing came back empty
            CrawlerException: On storage or unexpected errors, after the run
                is recorded as failed
        """
        await self._start_run()

        try:
            await self.identities.load()
            return await self._crawl()

        except CrawlAbortedError:
            raise

        except CrawlerException as e:
            # Known crawler errors - log with context and close the run
            logger.error(
                f"Crawl of {self.warehouse} failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            await self._fail(e.message)
            raise

        except Exception as e:
            logger.exception(f"Unexpected error in crawl of {self.warehouse}")
            await self._fail(str(e))
            raise CrawlerException(
                "Unexpected error in crawl",
                context={
                    "warehouse": self.warehouse,
                    "products_reviewed": self.stats.reviewed,
                    "products_created": self.stats.created,
                    "products_updated": self.stats.updated,
                },
                original_exception=e
            )

    async def _crawl(self) -> Dict[str, Any]:
        while True:
            outcome = await self._run_pass()

            if outcome is PassOutcome.RATE_LIMITED:
                if not await self._pause():
                    return await self._finish(
                        CrawlStatus.FAILED, "Rate limit pauses exhausted"
                    )
                continue

            if outcome is PassOutcome.ABORTED:
                category_id = self._aborted_category
                await self._finish(
                    CrawlStatus.ABORTED, f"Category {category_id} returned no products"
                )
                raise CrawlAbortedError(
                    "Crawl aborted on empty category listing",
                    context={"warehouse": self.warehouse, "category_id": category_id}
                )

            if outcome is PassOutcome.FAILED:
                return await self._finish(CrawlStatus.FAILED, "Categories unavailable")

            status = CrawlStatus.SUCCESS if self.stats.failed == 0 else CrawlStatus.PARTIAL
            return await self._finish(status)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _run_pass(self) -> PassOutcome:
        checkpoint = await self.checkpoints.read(self.warehouse)
        self._announce(checkpoint)

        # ColdStart -> SeedingCategories
        if not checkpoint:
            result = await self._call(self.client.list_categories())
            if result.rate_limited:
                return PassOutcome.RATE_LIMITED
            if not result.value:
                if result.ok:
                    self._report(DataAbsentError(
                        "Category listing is empty",
                        context={"warehouse": self.warehouse}
                    ))
                return PassOutcome.FAILED

            await self.checkpoints.seed_categories(self.warehouse, result.value.keys())
            checkpoint = await self.checkpoints.read(self.warehouse)

        for category_id, progress in checkpoint.items():
            outcome = await self._drain_category(category_id, progress)
            if outcome is not PassOutcome.CONTINUE:
                return outcome

        return PassOutcome.DONE

    async def _drain_category(self, category_id: int, progress: CategoryProgress) -> PassOutcome:
        if not progress.pending:
            await self.checkpoints.remove_category(self.warehouse, category_id)
            return PassOutcome.CONTINUE

        stubs = progress.products

        if progress.state is CategoryState.UNLISTED:
            result = await self._call(self.client.list_category_products(category_id))
            if result.rate_limited:
                return PassOutcome.RATE_LIMITED

            if not result.value:
                if result.ok:
                    self.events.error("category.empty", category_id)
                if self.settings.EMPTY_CATEGORY_POLICY == EmptyCategoryPolicy.ABORT:
                    self._aborted_category = category_id
                    self.events.error("import.aborted", category_id)
                    return PassOutcome.ABORTED
                await self.checkpoints.remove_category(self.warehouse, category_id)
                return PassOutcome.CONTINUE

            stubs = await self.checkpoints.set_category_products(
                self.warehouse, category_id, result.value
            )

        for stub_key, stub in stubs.items():
            outcome = await self._drain_product(category_id, stub_key, stub)
            if outcome is not PassOutcome.CONTINUE:
                return outcome

        await self.checkpoints.remove_category(self.warehouse, category_id)
        return PassOutcome.CONTINUE

    async def _drain_product(self, category_id: int, stub_key: str, stub: Dict[str, Any]) -> PassOutcome:
        if not isinstance(stub, dict) or stub.get("id") in (None, ""):
            self.events.error("product.invalid", stub_key, category_id)
            self.stats.failed += 1
            await self.checkpoints.remove_product_stub(self.warehouse, category_id, stub_key)
            return PassOutcome.CONTINUE

        product_id = str(stub["id"])
        document = await self.records.get(self.warehouse, product_id)
        is_new = document is None

        payload = dict(stub)
        if self._wants_detail(document):
            result = await self._call(self.client.fetch_product_detail(product_id))
            if result.rate_limited:
                return PassOutcome.RATE_LIMITED
            if result.value:
                payload.update(result.value)
            else:
                self.events.error("product.detail.error", product_id)

        self.stats.reviewed += 1
        now = self.context.clock()

        if is_new:
            document = new_record(now)

        merged = merge_product(document["product"], payload, now)
        for path in merged.changed:
            self.events.change("product.changed", path, product_id)

        document["product"] = sort_product(document["product"])

        if is_new:
            location = await self.records.save(self.warehouse, product_id, document)
            self.stats.created += 1
            self.events.create("product.created", product_id, location)
        elif merged.modified:
            document["stats"]["updated_at"] = now
            document["stats"]["updates"] += 1
            location = await self.records.save(self.warehouse, product_id, document)
            self.stats.updated += 1
            self.events.update("product.updated", product_id, location)
        else:
            self.stats.unchanged += 1
            self.events.api("product.unchanged", product_id)

        await self.identities.upsert(
            product_id=product_id,
            ean=field_value(document["product"], "ean"),
            slug=field_value(document["product"], "slug"),
            name=field_value(document["product"], "display_name"),
            warehouse=self.warehouse
        )
        await self.checkpoints.remove_product_stub(self.warehouse, category_id, stub_key)
        return PassOutcome.CONTINUE

    def _wants_detail(self, document: Optional[Dict[str, Any]]) -> bool:
        if self.settings.REIMPORT_FULL_PRODUCT:
            return True
        if document is None:
            return self.settings.INCLUDE_FULL_PRODUCT
        if self.settings.REFETCH_MISSING_EAN:
            return field_value(document["product"], "ean") in (None, "")
        return False

    # ------------------------------------------------------------------
    # Remote calls and rate limiting
    # ------------------------------------------------------------------

    async def _call(self, awaitable: Awaitable[Any]) -> CallResult:
        """Await a client call and fold its failure into a CallResult."""
        try:
            value = await awaitable
        except RateLimitError as e:
            self._last_rate_limit = e
            return CallResult(error=e)
        except RemoteError as e:
            self._report(e)
            return CallResult(error=e)
        return CallResult(value=value)

    def _report(self, error: RemoteError) -> None:
        logger.debug("Remote call failed", extra={"error_context": error.to_dict()})
        self.events.error("error", error.message)

    async def _pause(self) -> bool:
        """Sleep the backoff. False once the configured pause budget is spent."""
        self.stats.rate_limit_pauses += 1
        limit = self.settings.MAX_RATE_LIMIT_PAUSES
        self.events.error("requests.exceeded")

        if limit is not None and self.stats.rate_limit_pauses > limit:
            return False

        delay = self.settings.RATE_LIMIT_BACKOFF_SECONDS
        retry_after = self._last_rate_limit.retry_after if self._last_rate_limit else None
        if retry_after and retry_after > delay:
            delay = retry_after

        self.events.error("import.paused", round(delay))
        self._show_stats()
        await self.context.sleep(delay)
        return True

    # ------------------------------------------------------------------
    # Reporting and run bookkeeping
    # ------------------------------------------------------------------

    def _announce(self, checkpoint: Dict[int, CategoryProgress]) -> None:
        if self.warehouse:
            self.events.info("warehouse.used", self.warehouse)

        if not checkpoint:
            self.events.info("import.start")
            return

        category_id, progress = next(iter(checkpoint.items()))
        first_stub = next(iter(progress.products.values()), None)
        if first_stub and first_stub.get("id") is not None:
            self.events.info("import.continue.product", first_stub["id"], category_id)
        else:
            self.events.info("import.continue.category", category_id)

    def _show_stats(self) -> None:
        self.events.info("requests.submitted", self.client.done_requests)
        self.events.info("import.stats", self.stats.reviewed, self.stats.updated, self.stats.created)
        self.events.info("running.time", self.context.elapsed())

    async def _start_run(self) -> None:
        self.crawl_run = CrawlRun(
            run_id=uuid.uuid4(),
            warehouse=self.warehouse,
            status=CrawlStatus.RUNNING,
            started_at=datetime.utcnow(),
            config_snapshot={
                "request_delay_seconds": self.client.delay,
                "rate_limit_backoff_seconds": self.settings.RATE_LIMIT_BACKOFF_SECONDS,
                "include_full_product": self.settings.INCLUDE_FULL_PRODUCT,
                "reimport_full_product": self.settings.REIMPORT_FULL_PRODUCT,
                "refetch_missing_ean": self.settings.REFETCH_MISSING_EAN,
                "empty_category_policy": EmptyCategoryPolicy(self.settings.EMPTY_CATEGORY_POLICY).value,
            }
        )
        self.db.add(self.crawl_run)
        await self.db.commit()

    async def _fail(self, error_message: str) -> None:
        await self.db.rollback()
        # rollback expires every loaded row
        await self.db.refresh(self.crawl_run)
        await self._finish(CrawlStatus.FAILED, error_message)

    async def _finish(self, status: CrawlStatus, error_message: Optional[str] = None) -> Dict[str, Any]:
        self._show_stats()

        run = self.crawl_run
        run.status = status
        run.completed_at = datetime.utcnow()
        run.duration_seconds = (run.completed_at - run.started_at).total_seconds()
        run.products_reviewed = self.stats.reviewed
        run.products_created = self.stats.created
        run.products_updated = self.stats.updated
        run.products_unchanged = self.stats.unchanged
        run.products_failed = self.stats.failed
        run.requests_submitted = self.client.done_requests
        run.rate_limit_pauses = self.stats.rate_limit_pauses
        run.error_message = error_message
        await self.db.commit()

        await self.checkpoints.mark(self.warehouse, status, error_message)

        logger.info(
            f"Crawl of {self.warehouse} finished: {status.value} - "
            f"Reviewed: {self.stats.reviewed}, Created: {self.stats.created}, "
            f"Updated: {self.stats.updated}"
        )

        return {
            "status": status.value,
            "warehouse": self.warehouse,
            "run_id": str(run.run_id),
            "products_reviewed": self.stats.reviewed,
            "products_created": self.stats.created,
            "products_updated": self.stats.updated,
            "products_unchanged": self.stats.unchanged,
            "products_failed": self.stats.failed,
            "requests_submitted": self.client.done_requests,
            "rate_limit_pauses": self.stats.rate_limit_pauses,
            "error_message": error_message,
        }
