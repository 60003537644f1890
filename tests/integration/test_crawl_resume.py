# ============================================================================
# File: tests/integration/test_crawl_resume.py
# Description: Pause, crash and category failure recovery
# ============================================================================
"""
Integration tests for interrupted crawls: rate limiting, crashes and
empty or failing category listings
"""

import httpx
import pytest
from sqlalchemy import select
from unittest.mock import AsyncMock, patch
from core.exceptions import CrawlAbortedError, CrawlerException, RecordStoreError
from crawler.checkpoint import CheckpointStore
from crawler.records import ProductRecordStore
from models.base import CategoryState, CrawlStatus
from models.checkpoint import CrawlCheckpoint
from models.crawl_run import CrawlRun


def stubs(*ids):
    return [{"id": product_id, "display_name": f"Product {product_id}"} for product_id in ids]


def details(*ids):
    return {product_id: {"id": product_id, "ean": f"84{product_id}"} for product_id in ids}


class TestRateLimit:

    @pytest.mark.asyncio
    async def test_pause_then_resume_at_next_product(self, db_session, make_orchestrator, catalog, events, fake_sleep):
        catalog.categories = {1: stubs("a", "b", "c")}
        catalog.details = details("a", "b", "c")
        catalog.queue("products/b/", 429)

        result = await make_orchestrator(INCLUDE_FULL_PRODUCT=True).run()

        assert result["status"] == "success"
        assert result["rate_limit_pauses"] == 1
        assert result["products_created"] == 3
        assert fake_sleep.calls == [300]
        assert events.named("import.paused") == [(300,)]
        assert ("b", 1) in events.named("import.continue.product")
        # completed work is not redone after the pause
        assert len(catalog.requested("products/a/")) == 1
        assert len(catalog.requested("categories/1/")) == 1
        assert len(catalog.requested("products/b/")) == 2

    @pytest.mark.asyncio
    async def test_rate_limited_listing_is_retried(self, db_session, make_orchestrator, catalog, fake_sleep):
        catalog.categories = {1: stubs("a"), 2: stubs("b")}
        catalog.queue("categories/2/", 429)

        result = await make_orchestrator().run()

        assert result["products_created"] == 2
        assert len(catalog.requested("categories/")) == 1
        assert len(catalog.requested("categories/1/")) == 1
        assert len(catalog.requested("categories/2/")) == 2

    @pytest.mark.asyncio
    async def test_retry_after_longer_than_backoff_is_honoured(self, make_orchestrator, catalog, fake_sleep):
        catalog.categories = {1: stubs("a")}
        catalog.queue("categories/1/", httpx.Response(429, headers={"Retry-After": "600"}))

        await make_orchestrator().run()

        assert fake_sleep.calls == [600]

    @pytest.mark.asyncio
    async def test_retry_after_shorter_than_backoff_is_ignored(self, make_orchestrator, catalog, fake_sleep):
        catalog.categories = {1: stubs("a")}
        catalog.queue("categories/1/", httpx.Response(429, headers={"Retry-After": "5"}))

        await make_orchestrator().run()

        assert fake_sleep.calls == [300]

    @pytest.mark.asyncio
    async def test_exhausted_pauses_fail_and_keep_checkpoint(self, db_session, make_orchestrator, catalog, fake_sleep):
        catalog.categories = {1: stubs("a")}
        catalog.queue("categories/1/", 429)

        result = await make_orchestrator(MAX_RATE_LIMIT_PAUSES=0).run()

        assert result["status"] == "failed"
        assert result["error_message"] == "Rate limit pauses exhausted"
        assert fake_sleep.calls == []

        checkpoint = await CheckpointStore(db_session).read("svq1")
        assert checkpoint[1].state is CategoryState.UNLISTED

        # the next run picks up where this one stopped
        resumed = await make_orchestrator().run()
        assert resumed["status"] == "success"
        assert resumed["products_created"] == 1
        assert len(catalog.requested("categories/")) == 1


class TestCrash:

    @pytest.mark.asyncio
    async def test_crash_resumes_at_unsaved_product(self, db_session, make_orchestrator, catalog, events):
        catalog.categories = {1: stubs("p1", "p2", "p3")}
        catalog.details = details("p1", "p2", "p3")
        catalog.queue("products/p3/", RuntimeError("process killed"))

        with pytest.raises(CrawlerException) as exc_info:
            await make_orchestrator(INCLUDE_FULL_PRODUCT=True).run()

        assert isinstance(exc_info.value.original_exception, RuntimeError)
        run = (await db_session.execute(select(CrawlRun))).scalar_one()
        assert run.status == CrawlStatus.FAILED
        assert run.error_message == "process killed"
        assert run.products_created == 2

        records = ProductRecordStore(db_session)
        assert await records.exists("svq1", "p1")
        assert await records.exists("svq1", "p2")
        assert not await records.exists("svq1", "p3")

        checkpoint = await CheckpointStore(db_session).read("svq1")
        assert checkpoint[1].products == {"2": stubs("p3")[0]}

        result = await make_orchestrator(INCLUDE_FULL_PRODUCT=True).run()

        assert result["products_reviewed"] == 1
        assert result["products_created"] == 1
        assert ("p3", 1) in events.named("import.continue.product")
        assert len(catalog.requested("categories/")) == 1
        assert len(catalog.requested("categories/1/")) == 1
        assert len(catalog.requested("products/p1/")) == 1
        assert await CheckpointStore(db_session).read("svq1") == {}

    @pytest.mark.asyncio
    async def test_listed_empty_category_is_not_listed_again(self, db_session, make_orchestrator, catalog):
        store = CheckpointStore(db_session)
        await store.seed_categories("svq1", [1, 2])
        await store.set_category_products("svq1", 1, [])
        catalog.categories = {1: stubs("a"), 2: stubs("b")}

        result = await make_orchestrator().run()

        assert result["products_created"] == 1
        assert catalog.requested("categories/1/") == []
        assert catalog.requested("categories/") == []


    @pytest.mark.asyncio
    async def test_storage_failure_closes_run_as_failed(self, db_session, make_orchestrator, catalog):
        catalog.categories = {1: stubs("a", "b")}

        with patch.object(ProductRecordStore, "save", AsyncMock(side_effect=RecordStoreError("disk full"))):
            with pytest.raises(RecordStoreError):
                await make_orchestrator().run()

        run = (await db_session.execute(select(CrawlRun))).scalar_one()
        assert run.status == CrawlStatus.FAILED
        assert run.error_message == "disk full"
        assert run.completed_at is not None

        row = (await db_session.execute(select(CrawlCheckpoint))).scalar_one()
        assert row.status == CrawlStatus.FAILED
        assert row.last_failure_at is not None

        # nothing was saved, so the next run starts at the first product
        checkpoint = await CheckpointStore(db_session).read("svq1")
        assert list(checkpoint[1].products) == ["0", "1"]


class TestCategoryFailures:

    @pytest.mark.asyncio
    async def test_empty_category_is_skipped(self, db_session, make_orchestrator, catalog, events):
        catalog.categories = {1: [], 2: stubs("b")}

        result = await make_orchestrator().run()

        assert result["status"] == "success"
        assert result["products_created"] == 1
        assert events.named("category.empty") == [(1,)]
        assert await CheckpointStore(db_session).read("svq1") == {}

    @pytest.mark.asyncio
    async def test_empty_category_aborts_when_configured(self, db_session, make_orchestrator, catalog, events):
        catalog.categories = {1: [], 2: stubs("b")}

        with pytest.raises(CrawlAbortedError) as exc_info:
            await make_orchestrator(EMPTY_CATEGORY_POLICY="abort").run()

        assert exc_info.value.context["category_id"] == 1
        assert events.named("import.aborted") == [(1,)]
        assert list(await CheckpointStore(db_session).read("svq1")) == [1, 2]

        run = (await db_session.execute(select(CrawlRun))).scalar_one()
        assert run.status == CrawlStatus.ABORTED

    @pytest.mark.asyncio
    async def test_failing_category_listing_is_skipped(self, db_session, make_orchestrator, catalog, events):
        catalog.categories = {1: stubs("a"), 2: stubs("b")}
        catalog.queue("categories/1/", 500)

        result = await make_orchestrator().run()

        assert result["status"] == "success"
        assert result["products_created"] == 1
        assert not await ProductRecordStore(db_session).exists("svq1", "a")
        assert any("HTTP 500" in args[0] for args in events.named("error"))

    @pytest.mark.asyncio
    async def test_unavailable_categories_fail_the_run(self, db_session, make_orchestrator, catalog):
        catalog.categories = {1: stubs("a")}
        catalog.queue("categories/", 500)

        result = await make_orchestrator().run()

        assert result["status"] == "failed"
        assert result["error_message"] == "Categories unavailable"
        assert await CheckpointStore(db_session).read("svq1") == {}

    @pytest.mark.asyncio
    async def test_empty_taxonomy_fails_the_run(self, make_orchestrator, catalog, events):
        result = await make_orchestrator().run()

        assert result["status"] == "failed"
        assert ("Category listing is empty",) in events.named("error")
