"""
Checkpoint store: per-warehouse crawl progress.

The checkpoint is the retry queue. A category stays in it until every
product stub listed for it has been processed, and each stub is removed
the moment its product is saved, so a crash or a rate-limit pause resumes
at the next unprocessed stub.
"""

import copy
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import CheckpointError
from models.base import CategoryState, CrawlStatus
from models.checkpoint import CrawlCheckpoint
import logging

logger = logging.getLogger(__name__)


class CategoryProgress(BaseModel):
    """Progress of one category: its state and the stubs still to process."""
    state: CategoryState = CategoryState.UNLISTED
    position: int = 0
    products: Dict[str, Any] = Field(default_factory=dict)

    @property
    def pending(self) -> bool:
        """True if the category still has stubs to process or must be listed."""
        if self.state is CategoryState.UNLISTED:
            return True
        return self.state is CategoryState.LISTED and bool(self.products)


class CheckpointStore:
    """
    Read and rewrite checkpoint documents.

    Every mutation rewrites the whole document of the warehouse and commits.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _get_row(self, warehouse: str) -> Optional[CrawlCheckpoint]:
        result = await self.db.execute(
            select(CrawlCheckpoint).where(CrawlCheckpoint.warehouse == warehouse)
        )
        return result.scalar_one_or_none()

    async def _load_document(self, warehouse: str) -> Dict[str, Any]:
        row = await self._get_row(warehouse)
        if row is None or not row.categories:
            return {}
        return copy.deepcopy(row.categories)

    async def _write_document(self, warehouse: str, document: Dict[str, Any]) -> None:
        try:
            row = await self._get_row(warehouse)
            if row is None:
                row = CrawlCheckpoint(warehouse=warehouse, status=CrawlStatus.RUNNING)
                self.db.add(row)
            # Reassign so the JSON column is flagged dirty
            row.categories = document
            row.updated_at = datetime.utcnow()
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to rewrite checkpoint",
                context={"warehouse": warehouse, "operation": "write"},
                original_exception=e
            )

    async def read(self, warehouse: str) -> Dict[int, CategoryProgress]:
        """Checkpoint of ``warehouse`` in insertion order (empty if none)."""
        try:
            document = await self._load_document(warehouse)
        except Exception as e:
            raise CheckpointError(
                "Failed to read checkpoint",
                context={"warehouse": warehouse, "operation": "read"},
                original_exception=e
            )
        # JSONB does not keep key order; positions restore it
        ordered = sorted(document.items(), key=lambda item: item[1].get("position", 0))
        checkpoint = {}
        for category_id, entry in ordered:
            products = entry.get("products") or {}
            entry["products"] = {
                key: products[key] for key in sorted(products, key=_stub_order)
            }
            checkpoint[int(category_id)] = CategoryProgress(**entry)
        return checkpoint

    async def seed_categories(self, warehouse: str, category_ids: Iterable[int]) -> None:
        """Replace the warehouse checkpoint with fresh, unlisted categories."""
        document = {
            str(category_id): {"state": CategoryState.UNLISTED.value, "position": position, "products": {}}
            for position, category_id in enumerate(category_ids)
        }
        await self._write_document(warehouse, document)
        logger.info(f"Seeded checkpoint for {warehouse} with {len(document)} categories")

    async def set_category_products(
        self,
        warehouse: str,
        category_id: int,
        stubs: List[Dict[str, Any]]
    ) -> Dict[str, Dict[str, Any]]:
        """
        Store the listing of a category, keyed by listing position.

        Returns:
            The stubs as stored, in listing order
        """
        document = await self._load_document(warehouse)
        products = {str(index): stub for index, stub in enumerate(stubs)}
        position = document.get(str(category_id), {}).get("position", len(document))
        document[str(category_id)] = {
            "position": position,
            "state": CategoryState.LISTED.value if products else CategoryState.DRAINED.value,
            "products": products,
        }
        await self._write_document(warehouse, document)
        return products

    async def remove_category(self, warehouse: str, category_id: int) -> None:
        document = await self._load_document(warehouse)
        if document.pop(str(category_id), None) is not None:
            await self._write_document(warehouse, document)

    async def remove_product_stub(self, warehouse: str, category_id: int, stub_key: str) -> None:
        """Drop one processed stub; the category becomes drained with its last stub."""
        document = await self._load_document(warehouse)
        entry = document.get(str(category_id))
        if entry is None or stub_key not in entry.get("products", {}):
            return

        del entry["products"][stub_key]
        if not entry["products"]:
            entry["state"] = CategoryState.DRAINED.value
        await self._write_document(warehouse, document)

    async def clear(self, warehouse: str) -> None:
        """Forget all progress so the next run starts a fresh pass."""
        await self._write_document(warehouse, {})

    async def mark(
        self,
        warehouse: str,
        status: CrawlStatus,
        error_message: Optional[str] = None
    ) -> None:
        """Record the outcome of a crawl pass on the checkpoint row."""
        row = await self._get_row(warehouse)
        if row is None:
            row = CrawlCheckpoint(warehouse=warehouse, categories={})
            self.db.add(row)

        now = datetime.utcnow()
        row.status = status
        row.last_run_at = now
        row.error_message = error_message
        if status == CrawlStatus.SUCCESS:
            row.last_success_at = now
            row.total_passes = (row.total_passes or 0) + 1
        elif status in (CrawlStatus.FAILED, CrawlStatus.ABORTED):
            row.last_failure_at = now

        await self.db.commit()


def _stub_order(key: str):
    return (0, int(key), key) if key.isdigit() else (1, 0, key)
