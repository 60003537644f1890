"""
Product record store: one versioned document per (warehouse, product).
"""

import copy
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import RecordStoreError
from models.product_record import ProductRecord
import logging

logger = logging.getLogger(__name__)


class ProductRecordStore:
    """Read and rewrite whole product documents."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _get_row(self, warehouse: str, product_id: str) -> Optional[ProductRecord]:
        result = await self.db.execute(
            select(ProductRecord).where(
                ProductRecord.warehouse == warehouse,
                ProductRecord.product_id == str(product_id)
            )
        )
        return result.scalar_one_or_none()

    async def exists(self, warehouse: str, product_id: str) -> bool:
        return await self._get_row(warehouse, product_id) is not None

    async def get(self, warehouse: str, product_id: str) -> Optional[Dict[str, Any]]:
        """
        Detached copy of the ``{product, stats}`` document, or ``None``.

        Mutating the copy never touches the session.
        """
        try:
            row = await self._get_row(warehouse, product_id)
        except Exception as e:
            raise RecordStoreError(
                "Failed to read product record",
                context={"warehouse": warehouse, "product_id": product_id, "operation": "read"},
                original_exception=e
            )
        if row is None:
            return None
        return copy.deepcopy(row.to_document())

    async def save(self, warehouse: str, product_id: str, document: Dict[str, Any]) -> str:
        """
        Rewrite the whole record.

        Returns:
            The record location (``<warehouse>/<product_id>``)
        """
        stats = document["stats"]
        try:
            row = await self._get_row(warehouse, product_id)
            if row is None:
                row = ProductRecord(warehouse=warehouse, product_id=str(product_id))
                self.db.add(row)

            row.product = copy.deepcopy(document["product"])
            row.stats_created_at = stats["created_at"]
            row.stats_updated_at = stats["updated_at"]
            row.updates = stats["updates"]

            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            raise RecordStoreError(
                "Failed to write product record",
                context={"warehouse": warehouse, "product_id": product_id, "operation": "write"},
                original_exception=e
            )
        return row.location
