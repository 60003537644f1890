"""
Product identity map: one entry per product ever seen, across warehouses.
"""

from collections import OrderedDict
from typing import Dict, Optional, Set

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import StorageError
from models.identity import ProductIdentity
import logging

logger = logging.getLogger(__name__)


class IdentityEntry(BaseModel):
    id: str
    ean: Optional[str] = None
    slug: Optional[str] = None
    name: Optional[str] = None
    warehouses: Set[str] = Field(default_factory=set)


class IdentityMap:
    """
    In-memory copy of the identity table, written through on every upsert.

    Entries are keyed by their synthetic index and kept in first-seen order.
    The table only grows.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.entries: "OrderedDict[int, IdentityEntry]" = OrderedDict()
        self._loaded = False

    async def load(self) -> "IdentityMap":
        """Read the whole table into memory."""
        result = await self.db.execute(select(ProductIdentity).order_by(ProductIdentity.key))
        self.entries = OrderedDict(
            (row.key, IdentityEntry(
                id=row.product_id,
                ean=row.ean,
                slug=row.slug,
                name=row.name,
                warehouses=set(row.warehouses or [])
            ))
            for row in result.scalars().all()
        )
        self._loaded = True
        logger.info(f"Loaded {len(self.entries)} product identities")
        return self

    def find_key_by_id(self, product_id: str) -> Optional[int]:
        for key, entry in self.entries.items():
            if entry.id == str(product_id):
                return key
        return None

    def find_key_by_ean(self, ean: str) -> Optional[int]:
        for key, entry in self.entries.items():
            if ean and entry.ean == str(ean):
                return key
        return None

    def get(self, key: int) -> Optional[IdentityEntry]:
        return self.entries.get(key)

    async def upsert(
        self,
        product_id: str,
        ean: Optional[str],
        slug: Optional[str],
        name: Optional[str],
        warehouse: str
    ) -> int:
        """
        Add ``warehouse`` to the product's entry, creating the entry if needed.

        Known ean/slug/name values are overwritten by the new ones; a missing
        value in the payload does not erase a known one.

        Returns:
            The synthetic key of the entry
        """
        if not self._loaded:
            await self.load()

        product_id = str(product_id)
        key = self.find_key_by_id(product_id)

        try:
            if key is None:
                row = ProductIdentity(
                    product_id=product_id,
                    ean=_text(ean),
                    slug=_text(slug),
                    name=_text(name),
                    warehouses=[warehouse]
                )
                self.db.add(row)
                await self.db.commit()
                await self.db.refresh(row)
                key = row.key
                self.entries[key] = IdentityEntry(
                    id=product_id,
                    ean=row.ean,
                    slug=row.slug,
                    name=row.name,
                    warehouses={warehouse}
                )
                return key

            entry = self.entries[key]
            entry.id = product_id
            entry.ean = _text(ean) or entry.ean
            entry.slug = _text(slug) or entry.slug
            entry.name = _text(name) or entry.name
            entry.warehouses.add(warehouse)

            row = await self.db.get(ProductIdentity, key)
            row.product_id = entry.id
            row.ean = entry.ean
            row.slug = entry.slug
            row.name = entry.name
            row.warehouses = sorted(entry.warehouses)
            await self.db.commit()
            return key

        except Exception as e:
            await self.db.rollback()
            raise StorageError(
                "Failed to upsert product identity",
                context={"product_id": product_id, "warehouse": warehouse, "operation": "upsert"},
                original_exception=e
            )

    def to_dict(self) -> Dict[int, dict]:
        return {
            key: {**entry.model_dump(), "warehouses": sorted(entry.warehouses)}
            for key, entry in self.entries.items()
        }


def _text(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)
