"""
Mirrored product records and field history
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from api.dependencies import get_db
from crawler.identity import IdentityMap
from crawler.merge import is_entry, resolve, split_path
from crawler.records import ProductRecordStore
from schemas.api import (
    FieldHistoryResponse,
    FieldVersion,
    IdentityListResponse,
    IdentityResponse,
    PaginationMetadata,
    ProductRecordResponse,
)
from models.identity import ProductIdentity
from typing import Optional
import math
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Products"])


@router.get("/products/{warehouse}/{product_id}", response_model=ProductRecordResponse)
async def get_product(
    warehouse: str,
    product_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Full versioned record of one product in one warehouse."""
    document = await ProductRecordStore(db).get(warehouse, product_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found in {warehouse}")

    return ProductRecordResponse(
        warehouse=warehouse,
        product_id=product_id,
        product=document["product"],
        stats=document["stats"]
    )


@router.get("/products/{warehouse}/{product_id}/history/{path}", response_model=FieldHistoryResponse)
async def get_field_history(
    warehouse: str,
    product_id: str,
    path: str,
    db: AsyncSession = Depends(get_db)
):
    """
    Every value a field ever had, oldest first.

    ``path`` is the dotted field path, e.g. ``price_instructions.unit_price``.
    """
    document = await ProductRecordStore(db).get(warehouse, product_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found in {warehouse}")

    entry = resolve(document["product"], split_path(path))
    if not is_entry(entry):
        raise HTTPException(status_code=404, detail=f"Field {path} not found")

    versions = [FieldVersion(**version) for version in entry["previous"]]
    versions.append(FieldVersion(value=entry.get("value"), timestamp=entry["timestamp"]))

    return FieldHistoryResponse(
        warehouse=warehouse,
        product_id=product_id,
        path=path,
        versions=versions
    )


@router.get("/identities", response_model=IdentityListResponse)
async def list_identities(
    request: Request,
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=1000, description="Items per page"),
    ean: Optional[str] = Query(None, description="Filter by EAN"),
    db: AsyncSession = Depends(get_db)
):
    """Product identity map in first-seen order."""
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] GET /identities - page={page}, page_size={page_size}, ean={ean}")

    query = select(ProductIdentity)
    count_query = select(func.count()).select_from(ProductIdentity)
    if ean:
        query = query.where(ProductIdentity.ean == ean)
        count_query = count_query.where(ProductIdentity.ean == ean)

    total_items = (await db.execute(count_query)).scalar()
    total_pages = math.ceil(total_items / page_size) if total_items > 0 else 0

    result = await db.execute(
        query.order_by(ProductIdentity.key).offset((page - 1) * page_size).limit(page_size)
    )
    items = [IdentityResponse.model_validate(row) for row in result.scalars().all()]

    return IdentityListResponse(
        items=items,
        pagination=PaginationMetadata(
            current_page=page,
            page_size=page_size,
            total_items=total_items,
            total_pages=total_pages,
            has_next=page < total_pages,
            has_previous=page > 1
        )
    )


@router.get("/identities/by-ean/{ean}", response_model=IdentityResponse)
async def get_identity_by_ean(ean: str, db: AsyncSession = Depends(get_db)):
    """Identity of the product carrying ``ean``, across every warehouse."""
    identities = await IdentityMap(db).load()
    key = identities.find_key_by_ean(ean)
    if key is None:
        raise HTTPException(status_code=404, detail=f"No product with EAN {ean}")

    entry = identities.get(key)
    return IdentityResponse(
        key=key,
        product_id=entry.id,
        ean=entry.ean,
        slug=entry.slug,
        name=entry.name,
        warehouses=sorted(entry.warehouses)
    )
