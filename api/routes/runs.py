"""
Crawl run history
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from api.dependencies import get_db
from schemas.api import CrawlRunResponse
from models.crawl_run import CrawlRun
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Runs"])


@router.get("/runs", response_model=List[CrawlRunResponse])
async def list_runs(
    warehouse: Optional[str] = Query(None, description="Filter by warehouse"),
    limit: int = Query(10, ge=1, le=100, description="Number of recent runs to return"),
    db: AsyncSession = Depends(get_db)
):
    """Most recent crawl runs first."""
    query = select(CrawlRun)
    if warehouse:
        query = query.where(CrawlRun.warehouse == warehouse)

    result = await db.execute(query.order_by(CrawlRun.started_at.desc(), CrawlRun.id.desc()).limit(limit))
    return [CrawlRunResponse.model_validate(run) for run in result.scalars().all()]
