"""
Health check endpoint with database and crawl status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, WarehouseStatus
from models.checkpoint import CrawlCheckpoint
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Checkpoint state and backlog per warehouse
    """
    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    warehouses = []

    if db_connected:
        result = await db.execute(select(CrawlCheckpoint).order_by(CrawlCheckpoint.warehouse))
        for checkpoint in result.scalars().all():
            categories = checkpoint.categories or {}
            warehouses.append(WarehouseStatus(
                warehouse=checkpoint.warehouse,
                status=checkpoint.status,
                last_run_at=checkpoint.last_run_at,
                last_success_at=checkpoint.last_success_at,
                last_failure_at=checkpoint.last_failure_at,
                total_passes=checkpoint.total_passes or 0,
                pending_categories=len(categories),
                pending_products=sum(len(entry.get("products", {})) for entry in categories.values()),
                error_message=checkpoint.error_message
            ))

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        warehouses=warehouses
    )
