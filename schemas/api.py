"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from models.base import CrawlStatus
from uuid import UUID


# ============================================================================
# Health Check Schemas
# ============================================================================

class WarehouseStatus(BaseModel):
    """Checkpoint state of one warehouse for the health check"""
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    warehouse: str
    status: CrawlStatus
    last_run_at: Optional[datetime]
    last_success_at: Optional[datetime]
    last_failure_at: Optional[datetime]
    total_passes: int = 0
    pending_categories: int = 0
    pending_products: int = 0
    error_message: Optional[str] = None


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    warehouses: List[WarehouseStatus] = Field(default_factory=list)

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
            return self

        failed = sum(1 for w in self.warehouses if w.status in ("failed", "aborted"))
        if failed == 0:
            self.status = "healthy"
        elif failed < len(self.warehouses):
            self.status = "degraded"
        else:
            self.status = "unhealthy"
        return self


# ============================================================================
# Product Schemas
# ============================================================================

class RecordStats(BaseModel):
    created_at: int
    updated_at: int
    updates: int


class ProductRecordResponse(BaseModel):
    """A mirrored product with the full history of every field"""
    warehouse: str
    product_id: str
    product: Dict[str, Any]
    stats: RecordStats


class FieldVersion(BaseModel):
    value: Any = None
    timestamp: int


class FieldHistoryResponse(BaseModel):
    """History of one field, oldest first, current value last"""
    warehouse: str
    product_id: str
    path: str
    versions: List[FieldVersion]


# ============================================================================
# Identity Schemas
# ============================================================================

class IdentityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: int
    product_id: str
    ean: Optional[str] = None
    slug: Optional[str] = None
    name: Optional[str] = None
    warehouses: List[str] = Field(default_factory=list)


class PaginationMetadata(BaseModel):
    current_page: int
    page_size: int
    total_items: int
    total_pages: int
    has_next: bool
    has_previous: bool


class IdentityListResponse(BaseModel):
    items: List[IdentityResponse]
    pagination: PaginationMetadata


# ============================================================================
# Crawl Run Schemas
# ============================================================================

class CrawlRunResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    run_id: UUID
    warehouse: str
    status: CrawlStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    products_reviewed: int = 0
    products_created: int = 0
    products_updated: int = 0
    products_unchanged: int = 0
    products_failed: int = 0
    requests_submitted: int = 0
    rate_limit_pauses: int = 0
    error_message: Optional[str] = None
