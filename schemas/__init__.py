"""
Pydantic schemas for the read API.

Schemas:
    api: Health, product record, field history, identity and crawl run
        response models

Usage:
    from schemas.api import ProductRecordResponse, FieldHistoryResponse
"""

__all__ = [
    "HealthCheckResponse",
    "WarehouseStatus",
    "ProductRecordResponse",
    "FieldHistoryResponse",
    "IdentityListResponse",
    "CrawlRunResponse",
]
