"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class, the JSON document type and shared enums
        (CrawlStatus, CategoryState)
    checkpoint: Per-warehouse crawl checkpoint document
    product_record: Versioned product mirror with field history
    identity: Cross-warehouse product identity map
    crawl_run: Crawl execution tracking and counters

Database Schema:
    JSON documents are stored as JSONB on PostgreSQL and as JSON on other
    backends. Every document is rewritten whole on mutation.

Usage:
    from models import ProductRecord, ProductIdentity, CrawlCheckpoint, CrawlRun
    from models.base import CrawlStatus, CategoryState
"""

from models.base import Base, CrawlStatus, CategoryState
from models.checkpoint import CrawlCheckpoint
from models.product_record import ProductRecord
from models.identity import ProductIdentity
from models.crawl_run import CrawlRun

__all__ = [
    "Base",
    "CrawlStatus",
    "CategoryState",
    "CrawlCheckpoint",
    "ProductRecord",
    "ProductIdentity",
    "CrawlRun",
]
