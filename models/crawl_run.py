from sqlalchemy import Column, Integer, String, Enum, DateTime, Float, Text, Index, Uuid
from datetime import datetime
import uuid
from models.base import Base, JSONDocument, CrawlStatus


class CrawlRun(Base):
    """
    Tracks metadata for each crawl invocation.

    Purpose:
    - Audit trail of all crawls
    - The counters the importer prints at the end of a run
    - Rate-limit pauses and abort reasons
    """
    __tablename__ = "crawl_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(Uuid, default=uuid.uuid4, unique=True, nullable=False, index=True)

    warehouse = Column(String(50), nullable=False, index=True)

    status = Column(Enum(CrawlStatus), default=CrawlStatus.PENDING, nullable=False, index=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    products_reviewed = Column(Integer, default=0)
    products_created = Column(Integer, default=0)
    products_updated = Column(Integer, default=0)
    products_unchanged = Column(Integer, default=0)
    products_failed = Column(Integer, default=0)
    requests_submitted = Column(Integer, default=0)
    rate_limit_pauses = Column(Integer, default=0)

    # Error tracking
    error_message = Column(Text, nullable=True)

    # Configuration snapshot
    config_snapshot = Column(JSONDocument, nullable=True)

    __table_args__ = (
        Index("idx_crawl_run_warehouse_started", "warehouse", "started_at"),
    )
