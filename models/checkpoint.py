from sqlalchemy import Column, Integer, String, Enum, DateTime, Text, Index
from datetime import datetime
from models.base import Base, JSONDocument, CrawlStatus


class CrawlCheckpoint(Base):
    """
    Crawl progress of one warehouse.

    Purpose:
    - Resume a crawl exactly where it stopped
    - Act as the retry queue after rate limiting

    Design:
    - One row per warehouse
    - ``categories`` holds the whole checkpoint document:
      {"<category_id>": {"state": "unlisted|listed|drained",
                         "products": {"<stub_key>": <raw stub>}}}
    - The document is rewritten whole on every mutation
    """
    __tablename__ = "crawl_checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)

    warehouse = Column(String(50), nullable=False)

    # Checkpoint document
    categories = Column(JSONDocument, nullable=False, default=dict)

    # Statistics
    last_run_at = Column(DateTime, nullable=True, index=True)
    last_success_at = Column(DateTime, nullable=True)
    last_failure_at = Column(DateTime, nullable=True)
    total_passes = Column(Integer, default=0)

    # Status
    status = Column(Enum(CrawlStatus), default=CrawlStatus.PENDING, nullable=False)
    error_message = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_checkpoint_warehouse", "warehouse", unique=True),
    )
