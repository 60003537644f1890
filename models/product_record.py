from sqlalchemy import Column, Integer, String, BigInteger, DateTime, Index
from datetime import datetime
from models.base import Base, JSONDocument


class ProductRecord(Base):
    """
    Local, versioned mirror of one remote product in one warehouse.

    ``product`` is a tree mirroring the remote payload whose leaves are
    versioned field entries:

        {"value": <scalar>, "timestamp": <int>, "previous": [{"value", "timestamp"}, ...]}

    Stats are epoch seconds, the same clock as the field timestamps.
    """
    __tablename__ = "product_records"

    id = Column(Integer, primary_key=True, autoincrement=True)

    warehouse = Column(String(50), nullable=False, index=True)
    product_id = Column(String(100), nullable=False, index=True)

    product = Column(JSONDocument, nullable=False, default=dict)

    # Stats
    stats_created_at = Column(BigInteger, nullable=False)
    stats_updated_at = Column(BigInteger, nullable=False)
    updates = Column(Integer, nullable=False, default=0)

    # Row bookkeeping
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_record_warehouse_product", "warehouse", "product_id", unique=True),
    )

    def to_document(self) -> dict:
        """Return the record as a ``{product, stats}`` document."""
        return {
            "product": self.product or {},
            "stats": {
                "created_at": self.stats_created_at,
                "updated_at": self.stats_updated_at,
                "updates": self.updates,
            },
        }

    @property
    def location(self) -> str:
        return f"{self.warehouse}/{self.product_id}"
