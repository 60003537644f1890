from sqlalchemy import Column, Integer, String, DateTime, Index
from datetime import datetime
from models.base import Base, JSONDocument


class ProductIdentity(Base):
    """
    Cross-warehouse identity of a product.

    ``key`` is a synthetic index assigned in first-seen order. Rows are
    never deleted; ``warehouses`` only grows.
    """
    __tablename__ = "product_identities"

    key = Column(Integer, primary_key=True, autoincrement=True)

    product_id = Column(String(100), nullable=False)
    ean = Column(String(50), nullable=True, index=True)
    slug = Column(String(500), nullable=True)
    name = Column(String(500), nullable=True)
    warehouses = Column(JSONDocument, nullable=False, default=list)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_identity_product", "product_id", unique=True),
    )
