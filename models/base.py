from sqlalchemy import JSON
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


# ============================================================================
# ENUMS
# ============================================================================

class CrawlStatus(str, enum.Enum):
    """Crawl run status"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"
    ABORTED = "aborted"


class CategoryState(str, enum.Enum):
    """Progress marker of one category inside a warehouse checkpoint"""
    UNLISTED = "unlisted"
    LISTED = "listed"
    DRAINED = "drained"
