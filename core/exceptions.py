"""
Custom exceptions for the catalog crawler with structured error context.

Each exception carries a context dictionary for debugging and for the
crawl run audit trail.

Exception Hierarchy:
    CrawlerException (base)
    ├── RemoteError
    │   ├── RateLimitError
    │   ├── NetworkError
    │   └── DataAbsentError
    ├── StorageError
    │   ├── CheckpointError
    │   └── RecordStoreError
    └── CrawlAbortedError
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class CrawlerException(Exception):
    """
    Base exception for all crawler errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (warehouse, url, ids, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Remote Errors
# ============================================================================

class RemoteError(CrawlerException):
    """
    Exception raised when a remote catalog call fails.

    Context should include:
        - url: The endpoint that failed
        - status_code: HTTP status code (if a response was received)
        - response_body: Response body (truncated)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


class RateLimitError(RemoteError):
    """HTTP 429. The crawler pauses and resumes from the checkpoint."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception, status_code=429)
        self.retry_after = retry_after  # Seconds the server asked us to wait
        if retry_after:
            self.context["retry_after"] = retry_after


class NetworkError(RemoteError):
    """Transport failure (timeout, connection refused, DNS)."""
    pass


class DataAbsentError(RemoteError):
    """A 2xx response that carries no usable data."""
    pass


# ============================================================================
# Storage Errors
# ============================================================================

class StorageError(CrawlerException):
    """
    Base exception for persistence failures.

    Context should include:
        - warehouse: Warehouse code
        - operation: Operation that failed (read, write)
    """
    pass


class CheckpointError(StorageError):
    """Checkpoint document could not be read or rewritten."""
    pass


class RecordStoreError(StorageError):
    """Product record could not be read or written."""
    pass


# ============================================================================
# Control Flow
# ============================================================================

class CrawlAbortedError(CrawlerException):
    """
    Raised when the empty-category policy is ``abort`` and a category
    listing returned no products. The checkpoint is left in place so the
    next run resumes at the same category.
    """
    pass
