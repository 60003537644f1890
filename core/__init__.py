"""
Core utilities and configuration for the catalog crawler.

Modules:
    config: Application configuration and environment variable management
    database: Database connection and session management
    events: Structured crawl events and the logging event sink
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration and utilities

Usage:
    from core.config import settings
    from core.exceptions import RemoteError, RateLimitError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "setup_logging",
    "EventSink",
    "LoggingEventSink",
    # Exceptions
    "CrawlerException",
    "RemoteError",
    "RateLimitError",
    "NetworkError",
    "DataAbsentError",
    "StorageError",
    "CheckpointError",
    "RecordStoreError",
    "CrawlAbortedError",
]
