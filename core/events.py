"""
Structured crawl events.

The crawler never prints. It emits named events with positional arguments
to an ``EventSink``; the default sink renders them through ``logging``.
"""

import logging
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger("crawler.events")

# Tags decide the log level, like the tag colours of a console printer.
INFO = "info"
ERROR = "error"
CREATE = "create"
UPDATE = "update"
CHANGE = "change"
API = "api"

TAG_LEVELS: Dict[str, int] = {
    INFO: logging.INFO,
    ERROR: logging.ERROR,
    CREATE: logging.INFO,
    UPDATE: logging.INFO,
    CHANGE: logging.INFO,
    API: logging.DEBUG,
}

MESSAGES: Dict[str, str] = {
    "warehouse.used": "Using warehouse {0}",
    "import.start": "Starting a new import",
    "import.continue.category": "Resuming import at category {0}",
    "import.continue.product": "Resuming import at product {0} of category {1}",
    "category.available": "{0} categories available",
    "category.products.available": "{0} products available in category {1}",
    "category.empty": "Category {0} returned no products",
    "product.available": "Details available for product {0}",
    "product.invalid": "Product stub {0} in category {1} has no id",
    "product.created": "Product {0} created at {1}",
    "product.updated": "Product {0} updated at {1}",
    "product.unchanged": "Product {0} unchanged",
    "product.changed": "Field {0} changed for product {1}",
    "product.detail.error": "Could not fetch details for product {0}",
    "request.sent": "GET {0}",
    "requests.submitted": "{0} requests submitted",
    "requests.exceeded": "Request limit exceeded",
    "import.paused": "Import paused for {0} seconds",
    "import.aborted": "Import aborted at category {0}",
    "import.stats": "{0} products reviewed, {1} updated, {2} created",
    "running.time": "Running time: {0} seconds",
    "error": "{0}",
}


def render(event: str, args: Tuple[Any, ...]) -> str:
    """Render an event with its message template (falls back to the name)."""
    template = MESSAGES.get(event)
    if template is None:
        return " ".join([event, *map(str, args)]) if args else event
    try:
        return template.format(*args)
    except IndexError:
        return f"{template} {args}"


class EventSink:
    """Destination for crawl events."""

    def emit(self, tag: str, event: str, *args: Any) -> None:
        raise NotImplementedError

    def info(self, event: str, *args: Any) -> None:
        self.emit(INFO, event, *args)

    def error(self, event: str, *args: Any) -> None:
        self.emit(ERROR, event, *args)

    def create(self, event: str, *args: Any) -> None:
        self.emit(CREATE, event, *args)

    def update(self, event: str, *args: Any) -> None:
        self.emit(UPDATE, event, *args)

    def change(self, event: str, *args: Any) -> None:
        self.emit(CHANGE, event, *args)

    def api(self, event: str, *args: Any) -> None:
        self.emit(API, event, *args)


class LoggingEventSink(EventSink):
    """Render events through the standard logging module."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def emit(self, tag: str, event: str, *args: Any) -> None:
        level = TAG_LEVELS.get(tag, logging.INFO)
        self.log.log(
            level,
            f"[{tag}] {render(event, args)}",
            extra={"event": event, "event_args": list(args)}
        )
