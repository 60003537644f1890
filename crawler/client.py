"""
Remote catalog client.

Three read operations against the catalog API:
- list the leaf categories of the taxonomy
- list the products of one category
- fetch the extended record of one product

Every request waits the configured delay first and is counted once it
succeeds. HTTP 429 surfaces as RateLimitError; every other failure as a
RemoteError carrying the status code.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, TypeVar

import httpx

from core.config import settings
from core.events import EventSink, LoggingEventSink
from core.exceptions import (
    RemoteError,
    RateLimitError,
    NetworkError,
)
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class CallResult(Generic[T]):
    """Outcome of one remote call: a value or the error that replaced it."""
    value: Optional[T] = None
    error: Optional[RemoteError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def rate_limited(self) -> bool:
        return isinstance(self.error, RateLimitError)


class CatalogClient:
    """
    HTTP client for the remote catalog.

    Attributes:
        warehouse: Warehouse selector appended to every request as ``wh``
        delay: Seconds to wait before each request
        done_requests: Successful requests issued so far
    """

    def __init__(
        self,
        warehouse: Optional[str] = None,
        base_url: Optional[str] = None,
        delay: Optional[float] = None,
        timeout: Optional[float] = None,
        events: Optional[EventSink] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.warehouse = warehouse if warehouse is not None else settings.WAREHOUSE
        self.base_url = base_url or settings.CATALOG_API_URL
        self.delay = settings.REQUEST_DELAY_SECONDS if delay is None else delay
        self.timeout = timeout or settings.REQUEST_TIMEOUT
        self.events = events or LoggingEventSink()
        self._sleep = sleep
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers={"Accept": "application/json"}
        )
        self._done_requests = 0

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def done_requests(self) -> int:
        return self._done_requests

    def set_warehouse(self, warehouse: str) -> None:
        self.warehouse = warehouse

    async def list_categories(self) -> Dict[int, dict]:
        """
        Flatten the taxonomy into an ordered mapping of leaf category id -> {}.
        """
        categories: Dict[int, dict] = {}

        for result in (await self._get("categories/")).get("results") or []:
            for category in result.get("categories") or []:
                if isinstance(category, dict) and category.get("id") is not None:
                    categories[int(category["id"])] = {}

        self.events.api("category.available", len(categories))
        return categories

    async def list_category_products(self, category_id: int) -> List[dict]:
        """Concatenate the products of every sub-group nested under a category."""
        products: List[dict] = []

        for group in (await self._get(f"categories/{category_id}/")).get("categories") or []:
            products.extend(group.get("products") or [])

        self.events.api("category.products.available", len(products), category_id)
        return products

    async def fetch_product_detail(self, product_id: str) -> dict:
        """Extended record of one product (includes fields such as ``ean``)."""
        product = await self._get(f"products/{product_id}/")

        self.events.api("product.available", product_id)
        return product

    async def _get(self, uri: str) -> Dict[str, Any]:
        await self._sleep(self.delay)

        params = {"wh": self.warehouse} if self.warehouse else {}
        url = f"{self.base_url.rstrip('/')}/{uri}"
        self.events.api("request.sent", url)

        try:
            response = await self._client.get(uri, params=params)
        except httpx.TimeoutException as e:
            raise NetworkError(
                f"Request timeout for {url}",
                context={"url": url, "warehouse": self.warehouse, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.TransportError as e:
            raise NetworkError(
                f"Network error for {url}",
                context={"url": url, "warehouse": self.warehouse},
                original_exception=e
            )

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Rate limit exceeded for {url}",
                context={"url": url, "warehouse": self.warehouse},
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )

        if not response.is_success:
            raise RemoteError(
                f"HTTP {response.status_code} for {url}",
                context={
                    "url": url,
                    "warehouse": self.warehouse,
                    "response_body": response.text[:500]
                },
                status_code=response.status_code
            )

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteError(
                "Failed to parse JSON response",
                context={"url": url, "response_body": response.text[:500]},
                original_exception=e,
                status_code=response.status_code
            )

        self._done_requests += 1

        return data if isinstance(data, dict) else {}
