"""
Product catalog client.

Fetches authoritative product data from a DummyJSON-style catalog
(``GET {base_url}/products/{id}``) and turns every way that can go wrong into
one of three `CatalogError` subclasses:

  - 404                                  → ProductNotFoundError
  - 5xx, timeouts, connection failures   → CatalogTransientError
  - anything else non-2xx, or a body
    that is not a product                → CatalogInvalidResponseError
"""

import logging
import time
from collections.abc import Callable
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from temporal_orders.domain.errors import (
    CatalogInvalidResponseError,
    CatalogTransientError,
    ProductNotFoundError,
)
from temporal_orders.domain.models import PriceRecord

logger = logging.getLogger(__name__)


class CatalogClient:
    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))
        self._clock = clock

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch(self, product_id: str) -> PriceRecord:
        pid = product_id.strip()
        # The id is one path segment; "/", "?" and "#" must not reshape the URL.
        url = f"{self._base_url}/products/{quote(pid, safe='')}"
        logger.debug("Fetching product %s from %s", pid, url)

        try:
            resp = await self._client.get(url)
        except httpx.InvalidURL as e:
            raise CatalogInvalidResponseError(pid, f"Product id {pid!r} cannot form a catalog URL: {e}") from e
        except httpx.TimeoutException as e:
            raise CatalogTransientError(pid, f"Timeout fetching product {pid!r}: {e}") from e
        except httpx.RequestError as e:
            raise CatalogTransientError(pid, f"Network error fetching product {pid!r}: {e}") from e

        if resp.status_code == 404:
            raise ProductNotFoundError(pid, f"Product {pid!r} not found in catalog")
        if resp.status_code >= 500:
            raise CatalogTransientError(pid, f"Catalog error for product {pid!r}: HTTP {resp.status_code}")
        if not resp.is_success:
            raise CatalogInvalidResponseError(pid, f"Catalog rejected product {pid!r}: HTTP {resp.status_code}")

        try:
            data = resp.json()
            record = PriceRecord(
                product_id=pid,
                base_price=data["price"],
                discount_percentage=data.get("discountPercentage") or 0.0,
                fetched_at=self._clock(),
                title=data.get("title"),
                brand=data.get("brand"),
                category=data.get("category"),
            )
        except (ValueError, KeyError, TypeError, AttributeError, ValidationError) as e:
            raise CatalogInvalidResponseError(pid, f"Malformed catalog payload for product {pid!r}: {e}") from e

        logger.info(
            "Fetched product %s (%s): price %.2f, discount %.2f%%, final %.4f",
            pid,
            record.title,
            record.base_price,
            record.discount_percentage,
            record.final_price,
        )
        return record
