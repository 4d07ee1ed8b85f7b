"""
TTL cache in front of the product catalog.

Entries are keyed by the trimmed product id and go stale once more than
``ttl_seconds`` have passed since they were stored. The lock only guards
dictionary access and is never held across a catalog call, so lookups for
different products never wait on each other. Two concurrent misses for the
same product may both fetch; the later store wins.

A failed fetch leaves the cache untouched: no negative entries, and a stale
entry is not refreshed by an error.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from temporal_orders.domain.models import PriceRecord
from temporal_orders.services.catalog import CatalogClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    record: PriceRecord
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class PriceCache:
    def __init__(
        self,
        catalog: CatalogClient,
        ttl_seconds: float = 300.0,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._catalog = catalog
        self._ttl = ttl_seconds
        self._enabled = enabled
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    async def resolve(self, product_id: str) -> PriceRecord:
        if not self._enabled:
            return await self._catalog.fetch(product_id)

        key = product_id.strip()
        with self._lock:
            entry = self._entries.get(key)
        if entry is not None and not entry.is_expired(self._clock()):
            logger.debug("Price cache hit for %s", key)
            return entry.record

        logger.debug("Price cache %s for %s", "expired" if entry else "miss", key)
        record = await self._catalog.fetch(key)
        with self._lock:
            self._entries[key] = CacheEntry(record=record, expires_at=self._clock() + self._ttl)
        return record

    def clear(self) -> None:
        with self._lock:
            self._entries = {}
        logger.info("Price cache cleared")

    def size(self) -> int:
        with self._lock:
            return len(self._entries)
