"""
Authoritative pricing.

Order lines are always priced from the catalog, never from whatever unit
price the client sent. `PriceResolver` resolves a batch of product ids through
any `PriceSource` (normally the `PriceCache`) and fails atomically: either
every id resolves, or an `InvalidProductsError` lists all of the ones that
did not.

The line/total helpers are pure functions so the create and update paths
share exactly the same arithmetic.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Protocol

from temporal_orders.domain.errors import CatalogError, InvalidProductsError
from temporal_orders.domain.models import LineRequest, OrderLine, PriceRecord

logger = logging.getLogger(__name__)


class PriceSource(Protocol):
    """Anything that can turn a product id into a PriceRecord.

    Implementations raise a `CatalogError` subclass when the id cannot be
    resolved.
    """

    async def resolve(self, product_id: str) -> PriceRecord: ...


class PriceResolver:
    def __init__(self, source: PriceSource) -> None:
        self._source = source

    async def resolve_all(self, product_ids: Iterable[str]) -> dict[str, PriceRecord]:
        """Resolve every id, returning a mapping keyed by the id as requested.

        All ids are attempted even after a failure so the error names every
        offending id, in request order.
        """
        unique_ids = list(dict.fromkeys(product_ids))
        results = await asyncio.gather(
            *(self._source.resolve(pid) for pid in unique_ids),
            return_exceptions=True,
        )

        resolved: dict[str, PriceRecord] = {}
        invalid: list[str] = []
        for pid, result in zip(unique_ids, results):
            if isinstance(result, CatalogError):
                logger.warning("Product %s could not be resolved: %s", pid, result)
                invalid.append(pid)
            elif isinstance(result, Exception):
                logger.warning("Product %s failed to resolve unexpectedly: %r", pid, result)
                invalid.append(pid)
            elif isinstance(result, BaseException):
                raise result
            else:
                resolved[pid] = result

        if invalid:
            raise InvalidProductsError(invalid)
        return resolved


def build_lines(requested: Sequence[LineRequest], prices: Mapping[str, PriceRecord]) -> list[OrderLine]:
    """Create fresh order lines priced at the catalog's final price."""
    return [
        OrderLine(
            product_id=req.product_id,
            quantity=req.quantity,
            unit_price=prices[req.product_id].final_price,
        )
        for req in requested
    ]


def calculate_total(lines: Iterable[OrderLine]) -> float:
    return sum((line.quantity * line.unit_price for line in lines), 0.0)
