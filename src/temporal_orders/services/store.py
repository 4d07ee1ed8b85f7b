"""
Order persistence.

`OrderStateStore` is the contract the rest of the package codes against;
`InMemoryOrderStore` is the implementation used by the CLI, the worker and
the tests. Orders go in and come out as copies, so a caller can never hold a
live reference into the store between calls.
"""

import logging
import threading
from typing import Protocol

from temporal_orders.domain.models import Order, OrderStatus

logger = logging.getLogger(__name__)


class OrderStateStore(Protocol):
    def get(self, order_id: str) -> Order | None: ...

    def save(self, order: Order) -> Order:
        """Upsert by order id."""
        ...

    def delete(self, order: Order) -> None: ...

    def list_by_status(self, status: OrderStatus | None = None) -> list[Order]: ...


class InMemoryOrderStore:
    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = threading.Lock()

    def get(self, order_id: str) -> Order | None:
        with self._lock:
            order = self._orders.get(order_id)
        return order.model_copy(deep=True) if order is not None else None

    def save(self, order: Order) -> Order:
        stored = order.model_copy(deep=True)
        with self._lock:
            self._orders[stored.id] = stored
        return stored.model_copy(deep=True)

    def delete(self, order: Order) -> None:
        with self._lock:
            self._orders.pop(order.id, None)

    def list_by_status(self, status: OrderStatus | None = None) -> list[Order]:
        with self._lock:
            orders = list(self._orders.values())
        return [o.model_copy(deep=True) for o in orders if status is None or o.status == status]
