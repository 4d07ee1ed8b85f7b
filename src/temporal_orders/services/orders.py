"""
Order lifecycle service.

This is the trigger interface: create / update / delete / get / list / pay.
Guards:

  - create always starts an order in NEW, whatever the input says
  - update and delete require NEW (WrongStateError otherwise, distinct from
    OrderNotFoundError)
  - pay requires NEW, runs settlement to completion and returns the refreshed
    order; a failed payment shows up as FAILED_PAYMENT, never as an exception

Prices are always resolved through the PriceResolver; client-supplied unit
prices are ignored.
"""

import logging
from collections.abc import Sequence
from typing import Protocol

from temporal_orders.domain.errors import OrderNotFoundError, WrongStateError
from temporal_orders.domain.models import LineRequest, Order, OrderLine, OrderStatus, SettlementResult
from temporal_orders.domain.pricing import PriceResolver, build_lines, calculate_total
from temporal_orders.services.store import OrderStateStore

logger = logging.getLogger(__name__)


class Settler(Protocol):
    """Runs one settlement sequence to its terminal outcome."""

    async def settle(self, order_id: str, amount: float) -> SettlementResult: ...


def apply_terminal_status(store: OrderStateStore, order_id: str, status: OrderStatus) -> Order:
    """Move an order from NEW to `status`.

    Repeating the transition the order already went through is a no-op, so
    a duplicate mark from a retried activity is harmless. Moving an order
    from one terminal state to another is refused.
    """
    order = store.get(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)

    if order.status == status:
        logger.info("Order %s already %s; ignoring repeated transition", order_id, status.value)
        return order
    if order.status.is_terminal:
        raise WrongStateError(
            f"Order {order_id} is {order.status.value}; cannot transition to {status.value}"
        )

    previous = order.status
    order.status = status
    saved = store.save(order)
    logger.info(
        "Order %s marked %s (total %.2f, previous status %s)",
        order_id,
        status.value,
        saved.total,
        previous.value,
    )
    return saved


class OrderService:
    def __init__(self, store: OrderStateStore, resolver: PriceResolver, settler: Settler | None = None) -> None:
        self._store = store
        self._resolver = resolver
        self._settler = settler

    @property
    def store(self) -> OrderStateStore:
        return self._store

    def use_settler(self, settler: Settler) -> None:
        self._settler = settler

    async def _priced_lines(self, lines: Sequence[LineRequest]) -> tuple[list[OrderLine], float]:
        product_ids = [line.product_id for line in lines]
        logger.info("Resolving %d product(s) against the catalog: %s", len(product_ids), product_ids)
        prices = await self._resolver.resolve_all(product_ids)
        priced = build_lines(lines, prices)
        return priced, calculate_total(priced)

    async def create_order(self, customer_id: str, lines: Sequence[LineRequest]) -> Order:
        logger.info("Creating order for customer %s", customer_id)
        priced, total = await self._priced_lines(lines)
        order = self._store.save(Order(customer_id=customer_id, lines=priced, total=total, status=OrderStatus.NEW))
        logger.info("Created order %s: %d line(s), total %.2f", order.id, len(order.lines), order.total)
        return order

    def get_order(self, order_id: str) -> Order:
        order = self._store.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def list_orders(self, status: OrderStatus | None = None) -> list[Order]:
        return self._store.list_by_status(status)

    def _require_new(self, order_id: str, action: str) -> Order:
        order = self.get_order(order_id)
        if order.status is not OrderStatus.NEW:
            raise WrongStateError(f"Can only {action} NEW orders; order {order_id} is {order.status.value}")
        return order

    async def update_order(self, order_id: str, lines: Sequence[LineRequest]) -> Order:
        logger.info("Updating lines of order %s", order_id)
        self._require_new(order_id, "update")
        priced, total = await self._priced_lines(lines)

        # Re-read after pricing: the order may have been paid or deleted meanwhile.
        order = self._require_new(order_id, "update")
        order.lines = priced
        order.total = total
        saved = self._store.save(order)
        logger.info("Updated order %s: new total %.2f", order_id, saved.total)
        return saved

    def delete_order(self, order_id: str) -> None:
        order = self._require_new(order_id, "delete")
        self._store.delete(order)
        logger.info("Deleted order %s", order_id)

    async def pay_order(self, order_id: str) -> Order:
        if self._settler is None:
            raise RuntimeError("OrderService has no settler configured")
        order = self._require_new(order_id, "pay")
        result = await self._settler.settle(order.id, order.total)
        logger.info("Settlement of order %s finished: %s", order_id, result.status.value)
        return self.get_order(order_id)

    def mark_paid(self, order_id: str) -> Order:
        return apply_terminal_status(self._store, order_id, OrderStatus.PAID)

    def mark_failed(self, order_id: str) -> Order:
        return apply_terminal_status(self._store, order_id, OrderStatus.FAILED_PAYMENT)
