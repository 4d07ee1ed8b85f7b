import asyncio

import pytest

from conftest import FAILURE_URL, SUCCESS_URL
from temporal_orders.domain.errors import (
    InvalidProductsError,
    OrderNotFoundError,
    SettlementConfigurationError,
    WrongStateError,
)
from temporal_orders.domain.models import LineRequest, Order, OrderStatus
from temporal_orders.services.orders import apply_terminal_status
from temporal_orders.services.settler import InProcessSettler


def lines(*pairs) -> list[LineRequest]:
    return [LineRequest(product_id=pid, quantity=qty) for pid, qty in pairs]


# ── create ───────────────────────────────────────────────────────────


async def test_create_uses_catalog_price(order_service):
    order = await order_service.create_order("c-1", lines(("1", 2)))

    assert order.status is OrderStatus.NEW
    assert order.customer_id == "c-1"
    assert order.lines[0].unit_price == pytest.approx(899.991)
    assert order.total == pytest.approx(1799.982)
    assert order_service.get_order(order.id) == order


async def test_create_ignores_client_supplied_price(order_service):
    requested = [
        LineRequest(product_id="2", quantity=3, unit_price=0.01),
        LineRequest(product_id="3", quantity=1, unit_price=9999.0),
    ]
    order = await order_service.create_order("c-1", requested)

    assert [line.unit_price for line in order.lines] == [10.0, 50.0]
    assert order.total == pytest.approx(80.0)


async def test_create_with_invalid_product_creates_nothing(order_service, catalog_stub):
    with pytest.raises(InvalidProductsError) as exc_info:
        await order_service.create_order("c-1", lines(("1", 1), ("404", 1), ("2", 1)))

    assert exc_info.value.invalid_ids == ["404"]
    assert {"1", "2", "404"} <= set(catalog_stub.calls)
    assert order_service.list_orders() == []


async def test_create_with_unusable_product_ids_lists_them_as_invalid(order_service, catalog_stub):
    with pytest.raises(InvalidProductsError) as exc_info:
        await order_service.create_order("c-1", lines(("a\x01b", 1), ("2?x=1", 1), ("2", 1)))

    assert exc_info.value.invalid_ids == ["a\x01b", "2?x=1"]
    assert order_service.list_orders() == []


async def test_create_generates_unique_ids(order_service):
    a = await order_service.create_order("c-1", lines(("2", 1)))
    b = await order_service.create_order("c-1", lines(("2", 1)))

    assert a.id != b.id


# ── get / list ───────────────────────────────────────────────────────


def test_get_unknown_order(order_service):
    with pytest.raises(OrderNotFoundError):
        order_service.get_order("nope")


async def test_list_filters_by_status(order_service, store):
    paid = await order_service.create_order("c-1", lines(("2", 1)))
    fresh = await order_service.create_order("c-2", lines(("2", 1)))
    apply_terminal_status(store, paid.id, OrderStatus.PAID)

    assert {o.id for o in order_service.list_orders()} == {paid.id, fresh.id}
    assert [o.id for o in order_service.list_orders(OrderStatus.NEW)] == [fresh.id]
    assert [o.id for o in order_service.list_orders(OrderStatus.PAID)] == [paid.id]
    assert order_service.list_orders(OrderStatus.FAILED_PAYMENT) == []


# ── update / delete ─────────────────────────────────────────────────


async def test_update_replaces_lines_and_recomputes_total(order_service):
    order = await order_service.create_order("c-1", lines(("1", 2)))
    updated = await order_service.update_order(order.id, lines(("2", 4), ("3", 2)))

    assert updated.id == order.id
    assert [(line.product_id, line.quantity) for line in updated.lines] == [("2", 4), ("3", 2)]
    assert updated.total == pytest.approx(4 * 10.0 + 2 * 50.0)
    assert order_service.get_order(order.id).total == pytest.approx(140.0)


async def test_update_with_invalid_product_keeps_order(order_service):
    order = await order_service.create_order("c-1", lines(("2", 1)))

    with pytest.raises(InvalidProductsError):
        await order_service.update_order(order.id, lines(("missing", 1)))

    assert order_service.get_order(order.id).lines == order.lines


async def test_update_unknown_order(order_service):
    with pytest.raises(OrderNotFoundError):
        await order_service.update_order("nope", lines(("2", 1)))


@pytest.mark.parametrize("status", [OrderStatus.PAID, OrderStatus.FAILED_PAYMENT])
async def test_update_and_delete_require_new(order_service, store, status):
    order = await order_service.create_order("c-1", lines(("2", 1)))
    apply_terminal_status(store, order.id, status)

    with pytest.raises(WrongStateError):
        await order_service.update_order(order.id, lines(("3", 1)))
    with pytest.raises(WrongStateError):
        order_service.delete_order(order.id)

    assert order_service.get_order(order.id).status is status


async def test_delete_new_order(order_service):
    order = await order_service.create_order("c-1", lines(("2", 1)))
    order_service.delete_order(order.id)

    with pytest.raises(OrderNotFoundError):
        order_service.get_order(order.id)
    with pytest.raises(OrderNotFoundError):
        order_service.delete_order(order.id)


# ── terminal transitions ─────────────────────────────────────────────


async def test_repeated_terminal_mark_is_a_no_op(order_service):
    order = await order_service.create_order("c-1", lines(("2", 1)))

    order_service.mark_failed(order.id)
    again = order_service.mark_failed(order.id)

    assert again.status is OrderStatus.FAILED_PAYMENT


async def test_terminal_state_cannot_change(order_service):
    order = await order_service.create_order("c-1", lines(("2", 1)))
    order_service.mark_paid(order.id)

    with pytest.raises(WrongStateError):
        order_service.mark_failed(order.id)
    assert order_service.get_order(order.id).status is OrderStatus.PAID


def test_mark_unknown_order(order_service):
    with pytest.raises(OrderNotFoundError):
        order_service.mark_paid("nope")


# ── pay ──────────────────────────────────────────────────────────────


async def test_pay_below_threshold_marks_paid(order_service, settlement_stub, sleep):
    order = await order_service.create_order("c-1", lines(("4", 1)))
    paid = await order_service.pay_order(order.id)

    assert paid.status is OrderStatus.PAID
    assert settlement_stub.requests == [(SUCCESS_URL, {"orderId": order.id, "amount": 600.0})]
    assert sleep.delays == []


async def test_pay_at_exact_threshold_uses_success_endpoint(order_service, settlement_stub):
    # 100 x 10.0 == 1000.0
    order = await order_service.create_order("c-1", lines(("2", 100)))
    assert order.total == 1000.0

    paid = await order_service.pay_order(order.id)

    assert paid.status is OrderStatus.PAID
    assert settlement_stub.urls() == [SUCCESS_URL]


async def test_pay_above_threshold_exhausts_retries_and_fails(order_service, settlement_stub, sleep, policy):
    order = await order_service.create_order("c-1", lines(("4", 2), ("2", 30)))
    assert order.total == pytest.approx(1500.0)

    result = await order_service.pay_order(order.id)

    assert result.status is OrderStatus.FAILED_PAYMENT
    assert settlement_stub.urls() == [FAILURE_URL] * (1 + policy.max_redeliveries)
    assert sleep.delays == pytest.approx([0.1, 0.2, 0.4])
    assert order_service.get_order(order.id).status is OrderStatus.FAILED_PAYMENT


async def test_pay_recovers_when_endpoint_comes_back(order_service, settlement_stub, sleep):
    settlement_stub.sequence = [503, 503, 200]
    order = await order_service.create_order("c-1", lines(("2", 1)))

    paid = await order_service.pay_order(order.id)

    assert paid.status is OrderStatus.PAID
    assert settlement_stub.urls() == [SUCCESS_URL] * 3
    assert sleep.delays == pytest.approx([0.1, 0.2])


@pytest.mark.parametrize("status", [OrderStatus.PAID, OrderStatus.FAILED_PAYMENT])
async def test_pay_requires_new(order_service, store, settlement_stub, status):
    order = await order_service.create_order("c-1", lines(("2", 1)))
    apply_terminal_status(store, order.id, status)

    with pytest.raises(WrongStateError):
        await order_service.pay_order(order.id)
    assert settlement_stub.requests == []


async def test_pay_unknown_order(order_service):
    with pytest.raises(OrderNotFoundError):
        await order_service.pay_order("nope")


async def test_settling_an_unknown_order_is_a_configuration_error(settler, settlement_stub, sleep):
    # Above the threshold, so any endpoint call would fail and be retried.
    with pytest.raises(SettlementConfigurationError):
        await settler.settle("ghost", 1500.0)
    assert settlement_stub.requests == []
    assert sleep.delays == []


async def test_concurrent_settlement_of_same_order_is_rejected(store, gateway, policy):
    gate = asyncio.Event()

    async def blocking_sleep(seconds: float) -> None:
        await gate.wait()

    settler = InProcessSettler(store, gateway, policy, sleep=blocking_sleep)
    order = store.save(Order(customer_id="c-1", total=1500.0))

    first = asyncio.create_task(settler.settle(order.id, order.total))
    await asyncio.sleep(0.01)
    with pytest.raises(WrongStateError):
        await settler.settle(order.id, order.total)

    gate.set()
    result = await first
    assert result.status is OrderStatus.FAILED_PAYMENT
    assert store.get(order.id).status is OrderStatus.FAILED_PAYMENT
