"""
Temporal activities — thin wrappers delegating to the service layer.

An **activity** is a single unit of work in a Temporal workflow. Activities are
where side-effects happen: network calls, database writes, file I/O, etc.

Key points:
  - Decorated with `@activity.defn` so Temporal can discover and invoke them.
  - Executed by a **worker** in response to tasks from a **task queue**.
  - Failures are reported as `ApplicationError`s whose `type` names the
    domain error, so the workflow can tell an endpoint failure (retry
    per the settlement policy) from a missing order (never retry).
  - A missing order is reported by `require_order` before any endpoint
    call, so it is never retried.
  - Each activity accepts a single Pydantic model as input, serialized by
    the pydantic_data_converter.
"""

import logging

from temporalio import activity
from temporalio.exceptions import ApplicationError

from temporal_orders.domain.errors import (
    OrderNotFoundError,
    SettlementConfigurationError,
    SettlementFailedError,
    WrongStateError,
)
from temporal_orders.domain.models import OrderRef, SettlementAttempt
from temporal_orders.services.factory import ServiceFactory

logger = logging.getLogger(__name__)


def _unknown_order(order_id: str) -> ApplicationError:
    return ApplicationError(
        f"Settlement started for unknown order {order_id}",
        type=SettlementConfigurationError.__name__,
        non_retryable=True,
    )


@activity.defn
async def require_order(input: OrderRef) -> bool:
    """Fail fast, and permanently, when the order is not in the store."""
    logger.info("Activity require_order started for order %s", input.order_id)
    if ServiceFactory.get_order_store().get(input.order_id) is None:
        raise _unknown_order(input.order_id)
    return True


@activity.defn
async def invoke_settlement_endpoint(input: SettlementAttempt) -> bool:
    """Call the chosen settlement endpoint once.

    Temporal is told not to retry this activity; the workflow's own backoff
    loop decides whether and when to call it again.
    """
    logger.info("Activity invoke_settlement_endpoint started for order %s (attempt %d)", input.order_id, input.attempt)
    try:
        await ServiceFactory.get_payment_gateway().settle(input)
    except SettlementFailedError as e:
        raise ApplicationError(str(e), type=SettlementFailedError.__name__) from e
    logger.info("Activity invoke_settlement_endpoint completed for order %s", input.order_id)
    return True


def _mark(input: OrderRef, paid: bool) -> bool:
    service = ServiceFactory.get_order_service()
    try:
        if paid:
            service.mark_paid(input.order_id)
        else:
            service.mark_failed(input.order_id)
    except OrderNotFoundError as e:
        raise _unknown_order(input.order_id) from e
    except WrongStateError as e:
        raise ApplicationError(str(e), type=WrongStateError.__name__, non_retryable=True) from e
    return True


@activity.defn
async def mark_order_paid(input: OrderRef) -> bool:
    logger.info("Activity mark_order_paid started for order %s", input.order_id)
    return _mark(input, paid=True)


@activity.defn
async def mark_order_failed(input: OrderRef) -> bool:
    logger.info("Activity mark_order_failed started for order %s", input.order_id)
    return _mark(input, paid=False)
