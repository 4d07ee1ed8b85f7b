"""
Settlement runners.

Both runners drive the same `run_settlement` loop and block the caller until
the order reaches PAID or FAILED_PAYMENT:

  - `TemporalSettler` starts `SettleOrderWorkflow` (workflow id
    ``settle-order-<orderId>``) and waits for its result. Temporal refuses a
    second running workflow with the same id, which keeps settlement of one
    order single-flight across every process talking to the cluster.
  - `InProcessSettler` runs the loop in the current event loop with
    `asyncio.sleep` backoff. It keeps its own in-flight set for the same
    single-flight guarantee within one process.
"""

import asyncio
import logging
import threading
from collections.abc import Awaitable, Callable

from temporalio.client import Client, WorkflowFailureError
from temporalio.exceptions import ApplicationError, WorkflowAlreadyStartedError

from temporal_orders.domain.errors import (
    OrderNotFoundError,
    SettlementConfigurationError,
    WrongStateError,
)
from temporal_orders.domain.models import (
    OrderStatus,
    SettlementAttempt,
    SettlementRequest,
    SettlementResult,
)
from temporal_orders.domain.settlement import SettlementPolicy, run_settlement
from temporal_orders.services.orders import apply_terminal_status
from temporal_orders.services.payment import PaymentGateway
from temporal_orders.services.store import OrderStateStore
from temporal_orders.workflows import SettleOrderInput, SettleOrderWorkflow

logger = logging.getLogger(__name__)


def settlement_workflow_id(order_id: str) -> str:
    return f"settle-order-{order_id}"


class _LocalSteps:
    def __init__(
        self,
        store: OrderStateStore,
        gateway: PaymentGateway,
        sleep: Callable[[float], Awaitable[None]],
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._sleep = sleep

    async def require_order(self, order_id: str) -> None:
        if self._store.get(order_id) is None:
            raise SettlementConfigurationError(f"Settlement started for unknown order {order_id}")

    async def invoke(self, attempt: SettlementAttempt) -> None:
        await self._gateway.settle(attempt)

    async def mark_paid(self, order_id: str) -> None:
        self._mark(order_id, OrderStatus.PAID)

    async def mark_failed(self, order_id: str) -> None:
        self._mark(order_id, OrderStatus.FAILED_PAYMENT)

    async def sleep(self, seconds: float) -> None:
        await self._sleep(seconds)

    def _mark(self, order_id: str, status: OrderStatus) -> None:
        try:
            apply_terminal_status(self._store, order_id, status)
        except OrderNotFoundError as e:
            raise SettlementConfigurationError(f"Cannot mark unknown order {order_id} as {status.value}") from e


class InProcessSettler:
    def __init__(
        self,
        store: OrderStateStore,
        gateway: PaymentGateway,
        policy: SettlementPolicy,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._steps = _LocalSteps(store, gateway, sleep)
        self._policy = policy
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    async def settle(self, order_id: str, amount: float) -> SettlementResult:
        with self._lock:
            if order_id in self._in_flight:
                raise WrongStateError(f"Settlement of order {order_id} is already in progress")
            self._in_flight.add(order_id)
        try:
            state = self._policy.new_retry_state(SettlementRequest(order_id=order_id, amount=amount))
            return await run_settlement(state, self._steps)
        finally:
            with self._lock:
                self._in_flight.discard(order_id)


class TemporalSettler:
    def __init__(
        self,
        client: Client,
        task_queue: str,
        policy: SettlementPolicy,
        attempt_timeout_seconds: float = 10.0,
    ) -> None:
        self._client = client
        self._task_queue = task_queue
        self._policy = policy
        self._attempt_timeout_seconds = attempt_timeout_seconds

    async def settle(self, order_id: str, amount: float) -> SettlementResult:
        workflow_id = settlement_workflow_id(order_id)
        logger.info("Starting workflow %s", workflow_id)
        input = SettleOrderInput(
            request=SettlementRequest(order_id=order_id, amount=amount),
            policy=self._policy,
            attempt_timeout_seconds=self._attempt_timeout_seconds,
        )
        try:
            return await self._client.execute_workflow(
                SettleOrderWorkflow.run,
                input,
                id=workflow_id,
                task_queue=self._task_queue,
            )
        except WorkflowAlreadyStartedError as e:
            raise WrongStateError(f"Settlement of order {order_id} is already in progress") from e
        except WorkflowFailureError as e:
            cause = e.cause
            if isinstance(cause, ApplicationError) and cause.type == SettlementConfigurationError.__name__:
                raise SettlementConfigurationError(cause.message) from e
            raise
