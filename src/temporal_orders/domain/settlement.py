"""
Payment settlement: threshold routing and the bounded exponential-backoff loop.

The loop is written once, as a plain async function over a small `SettlementSteps`
protocol, and driven by two runners:

  - `SettleOrderWorkflow` (workflows.py) plugs in Temporal activities and
    durable timers.
  - `InProcessSettler` (services/settler.py) plugs in the services directly
    and `asyncio.sleep`.

IMPORTANT: Everything in this module runs inside the Temporal workflow
sandbox, so it MUST be deterministic — no I/O, no randomness, no system clock.
All side-effects go through the `steps` object.

Sequence for one `run_settlement` call:

    require order (missing → SettlementConfigurationError, nothing invoked)

    select endpoint (once) → invoke ─ ok ──────────────────────→ mark PAID
                               │
                               └ fail → sleep(d1) → invoke ─ ok → mark PAID
                                            ...
                                 after 1 + max_redeliveries failures → mark FAILED_PAYMENT
"""

import logging
from typing import Protocol

from pydantic import BaseModel, Field

from temporal_orders.config import Settings
from temporal_orders.domain.errors import SettlementFailedError
from temporal_orders.domain.models import (
    OrderStatus,
    SettlementAttempt,
    SettlementRequest,
    SettlementResult,
)

logger = logging.getLogger(__name__)


class SettlementPolicy(BaseModel):
    """Routing and retry configuration for one settlement."""

    success_url: str
    failure_url: str
    amount_threshold: float = 1000.0
    max_redeliveries: int = Field(3, ge=0)
    initial_delay_seconds: float = Field(1.0, ge=0)
    backoff_multiplier: float = Field(2.0, ge=1.0)
    max_delay_seconds: float = Field(60.0, ge=0)

    @classmethod
    def from_settings(cls, settings: Settings) -> "SettlementPolicy":
        return cls(
            success_url=settings.success_url,
            failure_url=settings.failure_url,
            amount_threshold=settings.amount_threshold,
            max_redeliveries=settings.max_redeliveries,
            initial_delay_seconds=settings.redelivery_delay_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            max_delay_seconds=settings.max_redelivery_delay_seconds,
        )

    def select_endpoint(self, amount: float) -> str:
        # Inclusive threshold: exactly 1000 still goes to the success endpoint.
        if amount <= self.amount_threshold:
            return self.success_url
        return self.failure_url

    def new_retry_state(self, request: SettlementRequest) -> "RetryState":
        return RetryState(
            order_id=request.order_id,
            amount=request.amount,
            endpoint=self.select_endpoint(request.amount),
            max_attempts=1 + self.max_redeliveries,
            initial_delay_seconds=self.initial_delay_seconds,
            backoff_multiplier=self.backoff_multiplier,
            max_delay_seconds=self.max_delay_seconds,
        )


class RetryState(BaseModel):
    """Progress of one settlement attempt sequence.

    Lives only as long as the sequence that owns it; never persisted with
    the order.
    """

    order_id: str
    amount: float
    endpoint: str
    max_attempts: int = Field(..., ge=1)
    initial_delay_seconds: float
    backoff_multiplier: float
    max_delay_seconds: float
    attempts: int = 0
    current_delay_seconds: float = 0.0
    last_error: str | None = None
    outcome: OrderStatus | None = None

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_attempt(self) -> SettlementAttempt:
        self.attempts += 1
        return SettlementAttempt(
            order_id=self.order_id,
            amount=self.amount,
            endpoint=self.endpoint,
            attempt=self.attempts,
        )

    def next_delay(self) -> float:
        """Delay before retry k (k = 1 is the first retry) = initial * multiplier^(k-1)."""
        retry_number = self.attempts  # attempts so far == index of the upcoming retry
        delay = self.initial_delay_seconds * self.backoff_multiplier ** (retry_number - 1)
        self.current_delay_seconds = min(delay, self.max_delay_seconds)
        return self.current_delay_seconds


class SettlementSteps(Protocol):
    """Side-effects the settlement loop needs from its runner."""

    async def require_order(self, order_id: str) -> None:
        """Raise SettlementConfigurationError if the store does not know the order."""
        ...

    async def invoke(self, attempt: SettlementAttempt) -> None:
        """Call the endpoint; raise SettlementFailedError on any failure."""
        ...

    async def mark_paid(self, order_id: str) -> None: ...

    async def mark_failed(self, order_id: str) -> None: ...

    async def sleep(self, seconds: float) -> None: ...


async def run_settlement(
    state: RetryState,
    steps: SettlementSteps,
    log: logging.Logger | logging.LoggerAdapter = logger,
) -> SettlementResult:
    """Drive `state` to a terminal outcome, issuing exactly one terminal mark."""
    log.info(
        "Settling order %s (amount %s) via %s, up to %d attempts",
        state.order_id,
        state.amount,
        state.endpoint,
        state.max_attempts,
    )

    # A missing order is permanent: fail before any endpoint is called.
    await steps.require_order(state.order_id)

    while True:
        attempt = state.next_attempt()
        try:
            await steps.invoke(attempt)
        except SettlementFailedError as err:
            state.last_error = err.reason
            if state.exhausted:
                log.warning(
                    "Order %s: attempt %d/%d failed (%s); retries exhausted",
                    state.order_id,
                    attempt.attempt,
                    state.max_attempts,
                    err.reason,
                )
                break
            delay = state.next_delay()
            log.info(
                "Order %s: attempt %d/%d failed (%s); retrying in %.3fs",
                state.order_id,
                attempt.attempt,
                state.max_attempts,
                err.reason,
                delay,
            )
            await steps.sleep(delay)
            continue

        # Any 2xx settles the order, whichever endpoint was chosen.
        await steps.mark_paid(state.order_id)
        state.outcome = OrderStatus.PAID
        log.info("Order %s paid after %d attempt(s)", state.order_id, state.attempts)
        return _result(state, OrderStatus.PAID)

    await steps.mark_failed(state.order_id)
    state.outcome = OrderStatus.FAILED_PAYMENT
    log.info("Order %s marked FAILED_PAYMENT after %d attempt(s)", state.order_id, state.attempts)
    return _result(state, OrderStatus.FAILED_PAYMENT)


def _result(state: RetryState, outcome: OrderStatus) -> SettlementResult:
    return SettlementResult(
        order_id=state.order_id,
        status=outcome,
        endpoint=state.endpoint,
        attempts=state.attempts,
    )
