"""
Temporal workflow — SettleOrderWorkflow.

A Temporal **workflow** is a durable, fault-tolerant function that orchestrates
the execution of activities. The Temporal server persists its state at every
`await` point, so if the worker crashes the workflow automatically resumes
from the last checkpoint — including mid-backoff.

Key constraints inside a workflow:
  - Must be **deterministic**: no I/O, no randomness, no system clock.
    (Use activities for side-effects; timers for waiting.)
  - Use `workflow.execute_activity(...)` to dispatch work to activities.
  - Use `workflow.logger` instead of the stdlib `logging` module.

Retries of the settlement endpoint are NOT delegated to Temporal's activity
retry policy. The endpoint activity runs with `maximum_attempts=1` and the
backoff loop in `domain.settlement.run_settlement` owns the attempt counter
and the delays, so the retry schedule is explicit and queryable.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError, ApplicationError

# ── Sandbox-safe imports ─────────────────────────────────────────────
# Temporal runs workflows inside a restricted sandbox that intercepts imports
# to enforce determinism. Pydantic, httpx and our own modules use constructs
# the sandbox would flag, so they are passed through. This is safe because
# the workflow only uses them for data modelling and the deterministic loop.
with workflow.unsafe.imports_passed_through():
    from pydantic import BaseModel, Field

    from temporal_orders.activities import (
        invoke_settlement_endpoint,
        mark_order_failed,
        mark_order_paid,
        require_order,
    )
    from temporal_orders.domain.errors import SettlementConfigurationError, SettlementFailedError
    from temporal_orders.domain.models import OrderRef, SettlementAttempt, SettlementRequest, SettlementResult
    from temporal_orders.domain.settlement import RetryState, SettlementPolicy, run_settlement


class SettleOrderInput(BaseModel):
    """Workflow input: what to settle and the policy to settle it with.

    The policy travels with the input because a workflow cannot read
    configuration itself.
    """

    request: SettlementRequest
    policy: SettlementPolicy
    attempt_timeout_seconds: float = Field(10.0, gt=0)


# Status marks are plain store writes; let Temporal retry those a few times,
# except for errors that can never succeed.
_MARK_RETRY_POLICY = RetryPolicy(
    maximum_attempts=5,
    initial_interval=timedelta(seconds=1),
    backoff_coefficient=2.0,
    non_retryable_error_types=[SettlementConfigurationError.__name__],
)


class _ActivitySteps:
    """SettlementSteps backed by Temporal activities and durable timers."""

    def __init__(self, attempt_timeout: timedelta) -> None:
        self._attempt_timeout = attempt_timeout

    async def require_order(self, order_id: str) -> None:
        # One short lookup; an unknown order never becomes known by retrying.
        await self._store_activity(require_order, order_id, RetryPolicy(maximum_attempts=1))

    async def invoke(self, attempt: SettlementAttempt) -> None:
        try:
            await workflow.execute_activity(
                invoke_settlement_endpoint,
                attempt,
                start_to_close_timeout=self._attempt_timeout,
                retry_policy=RetryPolicy(maximum_attempts=1),
            )
        except ActivityError as e:
            reason = e.cause.message if isinstance(e.cause, ApplicationError) else str(e.cause or e)
            raise SettlementFailedError(attempt.order_id, attempt.endpoint, reason) from e

    async def mark_paid(self, order_id: str) -> None:
        await self._store_activity(mark_order_paid, order_id, _MARK_RETRY_POLICY)

    async def mark_failed(self, order_id: str) -> None:
        await self._store_activity(mark_order_failed, order_id, _MARK_RETRY_POLICY)

    async def sleep(self, seconds: float) -> None:
        # asyncio.sleep inside a workflow becomes a durable server-side timer.
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def _store_activity(
        self,
        fn: Callable[[OrderRef], Awaitable[bool]],
        order_id: str,
        retry_policy: RetryPolicy,
    ) -> None:
        try:
            await workflow.execute_activity(
                fn,
                OrderRef(order_id=order_id),
                start_to_close_timeout=timedelta(seconds=10),
                retry_policy=retry_policy,
            )
        except ActivityError as e:
            cause = e.cause
            if isinstance(cause, ApplicationError) and cause.type == SettlementConfigurationError.__name__:
                # Re-raise as the workflow's own failure so callers see the type directly.
                raise ApplicationError(cause.message, type=cause.type, non_retryable=True) from e
            raise


@workflow.defn
class SettleOrderWorkflow:
    """Settles one order: route by amount, retry with backoff, mark terminal status.

    Supports:
        - **Query** `get_status`: attempts so far, current delay and outcome.
    """

    def __init__(self) -> None:
        self.state: RetryState | None = None

    @workflow.query
    def get_status(self) -> dict:
        if self.state is None:
            return {"order_id": None}
        return {
            "order_id": self.state.order_id,
            "amount": self.state.amount,
            "endpoint": self.state.endpoint,
            "attempts": self.state.attempts,
            "max_attempts": self.state.max_attempts,
            "current_delay_seconds": self.state.current_delay_seconds,
            "last_error": self.state.last_error,
            "outcome": self.state.outcome.value if self.state.outcome else None,
        }

    @workflow.run
    async def run(self, input: SettleOrderInput) -> SettlementResult:
        self.state = input.policy.new_retry_state(input.request)
        steps = _ActivitySteps(timedelta(seconds=input.attempt_timeout_seconds))
        return await run_settlement(self.state, steps, workflow.logger)
