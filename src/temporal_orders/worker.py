"""
Temporal worker — polls the "order-payments" task queue.

A **worker** is a long-running process that connects to the Temporal server
and polls a **task queue** for work. When the server has a workflow task or
activity task ready, it dispatches it to a worker listening on the matching
task queue.

The worker must register:
  - **Workflows** it can execute (here: SettleOrderWorkflow)
  - **Activities** it can run (here: require_order,
    invoke_settlement_endpoint, mark_order_paid, mark_order_failed)

Activities write order status through `ServiceFactory`, i.e. into the order
store of the process hosting the worker. The CLI therefore runs the worker
embedded, next to the store its orders live in (see client.py).
"""

from temporalio.client import Client
from temporalio.worker import Worker

from temporal_orders.activities import (
    invoke_settlement_endpoint,
    mark_order_failed,
    mark_order_paid,
    require_order,
)
from temporal_orders.workflows import SettleOrderWorkflow

# Task queue name — a logical queue that connects clients to workers.
# The settler specifies it when starting a workflow, and the worker
# specifies it when polling. They must match for work to be routed.
TASK_QUEUE = "order-payments"


def build_worker(client: Client, task_queue: str = TASK_QUEUE) -> Worker:
    """Create (but do not start) a worker for settlement workflows.

    Use as ``async with build_worker(client): ...`` to run it for the
    duration of a block.
    """
    return Worker(
        client,
        task_queue=task_queue,
        workflows=[SettleOrderWorkflow],
        activities=[require_order, invoke_settlement_endpoint, mark_order_paid, mark_order_failed],
    )
