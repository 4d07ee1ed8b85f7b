"""
CLI — creates an order priced from the catalog and optionally pays it.

Usage:
    # Create an order (2 x product 1, 1 x product 5) and print it:
    python -m temporal_orders.client --customer-id c-42 --line 1:2 --line 5:1

    # Create and pay through Temporal (worker runs embedded in this process):
    python -m temporal_orders.client --customer-id c-42 --line 1:2 --pay

    # Create and pay without a Temporal server:
    python -m temporal_orders.client --customer-id c-42 --line 1:2 --pay --in-process

Settings come from ORDERS_* environment variables (see config.py).
"""

import argparse
import asyncio
import logging
import sys

from temporalio.client import Client

# Must match on every client and worker: Pydantic models cross the wire.
from temporalio.contrib.pydantic import pydantic_data_converter

from temporal_orders.config import Settings, get_settings
from temporal_orders.domain.errors import OrderServiceError
from temporal_orders.domain.models import LineRequest, Order
from temporal_orders.domain.settlement import SettlementPolicy
from temporal_orders.services.factory import ServiceFactory
from temporal_orders.services.orders import OrderService
from temporal_orders.services.settler import InProcessSettler, TemporalSettler
from temporal_orders.worker import build_worker


def parse_line(value: str) -> LineRequest:
    """Parse ``SKU:QTY`` (quantity defaults to 1)."""
    sku, sep, qty = value.partition(":")
    try:
        return LineRequest(product_id=sku, quantity=int(qty) if sep else 1)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"invalid line {value!r}: expected SKU:QTY") from e


async def _pay(service: OrderService, order: Order, settings: Settings, in_process: bool) -> Order:
    policy = SettlementPolicy.from_settings(settings)
    if in_process:
        service.use_settler(InProcessSettler(service.store, ServiceFactory.get_payment_gateway(), policy))
        return await service.pay_order(order.id)

    client = await Client.connect(settings.temporal_address, data_converter=pydantic_data_converter)
    service.use_settler(
        TemporalSettler(client, settings.task_queue, policy, settings.settlement_timeout_seconds)
    )
    async with build_worker(client, settings.task_queue):
        return await service.pay_order(order.id)


async def run_client(args: argparse.Namespace) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logger = logging.getLogger(__name__)

    settings = get_settings()
    ServiceFactory.configure(settings=settings)
    service = ServiceFactory.get_order_service()

    try:
        order = await service.create_order(args.customer_id, args.line)
        logger.info("Order %s created with total %.2f", order.id, order.total)
        if args.pay:
            order = await _pay(service, order, settings, args.in_process)
    except OrderServiceError as e:
        logger.error("%s", e)
        return 1
    finally:
        await ServiceFactory.get_catalog_client().aclose()
        await ServiceFactory.get_payment_gateway().aclose()

    print(order.model_dump_json(indent=2))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Create and pay an order")
    parser.add_argument("--customer-id", required=True, help="Customer identifier")
    parser.add_argument(
        "--line", required=True, action="append", type=parse_line, metavar="SKU:QTY", help="Order line (repeatable)"
    )
    parser.add_argument("--pay", action="store_true", help="Settle the order after creating it")
    parser.add_argument("--in-process", action="store_true", help="Settle without a Temporal server")
    sys.exit(asyncio.run(run_client(parser.parse_args())))


if __name__ == "__main__":
    main()
