"""
Domain models for order pricing and payment settlement.

All models use Pydantic v2 BaseModel for automatic validation, serialization,
and deserialization. Temporal transmits workflow/activity inputs and outputs as
JSON payloads — Pydantic models serialize cleanly via the pydantic_data_converter
configured on both the client and the worker.

Enums inherit from (str, Enum) so they serialize as plain strings in JSON
(e.g. "PAID" instead of {"value": "PAID"}).
"""

import uuid
from enum import Enum

from pydantic import BaseModel, Field, computed_field


class OrderStatus(str, Enum):
    """Lifecycle status of an order.

    NEW is the only mutable state. PAID and FAILED_PAYMENT are terminal.
    """

    NEW = "NEW"
    PAID = "PAID"
    FAILED_PAYMENT = "FAILED_PAYMENT"

    @property
    def is_terminal(self) -> bool:
        return self is not OrderStatus.NEW


# ── Catalog ──────────────────────────────────────────────────────────


class PriceRecord(BaseModel):
    """Authoritative price data for one product, as fetched from the catalog."""

    product_id: str
    base_price: float = Field(..., ge=0)
    discount_percentage: float = Field(0.0, ge=0, le=100)
    fetched_at: float  # Clock reading (seconds) at fetch time
    title: str | None = None
    brand: str | None = None
    category: str | None = None

    # Always derived from base + discount so the two can never drift apart.
    @computed_field  # type: ignore[prop-decorator]
    @property
    def final_price(self) -> float:
        return self.base_price * (1 - self.discount_percentage / 100)


# ── Orders ───────────────────────────────────────────────────────────


class LineRequest(BaseModel):
    """One requested line as submitted by a client.

    `unit_price` is accepted for compatibility with clients that send it,
    but it is never used: prices always come from the catalog.
    """

    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0)
    unit_price: float | None = None


class OrderLine(BaseModel):
    product_id: str
    quantity: int = Field(..., gt=0)
    unit_price: float  # Resolved catalog final price


def _new_order_id() -> str:
    return uuid.uuid4().hex


class Order(BaseModel):
    id: str = Field(default_factory=_new_order_id)
    customer_id: str = Field(..., min_length=1)
    lines: list[OrderLine] = Field(default_factory=list)
    total: float = 0.0
    status: OrderStatus = OrderStatus.NEW


# ── Workflow input / output ──────────────────────────────────────────


class SettlementRequest(BaseModel):
    """Input to SettleOrderWorkflow.

    The order id travels as an explicit field for the whole retry sequence;
    nothing downstream depends on transport metadata to recover it.
    """

    order_id: str = Field(..., min_length=1)
    amount: float = Field(..., ge=0)


class SettlementResult(BaseModel):
    """Final result returned by the settlement workflow."""

    order_id: str
    status: OrderStatus
    endpoint: str
    attempts: int  # Total endpoint invocations, first attempt included


# ── Activity payload models ──────────────────────────────────────────


class SettlementAttempt(BaseModel):
    """Payload for the invoke_settlement_endpoint activity."""

    order_id: str
    amount: float
    endpoint: str
    attempt: int = Field(..., ge=1)


class OrderRef(BaseModel):
    """Payload for the mark_order_paid / mark_order_failed activities."""

    order_id: str
