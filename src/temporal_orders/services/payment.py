"""
Settlement endpoint gateway.

Part of the **service layer** that encapsulates external operations behind
clean interfaces. Settlement is a single POST of ``{"orderId", "amount"}`` to
whichever endpoint the routing rule picked; only the status code matters.

Activities delegate to services (not the other way around), keeping the
Temporal-specific code separate from business logic.
"""

import logging

import httpx

from temporal_orders.domain.errors import SettlementFailedError
from temporal_orders.domain.models import SettlementAttempt

logger = logging.getLogger(__name__)


class PaymentGateway:
    """Invokes a settlement endpoint once.

    Any non-2xx response, timeout or connection error is raised as
    SettlementFailedError; retrying is the caller's decision.
    """

    def __init__(self, timeout_seconds: float = 10.0, http_client: httpx.AsyncClient | None = None) -> None:
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def settle(self, attempt: SettlementAttempt) -> None:
        logger.info(
            "Settling order %s for %.2f via %s (attempt %d)",
            attempt.order_id,
            attempt.amount,
            attempt.endpoint,
            attempt.attempt,
        )
        try:
            resp = await self._client.post(
                attempt.endpoint,
                json={"orderId": attempt.order_id, "amount": attempt.amount},
            )
        except httpx.TimeoutException as e:
            raise SettlementFailedError(attempt.order_id, attempt.endpoint, f"timeout: {e}") from e
        except httpx.RequestError as e:
            raise SettlementFailedError(attempt.order_id, attempt.endpoint, f"request error: {e}") from e

        if not resp.is_success:
            raise SettlementFailedError(attempt.order_id, attempt.endpoint, f"HTTP {resp.status_code}")
        logger.info("Settlement accepted for order %s (HTTP %d)", attempt.order_id, resp.status_code)
