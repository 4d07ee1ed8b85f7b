"""Exception hierarchy shared by the order, catalog and settlement layers."""


class OrderServiceError(Exception):
    """Base class for all errors raised by this package."""


class OrderNotFoundError(OrderServiceError):
    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class WrongStateError(OrderServiceError):
    """A mutation was attempted on an order that is not in the required state."""


class InvalidProductsError(OrderServiceError):
    """One or more requested product ids could not be resolved in the catalog."""

    def __init__(self, invalid_ids: list[str]) -> None:
        super().__init__("Invalid product ids: " + ", ".join(invalid_ids))
        self.invalid_ids = list(invalid_ids)


# ── Catalog ──────────────────────────────────────────────────────────


class CatalogError(OrderServiceError):
    def __init__(self, product_id: str, message: str) -> None:
        super().__init__(message)
        self.product_id = product_id


class ProductNotFoundError(CatalogError):
    pass


class CatalogTransientError(CatalogError):
    """Network failure, timeout or 5xx from the catalog."""


class CatalogInvalidResponseError(CatalogError):
    """Any other non-2xx status, or a body that is not a product."""


# ── Settlement ───────────────────────────────────────────────────────


class SettlementFailedError(OrderServiceError):
    """A settlement endpoint call failed (non-2xx, timeout, connection error)."""

    def __init__(self, order_id: str, endpoint: str, reason: str) -> None:
        super().__init__(f"Settlement of order {order_id} via {endpoint} failed: {reason}")
        self.order_id = order_id
        self.endpoint = endpoint
        self.reason = reason


class SettlementConfigurationError(OrderServiceError):
    """Settlement was started for an order the store does not know.

    Permanent: never retried.
    """
