"""
Simple factory for service singletons.

The **Factory pattern** centralises service construction. Activities call
`ServiceFactory.get_*()` instead of instantiating services themselves, so the
worker process shares one order store, one price cache and one HTTP client
per upstream.

`ServiceFactory.reset()` drops every cached instance; tests use it (together
with `configure()`) to swap in stubbed HTTP transports or different settings.
"""

from temporal_orders.config import Settings, get_settings
from temporal_orders.domain.pricing import PriceResolver
from temporal_orders.services.catalog import CatalogClient
from temporal_orders.services.orders import OrderService
from temporal_orders.services.payment import PaymentGateway
from temporal_orders.services.price_cache import PriceCache
from temporal_orders.services.store import InMemoryOrderStore, OrderStateStore


class ServiceFactory:
    """Lazily creates and caches service instances (class-level singletons)."""

    _settings: Settings | None = None
    _catalog: CatalogClient | None = None
    _price_cache: PriceCache | None = None
    _store: OrderStateStore | None = None
    _orders: OrderService | None = None
    _payment: PaymentGateway | None = None

    @classmethod
    def configure(
        cls,
        settings: Settings | None = None,
        catalog: CatalogClient | None = None,
        store: OrderStateStore | None = None,
        payment: PaymentGateway | None = None,
    ) -> None:
        """Pre-seed instances; anything left as None is built lazily as usual."""
        cls.reset()
        cls._settings = settings
        cls._catalog = catalog
        cls._store = store
        cls._payment = payment

    @classmethod
    def reset(cls) -> None:
        cls._settings = None
        cls._catalog = None
        cls._price_cache = None
        cls._store = None
        cls._orders = None
        cls._payment = None

    @classmethod
    def get_settings(cls) -> Settings:
        if cls._settings is None:
            cls._settings = get_settings()
        return cls._settings

    @classmethod
    def get_catalog_client(cls) -> CatalogClient:
        if cls._catalog is None:
            settings = cls.get_settings()
            cls._catalog = CatalogClient(settings.catalog_base_url, settings.catalog_timeout_seconds)
        return cls._catalog

    @classmethod
    def get_price_cache(cls) -> PriceCache:
        if cls._price_cache is None:
            settings = cls.get_settings()
            cls._price_cache = PriceCache(
                cls.get_catalog_client(),
                ttl_seconds=settings.cache_ttl_seconds,
                enabled=settings.cache_enabled,
            )
        return cls._price_cache

    @classmethod
    def get_order_store(cls) -> OrderStateStore:
        if cls._store is None:
            cls._store = InMemoryOrderStore()
        return cls._store

    @classmethod
    def get_order_service(cls) -> OrderService:
        if cls._orders is None:
            cls._orders = OrderService(cls.get_order_store(), PriceResolver(cls.get_price_cache()))
        return cls._orders

    @classmethod
    def get_payment_gateway(cls) -> PaymentGateway:
        if cls._payment is None:
            cls._payment = PaymentGateway(cls.get_settings().settlement_timeout_seconds)
        return cls._payment
