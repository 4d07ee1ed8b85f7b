"""
Shared fixtures: a controllable clock, stubbed catalog/settlement HTTP
transports and a fully wired OrderService that never touches the network.
"""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from temporal_orders.domain.pricing import PriceResolver
from temporal_orders.domain.settlement import SettlementPolicy
from temporal_orders.services.catalog import CatalogClient
from temporal_orders.services.orders import OrderService
from temporal_orders.services.payment import PaymentGateway
from temporal_orders.services.price_cache import PriceCache
from temporal_orders.services.settler import InProcessSettler
from temporal_orders.services.store import InMemoryOrderStore

CATALOG_URL = "https://catalog.test"
SUCCESS_URL = "https://pay.test/http/200"
FAILURE_URL = "https://pay.test/http/500"

PRODUCTS: dict[str, dict[str, Any]] = {
    "1": {"id": 1, "title": "iPhone 12", "price": 999.99, "discountPercentage": 10.0, "brand": "Apple"},
    "2": {"id": 2, "title": "Mascara", "price": 10.0, "discountPercentage": 0.0},
    "3": {"id": 3, "title": "Sofa", "price": 100.0, "discountPercentage": 50.0},
    "4": {"id": 4, "title": "Desk", "price": 600.0, "discountPercentage": 0.0},
}


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class CatalogStub:
    """Serves PRODUCTS under /products/<id> and counts requests per id."""

    def __init__(self, products: dict[str, dict[str, Any]] | None = None) -> None:
        self.products = dict(PRODUCTS if products is None else products)
        self.calls: list[str] = []
        self.fail_with: dict[str, int | Exception] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        pid = request.url.path.rsplit("/", 1)[-1]
        self.calls.append(pid)
        failure = self.fail_with.get(pid)
        if isinstance(failure, Exception):
            raise failure
        if isinstance(failure, int):
            return httpx.Response(failure, json={"message": "boom"})
        if pid not in self.products:
            return httpx.Response(404, json={"message": f"Product with id '{pid}' not found"})
        return httpx.Response(200, json=self.products[pid])

    def count(self, pid: str) -> int:
        return self.calls.count(pid)


class SettlementStub:
    """Answers settlement POSTs with a status per URL path (default 200).

    If `sequence` is non-empty, its statuses are served first, one per call.
    """

    def __init__(self, statuses: dict[str, int] | None = None) -> None:
        self.statuses = statuses or {"/http/200": 200, "/http/500": 500}
        self.sequence: list[int] = []
        self.requests: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((str(request.url), json.loads(request.content)))
        if self.sequence:
            return httpx.Response(self.sequence.pop(0))
        return httpx.Response(self.statuses.get(request.url.path, 200))

    def urls(self) -> list[str]:
        return [url for url, _ in self.requests]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def catalog_stub() -> CatalogStub:
    return CatalogStub()


@pytest.fixture
def settlement_stub() -> SettlementStub:
    return SettlementStub()


@pytest.fixture
def make_catalog(clock: FakeClock) -> Callable[[Callable[[httpx.Request], httpx.Response]], CatalogClient]:
    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> CatalogClient:
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return CatalogClient(CATALOG_URL, http_client=http, clock=clock)

    return _make


@pytest.fixture
def catalog(make_catalog, catalog_stub: CatalogStub) -> CatalogClient:
    return make_catalog(catalog_stub)


@pytest.fixture
def price_cache(catalog: CatalogClient, clock: FakeClock) -> PriceCache:
    return PriceCache(catalog, ttl_seconds=300.0, clock=clock)


@pytest.fixture
def policy() -> SettlementPolicy:
    return SettlementPolicy(
        success_url=SUCCESS_URL,
        failure_url=FAILURE_URL,
        max_redeliveries=3,
        initial_delay_seconds=0.1,
        backoff_multiplier=2.0,
    )


@pytest.fixture
def gateway(settlement_stub: SettlementStub) -> PaymentGateway:
    return PaymentGateway(http_client=httpx.AsyncClient(transport=httpx.MockTransport(settlement_stub)))


@pytest.fixture
def store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def settler(store, gateway, policy, sleep) -> InProcessSettler:
    return InProcessSettler(store, gateway, policy, sleep=sleep)


@pytest.fixture
def order_service(store, price_cache, settler) -> OrderService:
    return OrderService(store, PriceResolver(price_cache), settler)
