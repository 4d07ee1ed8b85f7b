"""
Runtime configuration.

Every tunable of the order service lives on a single `Settings` object read
from the environment (prefix ``ORDERS_``) or an optional ``.env`` file, e.g.::

    ORDERS_MAX_REDELIVERIES=5
    ORDERS_CACHE_TTL_SECONDS=60
    ORDERS_SUCCESS_URL=https://payments.example.com/settle

Defaults point at DummyJSON, which serves both the product catalog and the
canned ``/http/<status>`` endpoints used as settlement targets.
"""

from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ORDERS_", env_file=".env", extra="ignore")

    # ── Settlement routing ────────────────────────────────────────
    success_url: str = "https://dummyjson.com/http/200"
    failure_url: str = "https://dummyjson.com/http/500"
    amount_threshold: float = 1000.0  # inclusive: amount <= threshold -> success_url
    settlement_timeout_seconds: float = Field(10.0, gt=0)

    # ── Settlement retry / backoff ────────────────────────────────
    max_redeliveries: int = Field(3, ge=0)
    redelivery_delay_seconds: float = Field(1.0, ge=0)
    backoff_multiplier: float = Field(2.0, ge=1.0)
    max_redelivery_delay_seconds: float = Field(60.0, ge=0)

    # ── Product catalog ───────────────────────────────────────────
    catalog_base_url: str = "https://dummyjson.com"
    catalog_timeout_seconds: float = Field(5.0, gt=0)
    cache_enabled: bool = True
    cache_ttl_seconds: float = Field(300.0, ge=0)

    # ── Temporal ──────────────────────────────────────────────────
    temporal_address: str = "localhost:7233"
    task_queue: str = "order-payments"

    @model_validator(mode="after")
    def _check_delay_cap(self) -> "Settings":
        if self.max_redelivery_delay_seconds < self.redelivery_delay_seconds:
            raise ValueError("max_redelivery_delay_seconds must be >= redelivery_delay_seconds")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
