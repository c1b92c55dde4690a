"""
Shared configuration management for the bundle pricing engine.
"""

from decimal import Decimal
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PRICING_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Strategy selection
    default_strategy_code: str = Field(default="default-pricing")
    strategies_file: Optional[str] = Field(default=None)
    strategy_cache_ttl_seconds: float = Field(default=60.0, ge=0)

    # Catalog
    catalog_file: Optional[str] = Field(default=None)

    # Pricing defaults
    default_currency: str = Field(default="USD")
    default_group: Optional[str] = Field(default=None)
    default_payment_method: str = Field(default="ISRAELI_CARD")
    default_discount_per_day: Decimal = Field(default=Decimal("0"), ge=0)

    # Bounds
    min_duration_days: int = Field(default=1, ge=1)
    max_duration_days: int = Field(default=365, ge=1)
    max_price: Decimal = Field(default=Decimal("100000"))

    # Batch streaming
    batch_max_concurrency: int = Field(default=8, ge=1)
    stream_queue_size: int = Field(default=100, ge=1)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
