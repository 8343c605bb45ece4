"""Application settings loaded from environment variables.

Protean's own configuration (databases, brokers, event store) lives in
``domain.toml``. These settings cover the payment gateway, the webhook secret
and the timing of the stuck-payment sweep.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Storefront settings (``STOREFRONT_`` prefixed environment variables)."""

    # Payment gateway
    gateway: str = Field(default="fake", description="Gateway adapter: fake or razorpay")
    gateway_key_id: str = Field(default="rzp_test_key", description="Public gateway key id")
    gateway_key_secret: str = Field(default="rzp_test_secret", description="Gateway API secret")
    gateway_base_url: str = Field(default="https://api.razorpay.com/v1", description="Gateway REST endpoint")
    gateway_timeout_seconds: float = Field(default=10.0, description="Timeout for gateway HTTP calls")
    webhook_secret: str = Field(default="whsec_storefront_dev", description="Shared webhook signing secret")
    currency: str = Field(default="INR", description="Currency orders are charged in")

    # Stuck-payment sweep
    payment_timeout_minutes: int = Field(default=30, description="Age after which a pending attempt is stuck")
    sweep_interval_minutes: int = Field(default=10, description="Interval between sweeps")
    sweeper_enabled: bool = Field(default=True, description="Run the sweeper inside the API process")

    # Application
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Render logs as JSON")

    model_config = SettingsConfigDict(
        env_prefix="STOREFRONT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("gateway")
    @classmethod
    def validate_gateway(cls, v: str) -> str:
        if v not in ("fake", "razorpay"):
            raise ValueError("gateway must be 'fake' or 'razorpay'")
        return v

    @field_validator("currency")
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.upper()


@lru_cache
def get_settings() -> Settings:
    """Return the cached settings instance."""
    return Settings()
