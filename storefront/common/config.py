from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_APP_NAME = "storefront-service"


class ServiceSettings(BaseSettings):
    """Settings shared by the storefront services."""

    app_name: str = Field(default=DEFAULT_APP_NAME)
    environment: Literal["local", "dev", "staging", "prod"] = Field(default="local")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    service_host: str = Field(default="0.0.0.0")
    service_port: int = Field(default=8000)
    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=False)
    tracing_endpoint: str | None = Field(default=None)
    tracing_protocol: Literal["http/protobuf", "grpc"] = Field(default="http/protobuf")
    tracing_insecure: bool = Field(default=True)
    tracing_sample_rate: float = Field(default=1.0, ge=0.0, le=1.0)
    database_url: str | None = Field(default=None)
    auto_create_schema: bool = Field(default=False)
    kafka_bootstrap_servers: str | None = Field(default=None)

    # Checkout
    currency: str = Field(default="INR", min_length=3, max_length=3)
    low_inventory_threshold: int = Field(default=5, ge=0)
    order_total_tolerance: Decimal = Field(default=Decimal("0.01"), ge=Decimal("0"))
    razorpay_key_id: str | None = Field(default=None)
    razorpay_key_secret: str | None = Field(default=None)
    razorpay_api_url: str = Field(default="https://api.razorpay.com/v1")
    payment_timeout_seconds: float = Field(default=10.0, gt=0.0)

    # Notifications
    fcm_project_id: str | None = Field(default=None)
    fcm_client_email: str | None = Field(default=None)
    fcm_private_key: str | None = Field(default=None)
    fcm_credentials_file: str | None = Field(default=None)
    fcm_api_url: str = Field(default="https://fcm.googleapis.com/v1")
    push_timeout_seconds: float = Field(default=5.0, gt=0.0)
    smtp_host: str | None = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_username: str | None = Field(default=None)
    smtp_password: str | None = Field(default=None)
    smtp_use_tls: bool = Field(default=True)
    email_from: str = Field(default='"E-com Store" <noreply@e-com.com>')

    model_config = SettingsConfigDict(
        env_file=(".env", ".env.local"), env_prefix="STOREFRONT_", extra="ignore"
    )


@lru_cache
def get_settings() -> ServiceSettings:
    """Return cached service settings."""

    return ServiceSettings()
