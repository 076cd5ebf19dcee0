"""
Configuration of the storefront-commerce service.

Uses pydantic-settings to read environment variables, with support for a
.env file.

Supported environment variables:
- LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
- LOG_FORMAT: "json" or "human". Default: json
- SERVICE_NAME: Name stamped on structured logs. Default: storefront-commerce
- REDIS_URL: Redis holding the catalog and the customer stores.
- REDIS_KEY_PREFIX: Prefix of every key written by the service. Default: storefront
- OFFERS_CACHE_TTL_SECONDS: Lifetime of the in-process catalog cache. Default: 60
- CURRENCY_CODE: ISO currency charged by the payment gateway. Default: USD
- PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET: Merchant REST credentials.
- PAYPAL_MODE: "sandbox" or "live". Default: sandbox
- PAYMENT_TIMEOUT_SECONDS: Payment gateway HTTP timeout. Default: 30
- PARTNER_CENTER_API_ENDPOINT: Partner Center REST endpoint.
- PARTNER_CENTER_APPLICATION_ID / PARTNER_CENTER_APPLICATION_SECRET: App credentials.
- PARTNER_CENTER_TENANT_ID: Partner tenant (AAD domain or id).
- AAD_ENDPOINT: Azure Active Directory authority.
- PROVIDER_TIMEOUT_SECONDS: Provider HTTP timeout. Default: 30
- PROVIDER_CB_FAILURE_THRESHOLD / PROVIDER_CB_OPEN_SECONDS: Provider circuit breaker.
- RENEWAL_WINDOW_DAYS: Days before expiry from which renewal is offered. Default: 30
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorefrontSettings(BaseSettings):
    """Centralized service configuration, validated on load."""

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "human"] = "json"
    service_name: str = "storefront-commerce"

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_key_prefix: str = "storefront"
    offers_cache_ttl_seconds: float = Field(default=60.0, ge=0)

    # Payment gateway
    currency_code: str = Field(default="USD", min_length=3, max_length=3)
    paypal_client_id: str = ""
    paypal_client_secret: str = ""
    paypal_mode: Literal["sandbox", "live"] = "sandbox"
    payment_timeout_seconds: float = Field(default=30.0, gt=0)

    # Subscription provider
    partner_center_api_endpoint: str = "https://api.partnercenter.microsoft.com"
    partner_center_application_id: str = ""
    partner_center_application_secret: str = ""
    partner_center_tenant_id: str = ""
    aad_endpoint: str = "https://login.microsoftonline.com"
    provider_timeout_seconds: float = Field(default=30.0, gt=0)
    provider_cb_failure_threshold: int = Field(default=5, ge=1)
    provider_cb_open_seconds: float = Field(default=30.0, gt=0)

    # Subscription summary
    renewal_window_days: int = Field(default=30, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
settings = StorefrontSettings()
