"""
Application domain: the collaborators shared by every request.

Built once at process start and passed explicitly to request handlers. Holds
the Redis stores, the offer catalog, the Partner Center client, the payment
HTTP client and the per-subscription lock registry, and creates the
per-request objects (payment gateways, commerce operations).

Example:
    >>> domain = await ApplicationDomain.initialize(settings)
    >>> gateway = domain.create_payment_gateway(card, "Customer c-1 - added subscriptions")
    >>> result = await domain.commerce_operations("c-1", gateway).purchase(line_items)
    >>> await domain.aclose()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import httpx
from pydantic import ValidationError

from storefront_commerce.config.settings import StorefrontSettings
from storefront_commerce.core.exceptions import CommerceDomainError, ErrorCode
from storefront_commerce.core.locks import SubscriptionLockRegistry
from storefront_commerce.core.metrics import PerformanceMetrics, metrics as default_metrics
from storefront_commerce.infrastructure.logging import configure_logging
from storefront_commerce.infrastructure.payments import (
    PayPalGateway,
    PayPalTokenProvider,
    create_paypal_http_client,
)
from storefront_commerce.infrastructure.persistence import (
    RedisClient,
    RedisCustomerPurchasesRepository,
    RedisCustomerSubscriptionsRepository,
    RedisPartnerOffersRepository,
)
from storefront_commerce.infrastructure.provider import (
    AadTokenProvider,
    PartnerCenterClient,
    create_partner_center_http_client,
)
from storefront_commerce.infrastructure.resilience import CircuitBreaker
from storefront_commerce.models import PaymentCard, PaymentConfiguration
from storefront_commerce.repositories.interfaces import (
    ICustomerPurchasesRepository,
    ICustomerSubscriptionsRepository,
    IPartnerOffersRepository,
    IPaymentGateway,
    ISubscriptionProvider,
)
from storefront_commerce.services.commerce import CommerceOperations, SubscriptionSummaryService
from storefront_commerce.services.commerce.pricing import utc_now

logger = logging.getLogger(__name__)


@dataclass
class ApplicationDomain:
    """Shared, configured collaborators of the storefront."""

    settings: StorefrontSettings
    redis: RedisClient
    offers_repository: IPartnerOffersRepository
    customer_subscriptions_repository: ICustomerSubscriptionsRepository
    customer_purchases_repository: ICustomerPurchasesRepository
    subscription_provider: ISubscriptionProvider
    payment_http_client: httpx.AsyncClient
    provider_http_client: Optional[httpx.AsyncClient] = None
    subscription_locks: SubscriptionLockRegistry = field(default_factory=SubscriptionLockRegistry)
    metrics: PerformanceMetrics = field(default_factory=lambda: default_metrics)
    clock: Callable[[], datetime] = utc_now
    _payment_tokens: Optional[PayPalTokenProvider] = field(default=None, init=False, repr=False)

    @classmethod
    async def initialize(
        cls,
        settings: StorefrontSettings,
        *,
        redis_client: Optional[RedisClient] = None,
        payment_http_client: Optional[httpx.AsyncClient] = None,
        provider_http_client: Optional[httpx.AsyncClient] = None,
        setup_logging: bool = True,
    ) -> "ApplicationDomain":
        """
        Build the domain from settings and connect to Redis.

        Clients passed in are used as is; the rest are created from settings.

        Raises:
            RepositoryError: Redis is unreachable.
        """
        if setup_logging:
            configure_logging(
                level=settings.log_level,
                json_output=settings.log_format == "json",
                service_name=settings.service_name,
            )

        logger.info(f"🚀 Initializing application domain ({settings.service_name})")

        redis = redis_client or RedisClient(settings.redis_url, key_prefix=settings.redis_key_prefix)
        await redis.connect()

        payment_http_client = payment_http_client or create_paypal_http_client(
            settings.paypal_mode, settings.payment_timeout_seconds
        )
        provider_http_client = provider_http_client or create_partner_center_http_client(
            settings.partner_center_api_endpoint, settings.provider_timeout_seconds
        )

        subscription_provider = PartnerCenterClient(
            provider_http_client,
            AadTokenProvider(
                provider_http_client,
                authority=settings.aad_endpoint,
                tenant_id=settings.partner_center_tenant_id,
                application_id=settings.partner_center_application_id,
                application_secret=settings.partner_center_application_secret,
            ),
            CircuitBreaker(
                name="partner-center",
                failure_threshold=settings.provider_cb_failure_threshold,
                open_seconds=settings.provider_cb_open_seconds,
            ),
        )

        domain = cls(
            settings=settings,
            redis=redis,
            offers_repository=RedisPartnerOffersRepository(
                redis, cache_ttl_seconds=settings.offers_cache_ttl_seconds
            ),
            customer_subscriptions_repository=RedisCustomerSubscriptionsRepository(redis),
            customer_purchases_repository=RedisCustomerPurchasesRepository(redis),
            subscription_provider=subscription_provider,
            payment_http_client=payment_http_client,
            provider_http_client=provider_http_client,
        )
        logger.info("✅ Application domain initialized")
        return domain

    def payment_configuration(self) -> PaymentConfiguration:
        """
        Raises:
            CommerceDomainError: INVALID_INPUT when the PayPal settings are incomplete.
        """
        try:
            return PaymentConfiguration(
                client_id=self.settings.paypal_client_id,
                client_secret=self.settings.paypal_client_secret,
                account_type=self.settings.paypal_mode,
            )
        except ValidationError as error:
            raise CommerceDomainError(
                ErrorCode.INVALID_INPUT, "payment gateway settings are incomplete"
            ).add_detail("ErrorMessage", str(error)) from error

    def create_payment_gateway(self, payment_card: PaymentCard, description: str) -> IPaymentGateway:
        """Gateway charging ``payment_card``, for one request."""
        if self._payment_tokens is None:
            self._payment_tokens = PayPalTokenProvider(self.payment_http_client, self.payment_configuration())

        return PayPalGateway(
            self.payment_http_client,
            self._payment_tokens,
            payment_card,
            description,
            currency_code=self.settings.currency_code,
        )

    def commerce_operations(self, customer_id: str, payment_gateway: IPaymentGateway) -> CommerceOperations:
        return CommerceOperations(
            customer_id,
            payment_gateway,
            offers_repository=self.offers_repository,
            customer_subscriptions_repository=self.customer_subscriptions_repository,
            customer_purchases_repository=self.customer_purchases_repository,
            subscription_provider=self.subscription_provider,
            subscription_locks=self.subscription_locks,
            clock=self.clock,
            metrics=self.metrics,
        )

    def subscription_summary(self) -> SubscriptionSummaryService:
        return SubscriptionSummaryService(
            self.offers_repository,
            self.customer_subscriptions_repository,
            self.customer_purchases_repository,
            renewal_window_days=self.settings.renewal_window_days,
            clock=self.clock,
        )

    async def validate_payment_configuration(
        self, configuration: Optional[PaymentConfiguration] = None
    ) -> None:
        """Check PayPal credentials, the configured ones by default."""
        await PayPalGateway.validate_configuration(
            self.payment_http_client, configuration or self.payment_configuration()
        )

    async def aclose(self) -> None:
        await self.payment_http_client.aclose()
        if self.provider_http_client is not None:
            await self.provider_http_client.aclose()
        await self.redis.disconnect()
        logger.info("🔌 Application domain closed")
