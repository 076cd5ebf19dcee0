"""
Data models for storefront-commerce.
Pydantic models for the catalog, purchase requests, persisted records,
provider payloads, payment cards and the subscription summary.
"""

from storefront_commerce.models.commerce import (
    PurchaseLineItem,
    PurchaseLineItemWithOffer,
    TransactionResult,
    TransactionResultLineItem,
)
from storefront_commerce.models.entities import (
    CommerceOperationType,
    CustomerPurchaseEntity,
    CustomerSubscriptionEntity,
)
from storefront_commerce.models.offers import PartnerOffer
from storefront_commerce.models.payment import PaymentCard, PaymentConfiguration
from storefront_commerce.models.provider import (
    ProviderOrder,
    ProviderOrderLineItem,
    ProviderSubscription,
)
from storefront_commerce.models.summary import (
    SubscriptionHistoryItem,
    SubscriptionsSummary,
    SubscriptionSummaryItem,
)

__all__ = [
    # From models.commerce
    "PurchaseLineItem",
    "PurchaseLineItemWithOffer",
    "TransactionResult",
    "TransactionResultLineItem",
    # From models.entities
    "CommerceOperationType",
    "CustomerPurchaseEntity",
    "CustomerSubscriptionEntity",
    # From models.offers
    "PartnerOffer",
    # From models.payment
    "PaymentCard",
    "PaymentConfiguration",
    # From models.provider
    "ProviderOrder",
    "ProviderOrderLineItem",
    "ProviderSubscription",
    # From models.summary
    "SubscriptionHistoryItem",
    "SubscriptionsSummary",
    "SubscriptionSummaryItem",
]
