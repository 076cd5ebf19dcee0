"""
Repository and collaborator interfaces for storefront-commerce.
"""

from storefront_commerce.repositories.interfaces import (
    ICustomerPurchasesRepository,
    ICustomerSubscriptionsRepository,
    IPartnerOffersRepository,
    IPaymentGateway,
    ISubscriptionProvider,
)

__all__ = [
    "ICustomerPurchasesRepository",
    "ICustomerSubscriptionsRepository",
    "IPartnerOffersRepository",
    "IPaymentGateway",
    "ISubscriptionProvider",
]
