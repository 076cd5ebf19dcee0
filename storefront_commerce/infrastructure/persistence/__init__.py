"""
Redis persistence: customer subscriptions, purchase ledger and offer catalog.
"""

from .customer_purchases_repository import RedisCustomerPurchasesRepository
from .customer_subscriptions_repository import RedisCustomerSubscriptionsRepository
from .partner_offers_repository import RedisPartnerOffersRepository
from .redis_client import RedisClient

__all__ = [
    "RedisClient",
    "RedisCustomerPurchasesRepository",
    "RedisCustomerSubscriptionsRepository",
    "RedisPartnerOffersRepository",
]
