"""
Commerce services: pricing, the business transactions of the pipeline, the
operations facade and the subscription summary.
"""

from storefront_commerce.services.commerce.commerce_operations import (
    CommerceOperations,
    run_aggregated_transaction,
)
from storefront_commerce.services.commerce.subscription_summary import SubscriptionSummaryService
from storefront_commerce.services.commerce.transactions import (
    AuthorizePayment,
    CapturePayment,
    PersistNewlyPurchasedSubscriptions,
    PlaceOrder,
    PurchaseExtraSeats,
    RecordPurchase,
    RenewSubscription,
    UpdatePersistedSubscription,
)

__all__ = [
    "AuthorizePayment",
    "CapturePayment",
    "CommerceOperations",
    "PersistNewlyPurchasedSubscriptions",
    "PlaceOrder",
    "PurchaseExtraSeats",
    "RecordPurchase",
    "RenewSubscription",
    "SubscriptionSummaryService",
    "UpdatePersistedSubscription",
    "run_aggregated_transaction",
]
