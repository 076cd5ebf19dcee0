"""
Persisted customer records.

Subscriptions are upserted (renewal extends the expiry date). Purchases form
an append-only ledger that is never updated or deleted.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class CommerceOperationType(str, Enum):
    """Kind of purchase recorded in the ledger."""
    NEW_PURCHASE = "NewPurchase"
    ADDITIONAL_SEATS_PURCHASE = "AdditionalSeatsPurchase"
    RENEWAL = "Renewal"


class CustomerSubscriptionEntity(BaseModel):
    """A subscription the customer bought through the storefront."""
    customer_id: str = Field(min_length=1)
    subscription_id: str = Field(min_length=1)
    partner_offer_id: str = Field(min_length=1)
    expiry_date: datetime


class CustomerPurchaseEntity(BaseModel):
    """One ledger entry."""
    model_config = ConfigDict(frozen=True)

    purchase_type: CommerceOperationType
    transaction_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    customer_id: str = Field(min_length=1)
    subscription_id: str = Field(min_length=1)
    seats_bought: int = Field(gt=0)
    seat_price: Decimal
    transaction_date: datetime
