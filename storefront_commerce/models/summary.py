"""Read model describing what a customer bought."""

from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel

from storefront_commerce.models.entities import CommerceOperationType


class SubscriptionHistoryItem(BaseModel):
    operation_type: CommerceOperationType
    order_date: datetime
    seats_bought: int
    price_per_seat: Decimal
    order_total: Decimal


class SubscriptionSummaryItem(BaseModel):
    subscription_id: str
    partner_offer_id: str
    friendly_name: str
    offer_price: Decimal
    expiry_date: datetime
    prorated_seat_price: Decimal
    licenses_total: int
    subscription_total: Decimal
    is_renewable: bool
    is_editable: bool
    history: List[SubscriptionHistoryItem]


class SubscriptionsSummary(BaseModel):
    customer_id: str
    subscriptions: List[SubscriptionSummaryItem]
    summary_total: Decimal
