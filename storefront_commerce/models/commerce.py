"""Purchase requests and transaction results."""

from datetime import datetime
from decimal import Decimal
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from storefront_commerce.models.offers import PartnerOffer


class PurchaseLineItem(BaseModel):
    """A requested offer and the number of seats to buy."""
    partner_offer_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class PurchaseLineItemWithOffer(BaseModel):
    """A purchase line item resolved against the catalog."""
    line_item: PurchaseLineItem
    offer: PartnerOffer

    @property
    def line_total(self) -> Decimal:
        return self.line_item.quantity * self.offer.price


class TransactionResultLineItem(BaseModel):
    """Outcome of one line of a commerce operation."""
    model_config = ConfigDict(frozen=True)

    subscription_id: str
    partner_offer_id: str
    quantity: int
    seat_price: Decimal
    total_price: Decimal


class TransactionResult(BaseModel):
    """
    Summary returned to the caller once a commerce operation succeeded.

    ``amount_charged`` is reported as computed and is not range checked.
    """
    model_config = ConfigDict(frozen=True)

    amount_charged: Decimal
    line_items: List[TransactionResultLineItem] = Field(min_length=1)
    time_stamp: datetime
