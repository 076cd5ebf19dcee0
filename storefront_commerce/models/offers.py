"""Partner offer catalog models."""

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PartnerOffer(BaseModel):
    """
    An offer the partner sells through the storefront.

    ``price`` is the yearly price of one seat. Retired offers are kept in the
    catalog with ``is_inactive`` set so existing subscriptions can still be
    displayed; they cannot be bought or renewed.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    title: str
    price: Decimal = Field(ge=0)
    provider_offer_id: str = Field(min_length=1)
    description: Optional[str] = None
    is_inactive: bool = False
