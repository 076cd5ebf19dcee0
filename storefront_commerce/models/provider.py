"""
Subscription provider wire models.

The provider speaks camelCase JSON. Models accept both the wire names and the
Python field names, and subscriptions keep fields they do not declare so a
read-modify-write PATCH does not drop them.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProviderModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ProviderOrderLineItem(ProviderModel):
    line_item_number: int = Field(ge=0)
    offer_id: str
    quantity: int = Field(gt=0)
    subscription_id: Optional[str] = None
    friendly_name: Optional[str] = None


class ProviderOrder(ProviderModel):
    id: Optional[str] = None
    reference_customer_id: str
    line_items: List[ProviderOrderLineItem] = Field(min_length=1)
    status: Optional[str] = None


class ProviderSubscription(ProviderModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    offer_id: Optional[str] = None
    friendly_name: Optional[str] = None
    quantity: int = Field(ge=0)
    status: Optional[str] = None
    auto_renew_enabled: Optional[bool] = None
