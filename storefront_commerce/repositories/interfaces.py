"""
Contracts of the external collaborators used by the commerce pipeline.

One focused interface per collaborator: the payment gateway, the
subscription provider, the offer catalog and the two customer stores. The
pipeline depends on these abstractions only; concrete adapters live under
``storefront_commerce.infrastructure``.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import List, Optional

from storefront_commerce.models import (
    CustomerPurchaseEntity,
    CustomerSubscriptionEntity,
    PartnerOffer,
    ProviderOrder,
    ProviderSubscription,
)


class IPaymentGateway(ABC):
    """
    Two-phase card payment: a hold is authorized first and captured or voided later.
    """

    @abstractmethod
    async def authorize(self, amount: Decimal) -> str:
        """
        Place a hold of ``amount`` on the customer's card.

        Returns:
            Authorization code used to capture or void the hold.

        Raises:
            CommerceDomainError: With a payment error code when the gateway refuses.
        """
        pass

    @abstractmethod
    async def capture(self, authorization_code: str) -> None:
        """Settle a previously authorized hold."""
        pass

    @abstractmethod
    async def void(self, authorization_code: str) -> None:
        """Release a previously authorized hold without charging it."""
        pass


class ISubscriptionProvider(ABC):
    """Partner platform that provisions subscriptions."""

    @abstractmethod
    async def place_order(self, customer_id: str, order: ProviderOrder) -> ProviderOrder:
        """
        Submit an order.

        Returns:
            The placed order, its line items carrying the created subscription ids.
        """
        pass

    @abstractmethod
    async def get_subscription(self, customer_id: str, subscription_id: str) -> ProviderSubscription:
        pass

    @abstractmethod
    async def update_subscription(
        self, customer_id: str, subscription: ProviderSubscription
    ) -> ProviderSubscription:
        """Apply changes (quantity, status) to an existing subscription."""
        pass


class IPartnerOffersRepository(ABC):
    """Read access to the offer catalog."""

    @abstractmethod
    async def retrieve_all(self) -> List[PartnerOffer]:
        pass

    @abstractmethod
    async def retrieve(self, offer_id: str) -> Optional[PartnerOffer]:
        """
        Returns:
            The offer or None when the catalog does not contain it.
        """
        pass


class ICustomerSubscriptionsRepository(ABC):
    """Subscriptions bought by each customer."""

    @abstractmethod
    async def retrieve(self, customer_id: str) -> List[CustomerSubscriptionEntity]:
        pass

    @abstractmethod
    async def add(self, entity: CustomerSubscriptionEntity) -> CustomerSubscriptionEntity:
        pass

    @abstractmethod
    async def upsert(self, entity: CustomerSubscriptionEntity) -> CustomerSubscriptionEntity:
        pass


class ICustomerPurchasesRepository(ABC):
    """Append-only purchase ledger."""

    @abstractmethod
    async def add(self, entity: CustomerPurchaseEntity) -> CustomerPurchaseEntity:
        pass

    @abstractmethod
    async def retrieve(self, customer_id: str) -> List[CustomerPurchaseEntity]:
        """Ledger entries of a customer in insertion order."""
        pass
