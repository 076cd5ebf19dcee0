"""
Concrete business transactions of the commerce pipeline.

Each class wraps one call to the payment gateway, the subscription provider
or the customer stores. Only the payment authorization has a compensating
action (voiding the hold); the remaining steps either have no inverse on the
provider side or write to an append-only ledger, and log that fact when asked
to roll back.

Pipelines built by ``CommerceOperations``:

    purchase:          AuthorizePayment -> PlaceOrder -> PersistNewlyPurchasedSubscriptions -> CapturePayment
    additional seats:  AuthorizePayment -> PurchaseExtraSeats -> RecordPurchase -> CapturePayment
    renewal:           AuthorizePayment -> RenewSubscription -> RecordPurchase
                       -> UpdatePersistedSubscription -> CapturePayment
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from storefront_commerce.core.exceptions import CommerceDomainError, ErrorCode, is_fatal
from storefront_commerce.core.transactions import BusinessTransaction, ResultSlot
from storefront_commerce.models import (
    CommerceOperationType,
    CustomerPurchaseEntity,
    CustomerSubscriptionEntity,
    ProviderOrder,
    ProviderSubscription,
    PurchaseLineItemWithOffer,
    TransactionResultLineItem,
)
from storefront_commerce.repositories.interfaces import (
    ICustomerPurchasesRepository,
    ICustomerSubscriptionsRepository,
    IPaymentGateway,
    ISubscriptionProvider,
)
from storefront_commerce.services.commerce.pricing import add_years, round_currency, utc_now

logger = logging.getLogger(__name__)

ACTIVE_SUBSCRIPTION_STATUS = "active"


class AuthorizePayment(BusinessTransaction):
    """
    Places a hold of ``amount`` on the customer's card.

    The authorization code is published through ``authorization_code`` for the
    capture step. Rolling back voids the hold.

    Attributes:
        payment_gateway: Gateway bound to the customer's card.
        amount: Amount to authorize, strictly positive.
        authorization_code: Slot filled with the gateway authorization code.

    Example:
        >>> authorize = AuthorizePayment(gateway, Decimal("30.00"))
        >>> await authorize.execute()
        >>> authorize.authorization_code.get()
        'AUTH-1'
    """

    def __init__(self, payment_gateway: IPaymentGateway, amount: Decimal):
        super().__init__()
        if payment_gateway is None:
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "payment gateway is required")
        if amount is None or amount <= 0:
            raise CommerceDomainError(
                ErrorCode.INVALID_INPUT, "amount to authorize must be positive"
            ).add_detail("Amount", str(amount))

        self.payment_gateway = payment_gateway
        self.amount = amount
        self.authorization_code: ResultSlot[str] = ResultSlot("authorization_code")
        self._voided = False

    async def execute(self) -> None:
        logger.info(f"💳 Authorizing payment of {self.amount}")
        code = await self.payment_gateway.authorize(self.amount)
        self.authorization_code.set(code)
        self.executed = True
        logger.info(f"✅ Payment authorized: {code}")

    async def rollback(self) -> None:
        if not self.executed or self._voided:
            return

        code = self.authorization_code.get()
        try:
            logger.info(f"↩️ Voiding payment authorization {code}")
            await self.payment_gateway.void(code)
            self._voided = True
            logger.info(f"✅ Payment authorization {code} voided")
        except Exception as error:
            if is_fatal(error):
                raise
            logger.error(
                f"❌ Failed to void payment authorization {code}: {error}. "
                f"The hold will expire on its own."
            )


class CapturePayment(BusinessTransaction):
    """
    Captures a previously authorized hold. Terminal step, no rollback.

    The authorization code is read from the slot when the step executes.
    """

    def __init__(self, payment_gateway: IPaymentGateway, authorization_code: ResultSlot[str]):
        super().__init__()
        self.payment_gateway = payment_gateway
        self.authorization_code = authorization_code

    async def execute(self) -> None:
        code = self.authorization_code.get()
        logger.info(f"💰 Capturing payment authorization {code}")
        await self.payment_gateway.capture(code)
        self.executed = True
        logger.info(f"✅ Payment {code} captured")


class PlaceOrder(BusinessTransaction):
    """
    Places an order with the subscription provider.

    The provider offers no order cancellation, so a placed order cannot be
    compensated automatically. Rollback logs the order for manual follow-up.
    """

    def __init__(self, subscription_provider: ISubscriptionProvider, customer_id: str, order: ProviderOrder):
        super().__init__()
        self.subscription_provider = subscription_provider
        self.customer_id = customer_id
        self.order = order
        self.placed_order: ResultSlot[ProviderOrder] = ResultSlot("placed_order")

    async def execute(self) -> None:
        logger.info(
            f"🛒 Placing order for customer {self.customer_id} "
            f"with {len(self.order.line_items)} line items"
        )
        placed = await self.subscription_provider.place_order(self.customer_id, self.order)
        self.placed_order.set(placed)
        self.executed = True
        logger.info(f"✅ Order {placed.id} placed for customer {self.customer_id}")

    async def rollback(self) -> None:
        if not self.executed:
            return

        placed = self.placed_order.get()
        logger.warning(
            f"⚠️ Order {placed.id} of customer {self.customer_id} cannot be cancelled "
            f"automatically and needs manual follow-up"
        )


class PersistNewlyPurchasedSubscriptions(BusinessTransaction):
    """
    Stores the subscriptions created by a placed order and their ledger entries.

    Reads the placed order from ``placed_order`` at execute time. Each order line
    is matched to the purchase line with the same position, which is how the
    order was built. Publishes the per line results through ``line_item_results``.

    No rollback: the ledger is append-only.
    """

    def __init__(
        self,
        customer_id: str,
        subscriptions_repository: ICustomerSubscriptionsRepository,
        purchases_repository: ICustomerPurchasesRepository,
        placed_order: ResultSlot[ProviderOrder],
        line_items: Sequence[PurchaseLineItemWithOffer],
        clock: Callable[[], datetime] = utc_now,
    ):
        super().__init__()
        self.customer_id = customer_id
        self.subscriptions_repository = subscriptions_repository
        self.purchases_repository = purchases_repository
        self.placed_order = placed_order
        self.line_items = list(line_items)
        self.clock = clock
        self.line_item_results: ResultSlot[List[TransactionResultLineItem]] = ResultSlot(
            "line_item_results"
        )

    def _match_line_item(self, line_item_number: int) -> PurchaseLineItemWithOffer:
        if not 0 <= line_item_number < len(self.line_items):
            raise CommerceDomainError(
                ErrorCode.SERVER_ERROR, "placed order references an unknown line item"
            ).add_detail("LineItemNumber", line_item_number)
        return self.line_items[line_item_number]

    async def execute(self) -> None:
        order = self.placed_order.get()
        now = self.clock()
        expiry_date = add_years(now, 1)
        results: List[TransactionResultLineItem] = []

        for order_line in order.line_items:
            purchased = self._match_line_item(order_line.line_item_number)
            if not order_line.subscription_id:
                raise CommerceDomainError(
                    ErrorCode.SERVER_ERROR, "placed order line has no subscription id"
                ).add_detail("LineItemNumber", order_line.line_item_number)

            offer = purchased.offer
            quantity = purchased.line_item.quantity

            await self.subscriptions_repository.add(CustomerSubscriptionEntity(
                customer_id=self.customer_id,
                subscription_id=order_line.subscription_id,
                partner_offer_id=offer.id,
                expiry_date=expiry_date,
            ))
            await self.purchases_repository.add(CustomerPurchaseEntity(
                purchase_type=CommerceOperationType.NEW_PURCHASE,
                customer_id=self.customer_id,
                subscription_id=order_line.subscription_id,
                seats_bought=quantity,
                seat_price=offer.price,
                transaction_date=now,
            ))

            results.append(TransactionResultLineItem(
                subscription_id=order_line.subscription_id,
                partner_offer_id=offer.id,
                quantity=quantity,
                seat_price=offer.price,
                total_price=round_currency(quantity * offer.price),
            ))

        self.line_item_results.set(results)
        self.executed = True
        logger.info(f"✅ Persisted {len(results)} new subscriptions for customer {self.customer_id}")


class RecordPurchase(BusinessTransaction):
    """Appends one entry to the purchase ledger. No rollback."""

    def __init__(self, purchases_repository: ICustomerPurchasesRepository, purchase: CustomerPurchaseEntity):
        super().__init__()
        self.purchases_repository = purchases_repository
        self.purchase = purchase

    async def execute(self) -> None:
        await self.purchases_repository.add(self.purchase)
        self.executed = True
        logger.info(
            f"📝 Recorded {self.purchase.purchase_type.value} {self.purchase.transaction_id} "
            f"for subscription {self.purchase.subscription_id}"
        )


class UpdatePersistedSubscription(BusinessTransaction):
    """Upserts a stored subscription, typically with an extended expiry date."""

    def __init__(self, subscriptions_repository: ICustomerSubscriptionsRepository, subscription: CustomerSubscriptionEntity):
        super().__init__()
        self.subscriptions_repository = subscriptions_repository
        self.subscription = subscription

    async def execute(self) -> None:
        await self.subscriptions_repository.upsert(self.subscription)
        self.executed = True
        logger.info(
            f"📝 Subscription {self.subscription.subscription_id} now expires "
            f"{self.subscription.expiry_date.isoformat()}"
        )


class PurchaseExtraSeats(BusinessTransaction):
    """
    Raises the quantity of a provider subscription by ``seats``.

    The current quantity is read from the provider at execute time.
    """

    def __init__(
        self,
        subscription_provider: ISubscriptionProvider,
        customer_id: str,
        subscription_id: str,
        seats: int,
    ):
        super().__init__()
        self.subscription_provider = subscription_provider
        self.customer_id = customer_id
        self.subscription_id = subscription_id
        self.seats = seats
        self.updated_subscription: ResultSlot[ProviderSubscription] = ResultSlot(
            "updated_subscription"
        )
        self.previous_quantity: Optional[int] = None

    async def execute(self) -> None:
        current = await self.subscription_provider.get_subscription(
            self.customer_id, self.subscription_id
        )
        self.previous_quantity = current.quantity
        target = current.model_copy(update={"quantity": current.quantity + self.seats})

        logger.info(
            f"➕ Raising subscription {self.subscription_id} from "
            f"{current.quantity} to {target.quantity} seats"
        )
        updated = await self.subscription_provider.update_subscription(self.customer_id, target)
        self.updated_subscription.set(updated)
        self.executed = True

    async def rollback(self) -> None:
        if not self.executed:
            return

        logger.warning(
            f"⚠️ Subscription {self.subscription_id} of customer {self.customer_id} was raised "
            f"from {self.previous_quantity} by {self.seats} seats and needs manual follow-up"
        )


class RenewSubscription(BusinessTransaction):
    """Sets a provider subscription back to active for a new term."""

    def __init__(
        self,
        subscription_provider: ISubscriptionProvider,
        customer_id: str,
        subscription: ProviderSubscription,
    ):
        super().__init__()
        self.subscription_provider = subscription_provider
        self.customer_id = customer_id
        self.subscription = subscription
        self.renewed_subscription: ResultSlot[ProviderSubscription] = ResultSlot(
            "renewed_subscription"
        )

    async def execute(self) -> None:
        target = self.subscription.model_copy(update={"status": ACTIVE_SUBSCRIPTION_STATUS})
        logger.info(f"🔁 Renewing subscription {self.subscription.id}")
        renewed = await self.subscription_provider.update_subscription(self.customer_id, target)
        self.renewed_subscription.set(renewed)
        self.executed = True
