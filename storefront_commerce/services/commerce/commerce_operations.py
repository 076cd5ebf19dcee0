"""
Commerce operations for one customer: new purchases, additional seats and renewals.

Each operation validates its input against the catalog and the customer's
stored subscriptions, prices the charge, then assembles the business
transactions that carry it out and runs them as one aggregate. Validation
failures are raised before anything is charged. When a step fails mid-way the
aggregate is rolled back and the step's own exception is re-raised.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Iterable, List, Optional, Sequence

from storefront_commerce.core.aggregate import SequentialAggregateTransaction
from storefront_commerce.core.exceptions import (
    CommerceDomainError,
    ErrorCode,
    TransactionStepFailure,
)
from storefront_commerce.core.locks import SubscriptionLockRegistry
from storefront_commerce.core.metrics import PerformanceMetrics, metrics as default_metrics
from storefront_commerce.core.transactions import BusinessTransaction
from storefront_commerce.infrastructure.logging import bind_request_context
from storefront_commerce.models import (
    CommerceOperationType,
    CustomerPurchaseEntity,
    CustomerSubscriptionEntity,
    PartnerOffer,
    ProviderOrder,
    ProviderOrderLineItem,
    PurchaseLineItem,
    PurchaseLineItemWithOffer,
    TransactionResult,
    TransactionResultLineItem,
)
from storefront_commerce.repositories.interfaces import (
    ICustomerPurchasesRepository,
    ICustomerSubscriptionsRepository,
    IPartnerOffersRepository,
    IPaymentGateway,
    ISubscriptionProvider,
)
from storefront_commerce.services.commerce.pricing import (
    add_years,
    calculate_order_total,
    calculate_prorated_seat_charge,
    is_expired,
    round_currency,
    utc_now,
)
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

logger = logging.getLogger(__name__)


async def run_aggregated_transaction(transactions: Sequence[BusinessTransaction]) -> None:
    """
    Execute ``transactions`` as one unit.

    On a step failure the executed steps are rolled back in reverse order and
    the exception raised by the failing step is re-raised. A cancelled step is
    compensated the same way before the CancelledError is re-raised. Fatal
    errors propagate without rollback.
    """
    aggregate = SequentialAggregateTransaction(transactions)

    try:
        await aggregate.execute()
    except TransactionStepFailure as failure:
        rollback_failures = await aggregate.rollback()
        if rollback_failures:
            logger.error(
                f"⚠️ {len(rollback_failures)} compensations failed after "
                f"{failure.step_name} failed: {[f.step_name for f in rollback_failures]}"
            )
        raise failure.cause


class CommerceOperations:
    """
    Commerce operations on behalf of one customer, paid with one gateway.

    Attributes:
        customer_id: Customer placing the orders.
        payment_gateway: Gateway bound to the card the customer is paying with.

    Example:
        >>> operations = domain.commerce_operations("customer-1", gateway)
        >>> result = await operations.purchase([PurchaseLineItem(partner_offer_id="o-1", quantity=3)])
        >>> result.amount_charged
        Decimal('30.00')
    """

    def __init__(
        self,
        customer_id: str,
        payment_gateway: IPaymentGateway,
        *,
        offers_repository: IPartnerOffersRepository,
        customer_subscriptions_repository: ICustomerSubscriptionsRepository,
        customer_purchases_repository: ICustomerPurchasesRepository,
        subscription_provider: ISubscriptionProvider,
        subscription_locks: Optional[SubscriptionLockRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
        metrics: Optional[PerformanceMetrics] = None,
    ):
        if not customer_id or not customer_id.strip():
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "customer id is required")
        if payment_gateway is None:
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "payment gateway is required")

        self.customer_id = customer_id
        self.payment_gateway = payment_gateway
        self.offers_repository = offers_repository
        self.customer_subscriptions_repository = customer_subscriptions_repository
        self.customer_purchases_repository = customer_purchases_repository
        self.subscription_provider = subscription_provider
        self.subscription_locks = (
            subscription_locks if subscription_locks is not None else SubscriptionLockRegistry()
        )
        self.clock = clock
        self.metrics = metrics if metrics is not None else default_metrics

    @asynccontextmanager
    async def _operation(self, name: str, **context) -> AsyncIterator[None]:
        with bind_request_context(customer_id=self.customer_id, operation=name, **context):
            async with self.metrics.timer(f"commerce.{name}", {"customer_id": self.customer_id}):
                logger.info(f"🚀 Starting {name} for customer {self.customer_id}")
                try:
                    yield
                except Exception as error:
                    logger.warning(f"❌ {name} failed for customer {self.customer_id}: {error!r}")
                    raise
                logger.info(f"🏁 {name} completed for customer {self.customer_id}")

    async def purchase(self, line_items: Iterable[PurchaseLineItem]) -> TransactionResult:
        """
        Buy one or more catalog offers.

        Pipeline: AuthorizePayment -> PlaceOrder -> PersistNewlyPurchasedSubscriptions -> CapturePayment.

        Raises:
            CommerceDomainError: INVALID_INPUT for an empty list or a missing entry,
                PARTNER_OFFER_NOT_FOUND or PURCHASE_DELETED_OFFER_NOT_ALLOWED
                (detail ``Id``) for an unknown or retired offer.
        """
        if line_items is None:
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "line items are required")
        line_items = list(line_items)
        if not line_items:
            raise CommerceDomainError(
                ErrorCode.INVALID_INPUT, "line items should have at least one entry"
            )
        if any(item is None for item in line_items):
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "line items cannot contain empty entries")

        async with self._operation("purchase"):
            priced_items = await self._associate_with_offers(line_items)
            order_total = calculate_order_total(priced_items)

            authorize = AuthorizePayment(self.payment_gateway, order_total)
            place_order = PlaceOrder(
                self.subscription_provider, self.customer_id, self._build_provider_order(priced_items)
            )
            persist = PersistNewlyPurchasedSubscriptions(
                self.customer_id,
                self.customer_subscriptions_repository,
                self.customer_purchases_repository,
                place_order.placed_order,
                priced_items,
                clock=self.clock,
            )
            capture = CapturePayment(self.payment_gateway, authorize.authorization_code)

            await run_aggregated_transaction([authorize, place_order, persist, capture])

            return TransactionResult(
                amount_charged=order_total,
                line_items=persist.line_item_results.get(),
                time_stamp=self.clock(),
            )

    async def purchase_additional_seats(self, subscription_id: str, seats_to_purchase: int) -> TransactionResult:
        """
        Add seats to a subscription, charging the remainder of its term.

        Pipeline: AuthorizePayment -> PurchaseExtraSeats -> RecordPurchase -> CapturePayment.

        Raises:
            CommerceDomainError: INVALID_INPUT, SUBSCRIPTION_NOT_FOUND or
                SUBSCRIPTION_EXPIRED.
        """
        if not subscription_id or not subscription_id.strip():
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "subscription id is required")
        if seats_to_purchase is None or seats_to_purchase <= 0:
            raise CommerceDomainError(
                ErrorCode.INVALID_INPUT, "seats to purchase must be positive"
            ).add_detail("SeatsToPurchase", seats_to_purchase)

        async with self._operation("purchase_additional_seats", subscription_id=subscription_id):
            async with self.subscription_locks.hold(self.customer_id, subscription_id):
                subscription = await self._get_subscription(subscription_id)
                offer = await self._get_offer(subscription.partner_offer_id)

                now = self.clock()
                if is_expired(subscription.expiry_date, now):
                    raise CommerceDomainError(ErrorCode.SUBSCRIPTION_EXPIRED).add_detail(
                        "Id", subscription_id
                    )

                prorated_seat_charge = round_currency(
                    calculate_prorated_seat_charge(subscription.expiry_date, offer.price, now)
                )
                total_charge = round_currency(prorated_seat_charge * seats_to_purchase)

                authorize = AuthorizePayment(self.payment_gateway, total_charge)
                transactions: List[BusinessTransaction] = [
                    authorize,
                    PurchaseExtraSeats(
                        self.subscription_provider, self.customer_id, subscription_id, seats_to_purchase
                    ),
                    RecordPurchase(
                        self.customer_purchases_repository,
                        CustomerPurchaseEntity(
                            purchase_type=CommerceOperationType.ADDITIONAL_SEATS_PURCHASE,
                            customer_id=self.customer_id,
                            subscription_id=subscription_id,
                            seats_bought=seats_to_purchase,
                            seat_price=prorated_seat_charge,
                            transaction_date=now,
                        ),
                    ),
                    CapturePayment(self.payment_gateway, authorize.authorization_code),
                ]

                await run_aggregated_transaction(transactions)

                return TransactionResult(
                    amount_charged=total_charge,
                    line_items=[TransactionResultLineItem(
                        subscription_id=subscription_id,
                        partner_offer_id=subscription.partner_offer_id,
                        quantity=seats_to_purchase,
                        seat_price=prorated_seat_charge,
                        total_price=total_charge,
                    )],
                    time_stamp=now,
                )

    async def renew_subscription(self, subscription_id: str) -> TransactionResult:
        """
        Renew a subscription for another year at the current offer price.

        Pipeline: AuthorizePayment -> RenewSubscription -> RecordPurchase
        -> UpdatePersistedSubscription -> CapturePayment.

        Raises:
            CommerceDomainError: INVALID_INPUT, SUBSCRIPTION_NOT_FOUND or
                PURCHASE_DELETED_OFFER_NOT_ALLOWED.
        """
        if not subscription_id or not subscription_id.strip():
            raise CommerceDomainError(ErrorCode.INVALID_INPUT, "subscription id is required")

        async with self._operation("renew_subscription", subscription_id=subscription_id):
            async with self.subscription_locks.hold(self.customer_id, subscription_id):
                subscription = await self._get_subscription(subscription_id)
                offer = await self._get_offer(subscription.partner_offer_id)

                if offer.is_inactive:
                    raise CommerceDomainError(ErrorCode.PURCHASE_DELETED_OFFER_NOT_ALLOWED).add_detail(
                        "Id", offer.id
                    )

                provider_subscription = await self.subscription_provider.get_subscription(
                    self.customer_id, subscription_id
                )
                quantity = provider_subscription.quantity
                total_charge = round_currency(quantity * offer.price)
                now = self.clock()

                authorize = AuthorizePayment(self.payment_gateway, total_charge)
                transactions: List[BusinessTransaction] = [
                    authorize,
                    RenewSubscription(self.subscription_provider, self.customer_id, provider_subscription),
                    RecordPurchase(
                        self.customer_purchases_repository,
                        CustomerPurchaseEntity(
                            purchase_type=CommerceOperationType.RENEWAL,
                            customer_id=self.customer_id,
                            subscription_id=subscription_id,
                            seats_bought=quantity,
                            seat_price=offer.price,
                            transaction_date=now,
                        ),
                    ),
                    UpdatePersistedSubscription(
                        self.customer_subscriptions_repository,
                        CustomerSubscriptionEntity(
                            customer_id=self.customer_id,
                            subscription_id=subscription_id,
                            partner_offer_id=offer.id,
                            expiry_date=add_years(subscription.expiry_date, 1),
                        ),
                    ),
                    CapturePayment(self.payment_gateway, authorize.authorization_code),
                ]

                await run_aggregated_transaction(transactions)

                return TransactionResult(
                    amount_charged=total_charge,
                    line_items=[TransactionResultLineItem(
                        subscription_id=subscription_id,
                        partner_offer_id=offer.id,
                        quantity=quantity,
                        seat_price=offer.price,
                        total_price=total_charge,
                    )],
                    time_stamp=now,
                )

    async def _associate_with_offers(self, line_items: List[PurchaseLineItem]) -> List[PurchaseLineItemWithOffer]:
        offers = {offer.id: offer for offer in await self.offers_repository.retrieve_all()}
        associated = []

        for line_item in line_items:
            offer = offers.get(line_item.partner_offer_id)
            if offer is None:
                raise CommerceDomainError(ErrorCode.PARTNER_OFFER_NOT_FOUND).add_detail(
                    "Id", line_item.partner_offer_id
                )
            if offer.is_inactive:
                raise CommerceDomainError(ErrorCode.PURCHASE_DELETED_OFFER_NOT_ALLOWED).add_detail(
                    "Id", offer.id
                )
            associated.append(PurchaseLineItemWithOffer(line_item=line_item, offer=offer))

        return associated

    def _build_provider_order(self, line_items: List[PurchaseLineItemWithOffer]) -> ProviderOrder:
        return ProviderOrder(
            reference_customer_id=self.customer_id,
            line_items=[
                ProviderOrderLineItem(
                    line_item_number=number,
                    offer_id=item.offer.provider_offer_id,
                    quantity=item.line_item.quantity,
                )
                for number, item in enumerate(line_items)
            ],
        )

    async def _get_subscription(self, subscription_id: str) -> CustomerSubscriptionEntity:
        subscriptions = await self.customer_subscriptions_repository.retrieve(self.customer_id)
        for subscription in subscriptions:
            if subscription.subscription_id == subscription_id:
                return subscription
        raise CommerceDomainError(ErrorCode.SUBSCRIPTION_NOT_FOUND).add_detail("Id", subscription_id)

    async def _get_offer(self, offer_id: str) -> PartnerOffer:
        offer = await self.offers_repository.retrieve(offer_id)
        if offer is None:
            raise CommerceDomainError(ErrorCode.PARTNER_OFFER_NOT_FOUND).add_detail("Id", offer_id)
        return offer
