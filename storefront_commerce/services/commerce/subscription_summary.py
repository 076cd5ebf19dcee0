"""
Customer subscription summary.

Builds the read model behind the "my subscriptions" page from the stored
subscriptions, the purchase ledger and the catalog: order history per
subscription, totals, the prorated price of one more seat and whether the
subscription may be renewed or edited right now.
"""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from storefront_commerce.models import (
    CustomerPurchaseEntity,
    CustomerSubscriptionEntity,
    PartnerOffer,
    SubscriptionHistoryItem,
    SubscriptionsSummary,
    SubscriptionSummaryItem,
)
from storefront_commerce.repositories.interfaces import (
    ICustomerPurchasesRepository,
    ICustomerSubscriptionsRepository,
    IPartnerOffersRepository,
)
from storefront_commerce.services.commerce.pricing import (
    calculate_prorated_seat_charge,
    ensure_utc,
    round_currency,
    utc_now,
)

logger = logging.getLogger(__name__)

DEFAULT_RENEWAL_WINDOW_DAYS = 30


class SubscriptionSummaryService:
    """
    Read-only view over a customer's subscriptions.

    A subscription is renewable once it is within ``renewal_window_days`` of
    its expiry date and editable (seats can be added) until that date. Both
    are disabled when its offer was retired or is missing from the catalog.
    """

    def __init__(
        self,
        offers_repository: IPartnerOffersRepository,
        customer_subscriptions_repository: ICustomerSubscriptionsRepository,
        customer_purchases_repository: ICustomerPurchasesRepository,
        renewal_window_days: int = DEFAULT_RENEWAL_WINDOW_DAYS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.offers_repository = offers_repository
        self.customer_subscriptions_repository = customer_subscriptions_repository
        self.customer_purchases_repository = customer_purchases_repository
        self.renewal_window_days = renewal_window_days
        self.clock = clock

    async def get_summary(self, customer_id: str) -> SubscriptionsSummary:
        subscriptions, purchases, offers = await asyncio.gather(
            self.customer_subscriptions_repository.retrieve(customer_id),
            self.customer_purchases_repository.retrieve(customer_id),
            self.offers_repository.retrieve_all(),
        )

        offers_by_id = {offer.id: offer for offer in offers}
        purchases_by_subscription: Dict[str, List[CustomerPurchaseEntity]] = defaultdict(list)
        for purchase in purchases:
            purchases_by_subscription[purchase.subscription_id].append(purchase)

        now = self.clock()
        items = [
            self._summarize(
                subscription,
                offers_by_id.get(subscription.partner_offer_id),
                purchases_by_subscription.get(subscription.subscription_id, []),
                now,
            )
            for subscription in subscriptions
        ]
        items.sort(key=lambda item: item.friendly_name)

        summary_total = sum((item.subscription_total for item in items), Decimal("0"))
        logger.debug(f"📊 Summary built for {customer_id}: {len(items)} subscriptions")

        return SubscriptionsSummary(
            customer_id=customer_id,
            subscriptions=items,
            summary_total=summary_total,
        )

    def _summarize(
        self,
        subscription: CustomerSubscriptionEntity,
        offer: Optional[PartnerOffer],
        purchases: List[CustomerPurchaseEntity],
        now: datetime,
    ) -> SubscriptionSummaryItem:
        history = [
            SubscriptionHistoryItem(
                operation_type=purchase.purchase_type,
                order_date=purchase.transaction_date,
                seats_bought=purchase.seats_bought,
                price_per_seat=purchase.seat_price,
                order_total=round_currency(purchase.seat_price * purchase.seats_bought),
            )
            for purchase in sorted(purchases, key=lambda p: ensure_utc(p.transaction_date))
        ]

        expiry_date = ensure_utc(subscription.expiry_date)
        remaining_days = (expiry_date.date() - ensure_utc(now).date()).days
        offer_available = offer is not None and not offer.is_inactive
        offer_price = offer.price if offer is not None else Decimal("0")

        if offer is None:
            logger.warning(
                f"⚠️ Subscription {subscription.subscription_id} references unknown offer "
                f"{subscription.partner_offer_id}"
            )

        return SubscriptionSummaryItem(
            subscription_id=subscription.subscription_id,
            partner_offer_id=subscription.partner_offer_id,
            friendly_name=offer.title if offer is not None else subscription.partner_offer_id,
            offer_price=offer_price,
            expiry_date=expiry_date,
            prorated_seat_price=round_currency(
                calculate_prorated_seat_charge(expiry_date, offer_price, now)
            ),
            licenses_total=sum(item.seats_bought for item in history),
            subscription_total=sum((item.order_total for item in history), Decimal("0")),
            is_renewable=offer_available and remaining_days <= self.renewal_window_days,
            is_editable=offer_available and remaining_days >= 0,
            history=history,
        )
