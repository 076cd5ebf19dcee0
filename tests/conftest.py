"""
Shared pytest fixtures for storefront-commerce tests.

This module provides:
- In-memory fakes of the payment gateway, the subscription provider and
  the repositories, recording every call in a shared call log
- A fake Redis client for the Redis repositories
- Test data factories
- A frozen clock
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from storefront_commerce.core.metrics import PerformanceMetrics
from storefront_commerce.infrastructure.persistence import RedisClient
from storefront_commerce.models import (
    CustomerPurchaseEntity,
    CustomerSubscriptionEntity,
    PartnerOffer,
    PaymentCard,
    ProviderOrder,
    ProviderSubscription,
)
from storefront_commerce.repositories.interfaces import (
    ICustomerPurchasesRepository,
    ICustomerSubscriptionsRepository,
    IPartnerOffersRepository,
    IPaymentGateway,
    ISubscriptionProvider,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
CUSTOMER_ID = "customer-1"


# ============================================================
# CALL LOG
# ============================================================


class CallLog(list):
    """Ordered record of (collaborator, method, args) across fakes."""

    def record(self, source: str, method: str, *args: Any) -> None:
        self.append((source, method, args))

    def methods(self) -> List[str]:
        return [f"{source}.{method}" for source, method, _ in self]

    def count_of(self, qualified_method: str) -> int:
        return self.methods().count(qualified_method)


# ============================================================
# PAYMENT GATEWAY AND PROVIDER FAKES
# ============================================================


class FakePaymentGateway(IPaymentGateway):
    """Records calls; raises the configured error for a method."""

    def __init__(self, calls: Optional[CallLog] = None, authorization_code: str = "AUTH-1"):
        self.calls = calls if calls is not None else CallLog()
        self.authorization_code = authorization_code
        self.errors: Dict[str, BaseException] = {}

    async def _maybe_fail(self, method: str) -> None:
        error = self.errors.get(method)
        if error is not None:
            raise error

    async def authorize(self, amount: Decimal) -> str:
        self.calls.record("gateway", "authorize", amount)
        await self._maybe_fail("authorize")
        return self.authorization_code

    async def capture(self, authorization_code: str) -> None:
        self.calls.record("gateway", "capture", authorization_code)
        await self._maybe_fail("capture")

    async def void(self, authorization_code: str) -> None:
        self.calls.record("gateway", "void", authorization_code)
        await self._maybe_fail("void")


class FakeSubscriptionProvider(ISubscriptionProvider):
    """Keeps provider subscriptions in a dict; place_order creates ``sub-N`` ids."""

    def __init__(self, calls: Optional[CallLog] = None):
        self.calls = calls if calls is not None else CallLog()
        self.subscriptions: Dict[Tuple[str, str], ProviderSubscription] = {}
        self.errors: Dict[str, BaseException] = {}
        self._next_id = 1

    async def _maybe_fail(self, method: str) -> None:
        error = self.errors.get(method)
        if error is not None:
            raise error

    def add_subscription(self, customer_id: str, subscription_id: str, quantity: int, **fields) -> ProviderSubscription:
        subscription = ProviderSubscription(id=subscription_id, quantity=quantity, **fields)
        self.subscriptions[(customer_id, subscription_id)] = subscription
        return subscription

    async def place_order(self, customer_id: str, order: ProviderOrder) -> ProviderOrder:
        self.calls.record("provider", "place_order", customer_id, order)
        await self._maybe_fail("place_order")

        line_items = []
        for line in order.line_items:
            subscription_id = f"sub-{self._next_id}"
            self._next_id += 1
            self.add_subscription(customer_id, subscription_id, line.quantity, offer_id=line.offer_id)
            line_items.append(line.model_copy(update={"subscription_id": subscription_id}))

        return order.model_copy(update={"id": f"order-{self._next_id}", "line_items": line_items})

    async def get_subscription(self, customer_id: str, subscription_id: str) -> ProviderSubscription:
        self.calls.record("provider", "get_subscription", customer_id, subscription_id)
        await self._maybe_fail("get_subscription")
        return self.subscriptions[(customer_id, subscription_id)]

    async def update_subscription(self, customer_id: str, subscription: ProviderSubscription) -> ProviderSubscription:
        self.calls.record("provider", "update_subscription", customer_id, subscription)
        await self._maybe_fail("update_subscription")
        self.subscriptions[(customer_id, subscription.id)] = subscription
        return subscription


# ============================================================
# REPOSITORY FAKES
# ============================================================


class InMemoryOffersRepository(IPartnerOffersRepository):
    def __init__(self, offers: Optional[List[PartnerOffer]] = None):
        self.offers: Dict[str, PartnerOffer] = {offer.id: offer for offer in offers or []}

    async def retrieve_all(self) -> List[PartnerOffer]:
        return list(self.offers.values())

    async def retrieve(self, offer_id: str) -> Optional[PartnerOffer]:
        return self.offers.get(offer_id)


class InMemorySubscriptionsRepository(ICustomerSubscriptionsRepository):
    def __init__(self, calls: Optional[CallLog] = None):
        self.calls = calls if calls is not None else CallLog()
        self.entities: Dict[Tuple[str, str], CustomerSubscriptionEntity] = {}
        self.errors: Dict[str, BaseException] = {}

    def seed(self, entity: CustomerSubscriptionEntity) -> CustomerSubscriptionEntity:
        self.entities[(entity.customer_id, entity.subscription_id)] = entity
        return entity

    async def retrieve(self, customer_id: str) -> List[CustomerSubscriptionEntity]:
        return [e for (cid, _), e in self.entities.items() if cid == customer_id]

    async def add(self, entity: CustomerSubscriptionEntity) -> CustomerSubscriptionEntity:
        self.calls.record("subscriptions", "add", entity)
        if "add" in self.errors:
            raise self.errors["add"]
        self.entities[(entity.customer_id, entity.subscription_id)] = entity
        return entity

    async def upsert(self, entity: CustomerSubscriptionEntity) -> CustomerSubscriptionEntity:
        self.calls.record("subscriptions", "upsert", entity)
        if "upsert" in self.errors:
            raise self.errors["upsert"]
        self.entities[(entity.customer_id, entity.subscription_id)] = entity
        return entity


class InMemoryPurchasesRepository(ICustomerPurchasesRepository):
    def __init__(self, calls: Optional[CallLog] = None):
        self.calls = calls if calls is not None else CallLog()
        self.entries: List[CustomerPurchaseEntity] = []
        self.errors: Dict[str, BaseException] = {}

    async def add(self, entity: CustomerPurchaseEntity) -> CustomerPurchaseEntity:
        self.calls.record("purchases", "add", entity)
        if "add" in self.errors:
            raise self.errors["add"]
        self.entries.append(entity)
        return entity

    async def retrieve(self, customer_id: str) -> List[CustomerPurchaseEntity]:
        return [e for e in self.entries if e.customer_id == customer_id]


# ============================================================
# FAKE REDIS
# ============================================================


class FakeRedis:
    """Subset of the redis.asyncio API used by the repositories."""

    def __init__(self):
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.lists: Dict[str, List[str]] = {}
        self.fail = False
        self.hgetall_calls = 0

    def _check(self) -> None:
        if self.fail:
            raise RedisConnectionError("connection refused")

    async def ping(self) -> bool:
        self._check()
        return True

    async def hgetall(self, key: str) -> Dict[str, str]:
        self._check()
        self.hgetall_calls += 1
        return dict(self.hashes.get(key, {}))

    async def hset(self, key: str, field: str, value: str) -> int:
        self._check()
        bucket = self.hashes.setdefault(key, {})
        created = field not in bucket
        bucket[field] = value
        return int(created)

    async def hsetnx(self, key: str, field: str, value: str) -> int:
        self._check()
        bucket = self.hashes.setdefault(key, {})
        if field in bucket:
            return 0
        bucket[field] = value
        return 1

    async def rpush(self, key: str, value: str) -> int:
        self._check()
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    async def lrange(self, key: str, start: int, end: int) -> List[str]:
        self._check()
        values = self.lists.get(key, [])
        return list(values[start:] if end == -1 else values[start:end + 1])

    async def aclose(self) -> None:
        pass


# ============================================================
# TEST DATA FACTORIES
# ============================================================


@dataclass
class OfferFactory:
    """Factory for creating test PartnerOffer instances."""

    @staticmethod
    def create(
        offer_id: str = "offer-1",
        price: str = "10.00",
        is_inactive: bool = False,
        title: Optional[str] = None,
    ) -> PartnerOffer:
        return PartnerOffer(
            id=offer_id,
            title=title or f"Offer {offer_id}",
            price=Decimal(price),
            provider_offer_id=f"provider-{offer_id}",
            is_inactive=is_inactive,
        )


@dataclass
class SubscriptionFactory:
    """Factory for creating stored customer subscriptions."""

    @staticmethod
    def create(
        subscription_id: str = "sub-existing",
        offer_id: str = "offer-1",
        expires_in_days: float = 100,
        customer_id: str = CUSTOMER_ID,
    ) -> CustomerSubscriptionEntity:
        return CustomerSubscriptionEntity(
            customer_id=customer_id,
            subscription_id=subscription_id,
            partner_offer_id=offer_id,
            expiry_date=NOW + timedelta(days=expires_in_days),
        )


@dataclass
class CardFactory:
    """Factory for payment cards valid at test time."""

    @staticmethod
    def create(**overrides) -> PaymentCard:
        data = {
            "card_type": "visa",
            "holder_first_name": "Ada",
            "holder_last_name": "Lovelace",
            "number": "4111 1111 1111 1111",
            "expiry_month": 12,
            "expiry_year": datetime.now(timezone.utc).year + 2,
            "cvn": "123",
        }
        data.update(overrides)
        return PaymentCard(**data)


# ============================================================
# FIXTURES
# ============================================================


@pytest.fixture
def clock():
    """Frozen clock returning NOW."""
    return lambda: NOW


@pytest.fixture
def call_log():
    return CallLog()


@pytest.fixture
def gateway(call_log):
    return FakePaymentGateway(call_log)


@pytest.fixture
def provider(call_log):
    return FakeSubscriptionProvider(call_log)


@pytest.fixture
def offers_repository():
    return InMemoryOffersRepository([
        OfferFactory.create("offer-1", "10.00"),
        OfferFactory.create("offer-2", "365.00"),
        OfferFactory.create("offer-retired", "5.00", is_inactive=True),
    ])


@pytest.fixture
def subscriptions_repository(call_log):
    return InMemorySubscriptionsRepository(call_log)


@pytest.fixture
def purchases_repository(call_log):
    return InMemoryPurchasesRepository(call_log)


@pytest.fixture
def fresh_metrics():
    return PerformanceMetrics()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_client(fake_redis):
    return RedisClient("redis://test", key_prefix="test", client=fake_redis)
