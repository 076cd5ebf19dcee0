"""
Tests for the Redis backed stores, against an in-memory Redis double.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from storefront_commerce.core.exceptions import RepositoryError
from storefront_commerce.infrastructure.persistence import (
    RedisClient,
    RedisCustomerPurchasesRepository,
    RedisCustomerSubscriptionsRepository,
    RedisPartnerOffersRepository,
)
from storefront_commerce.models import CommerceOperationType, CustomerPurchaseEntity
from tests.conftest import CUSTOMER_ID, NOW, OfferFactory, SubscriptionFactory


class TestRedisClient:
    """Tests for RedisClient."""

    def test_key_uses_prefix(self, redis_client):
        assert redis_client.key("customer", "c-1", "purchases") == "test:customer:c-1:purchases"

    def test_client_requires_connection(self):
        with pytest.raises(RepositoryError):
            RedisClient("redis://localhost:6379/0").client

    @pytest.mark.asyncio
    async def test_connect_is_noop_with_injected_client(self, redis_client, fake_redis):
        await redis_client.connect()

        assert redis_client.client is fake_redis

    @pytest.mark.asyncio
    async def test_disconnect(self, redis_client):
        await redis_client.disconnect()

        assert redis_client.is_connected is False


class TestCustomerSubscriptionsRepository:
    """Tests for RedisCustomerSubscriptionsRepository."""

    @pytest.mark.asyncio
    async def test_add_and_retrieve(self, redis_client, fake_redis):
        repository = RedisCustomerSubscriptionsRepository(redis_client)
        await repository.add(SubscriptionFactory.create("sub-b"))
        await repository.add(SubscriptionFactory.create("sub-a"))
        await repository.add(SubscriptionFactory.create("sub-other", customer_id="customer-2"))

        stored = await repository.retrieve(CUSTOMER_ID)

        assert [s.subscription_id for s in stored] == ["sub-a", "sub-b"]
        assert stored[0].expiry_date == NOW + timedelta(days=100)
        assert set(fake_redis.hashes) == {
            "test:customer:customer-1:subscriptions",
            "test:customer:customer-2:subscriptions",
        }

    @pytest.mark.asyncio
    async def test_add_existing_subscription_fails(self, redis_client):
        repository = RedisCustomerSubscriptionsRepository(redis_client)
        await repository.add(SubscriptionFactory.create("sub-a"))

        with pytest.raises(RepositoryError):
            await repository.add(SubscriptionFactory.create("sub-a", expires_in_days=5))

    @pytest.mark.asyncio
    async def test_upsert_replaces(self, redis_client):
        repository = RedisCustomerSubscriptionsRepository(redis_client)
        await repository.add(SubscriptionFactory.create("sub-a"))

        await repository.upsert(SubscriptionFactory.create("sub-a", expires_in_days=465))

        stored = await repository.retrieve(CUSTOMER_ID)
        assert len(stored) == 1
        assert stored[0].expiry_date == NOW + timedelta(days=465)

    @pytest.mark.asyncio
    async def test_unknown_customer_is_empty(self, redis_client):
        assert await RedisCustomerSubscriptionsRepository(redis_client).retrieve("nobody") == []

    @pytest.mark.asyncio
    async def test_corrupt_record(self, redis_client, fake_redis):
        fake_redis.hashes["test:customer:customer-1:subscriptions"] = {"sub-a": "{not json"}

        with pytest.raises(RepositoryError):
            await RedisCustomerSubscriptionsRepository(redis_client).retrieve(CUSTOMER_ID)

    @pytest.mark.asyncio
    async def test_redis_failure(self, redis_client, fake_redis):
        fake_redis.fail = True

        with pytest.raises(RepositoryError):
            await RedisCustomerSubscriptionsRepository(redis_client).upsert(SubscriptionFactory.create())


class TestCustomerPurchasesRepository:
    """Tests for RedisCustomerPurchasesRepository."""

    def _purchase(self, subscription_id="sub-a", seats=3, purchase_type=CommerceOperationType.NEW_PURCHASE):
        return CustomerPurchaseEntity(
            purchase_type=purchase_type,
            customer_id=CUSTOMER_ID,
            subscription_id=subscription_id,
            seats_bought=seats,
            seat_price=Decimal("10.00"),
            transaction_date=NOW,
        )

    @pytest.mark.asyncio
    async def test_ledger_keeps_insertion_order(self, redis_client):
        repository = RedisCustomerPurchasesRepository(redis_client)
        first = await repository.add(self._purchase())
        second = await repository.add(
            self._purchase(seats=2, purchase_type=CommerceOperationType.ADDITIONAL_SEATS_PURCHASE)
        )

        ledger = await repository.retrieve(CUSTOMER_ID)

        assert [e.transaction_id for e in ledger] == [first.transaction_id, second.transaction_id]
        assert ledger[1].purchase_type == CommerceOperationType.ADDITIONAL_SEATS_PURCHASE
        assert ledger[0].seat_price == Decimal("10.00")

    @pytest.mark.asyncio
    async def test_redis_failure(self, redis_client, fake_redis):
        fake_redis.fail = True

        with pytest.raises(RepositoryError):
            await RedisCustomerPurchasesRepository(redis_client).add(self._purchase())


class TestPartnerOffersRepository:
    """Tests for RedisPartnerOffersRepository."""

    @pytest.fixture
    def manual_clock(self):
        now = [0.0]

        def clock():
            return now[0]

        clock.now = now
        return clock

    @pytest.mark.asyncio
    async def test_upsert_and_retrieve(self, redis_client):
        repository = RedisPartnerOffersRepository(redis_client)
        await repository.upsert(OfferFactory.create("offer-2", "365.00"))
        await repository.upsert(OfferFactory.create("offer-1", "10.00"))

        offers = await repository.retrieve_all()

        assert [o.id for o in offers] == ["offer-1", "offer-2"]
        assert (await repository.retrieve("offer-2")).price == Decimal("365.00")
        assert await repository.retrieve("missing") is None

    @pytest.mark.asyncio
    async def test_catalog_is_cached_until_ttl(self, redis_client, fake_redis, manual_clock):
        repository = RedisPartnerOffersRepository(redis_client, cache_ttl_seconds=60, clock=manual_clock)
        await repository.upsert(OfferFactory.create("offer-1"))

        await repository.retrieve_all()
        await repository.retrieve("offer-1")
        assert fake_redis.hgetall_calls == 1

        manual_clock.now[0] = 61.0
        await repository.retrieve_all()
        assert fake_redis.hgetall_calls == 2

    @pytest.mark.asyncio
    async def test_upsert_invalidates_cache(self, redis_client, manual_clock):
        repository = RedisPartnerOffersRepository(redis_client, clock=manual_clock)
        await repository.upsert(OfferFactory.create("offer-1"))
        await repository.retrieve_all()

        await repository.upsert(OfferFactory.create("offer-1", is_inactive=True))

        assert (await repository.retrieve("offer-1")).is_inactive is True

    @pytest.mark.asyncio
    async def test_zero_ttl_disables_cache(self, redis_client, fake_redis):
        repository = RedisPartnerOffersRepository(redis_client, cache_ttl_seconds=0)

        await repository.retrieve_all()
        await repository.retrieve_all()

        assert fake_redis.hgetall_calls == 2

    @pytest.mark.asyncio
    async def test_redis_failure(self, redis_client, fake_redis):
        fake_redis.fail = True

        with pytest.raises(RepositoryError):
            await RedisPartnerOffersRepository(redis_client).retrieve_all()
