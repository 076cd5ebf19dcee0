"""Redis store of the subscriptions each customer bought."""

import logging
from typing import List

from pydantic import ValidationError
from redis.exceptions import RedisError

from storefront_commerce.core.exceptions import RepositoryError
from storefront_commerce.infrastructure.persistence.redis_client import RedisClient
from storefront_commerce.models import CustomerSubscriptionEntity
from storefront_commerce.repositories.interfaces import ICustomerSubscriptionsRepository

logger = logging.getLogger(__name__)


class RedisCustomerSubscriptionsRepository(ICustomerSubscriptionsRepository):
    """
    One hash per customer, keyed by subscription id.

    Key: ``{prefix}:customer:{customer_id}:subscriptions``
    """

    def __init__(self, redis_client: RedisClient):
        self._redis = redis_client

    def _key(self, customer_id: str) -> str:
        return self._redis.key("customer", customer_id, "subscriptions")

    async def retrieve(self, customer_id: str) -> List[CustomerSubscriptionEntity]:
        try:
            raw_entries = await self._redis.client.hgetall(self._key(customer_id))
        except RedisError as error:
            raise RepositoryError(f"Could not read subscriptions of {customer_id}: {error}") from error

        try:
            entities = [
                CustomerSubscriptionEntity.model_validate_json(raw)
                for raw in raw_entries.values()
            ]
        except ValidationError as error:
            raise RepositoryError(f"Corrupt subscription record for {customer_id}") from error

        return sorted(entities, key=lambda entity: entity.subscription_id)

    async def add(self, entity: CustomerSubscriptionEntity) -> CustomerSubscriptionEntity:
        """
        Raises:
            RepositoryError: The subscription is already stored.
        """
        try:
            created = await self._redis.client.hsetnx(
                self._key(entity.customer_id), entity.subscription_id, entity.model_dump_json()
            )
        except RedisError as error:
            raise RepositoryError(f"Could not add subscription {entity.subscription_id}: {error}") from error

        if not created:
            raise RepositoryError(
                f"Subscription {entity.subscription_id} of customer {entity.customer_id} already exists"
            )
        logger.debug(f"💾 Subscription {entity.subscription_id} added for {entity.customer_id}")
        return entity

    async def upsert(self, entity: CustomerSubscriptionEntity) -> CustomerSubscriptionEntity:
        try:
            await self._redis.client.hset(
                self._key(entity.customer_id), entity.subscription_id, entity.model_dump_json()
            )
        except RedisError as error:
            raise RepositoryError(f"Could not update subscription {entity.subscription_id}: {error}") from error

        logger.debug(f"💾 Subscription {entity.subscription_id} saved for {entity.customer_id}")
        return entity
