"""Redis store of the purchase ledger."""

import logging
from typing import List

from pydantic import ValidationError
from redis.exceptions import RedisError

from storefront_commerce.core.exceptions import RepositoryError
from storefront_commerce.infrastructure.persistence.redis_client import RedisClient
from storefront_commerce.models import CustomerPurchaseEntity
from storefront_commerce.repositories.interfaces import ICustomerPurchasesRepository

logger = logging.getLogger(__name__)


class RedisCustomerPurchasesRepository(ICustomerPurchasesRepository):
    """
    Append-only list per customer.

    Key: ``{prefix}:customer:{customer_id}:purchases``
    """

    def __init__(self, redis_client: RedisClient):
        self._redis = redis_client

    def _key(self, customer_id: str) -> str:
        return self._redis.key("customer", customer_id, "purchases")

    async def add(self, entity: CustomerPurchaseEntity) -> CustomerPurchaseEntity:
        try:
            await self._redis.client.rpush(self._key(entity.customer_id), entity.model_dump_json())
        except RedisError as error:
            raise RepositoryError(f"Could not record purchase {entity.transaction_id}: {error}") from error

        logger.debug(f"💾 Purchase {entity.transaction_id} recorded for {entity.customer_id}")
        return entity

    async def retrieve(self, customer_id: str) -> List[CustomerPurchaseEntity]:
        try:
            raw_entries = await self._redis.client.lrange(self._key(customer_id), 0, -1)
        except RedisError as error:
            raise RepositoryError(f"Could not read purchases of {customer_id}: {error}") from error

        try:
            return [CustomerPurchaseEntity.model_validate_json(raw) for raw in raw_entries]
        except ValidationError as error:
            raise RepositoryError(f"Corrupt purchase record for {customer_id}") from error
