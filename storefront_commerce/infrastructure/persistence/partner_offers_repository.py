"""Redis backed offer catalog with an in-process cache."""

import asyncio
import logging
import time
from typing import Callable, List, Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from storefront_commerce.core.exceptions import RepositoryError
from storefront_commerce.infrastructure.persistence.redis_client import RedisClient
from storefront_commerce.models import PartnerOffer
from storefront_commerce.repositories.interfaces import IPartnerOffersRepository

logger = logging.getLogger(__name__)


class RedisPartnerOffersRepository(IPartnerOffersRepository):
    """
    Catalog stored as one hash keyed by offer id.

    Key: ``{prefix}:offers``

    Reads are served from a snapshot refreshed every ``cache_ttl_seconds``.
    A ttl of 0 disables the cache.
    """

    def __init__(
        self,
        redis_client: RedisClient,
        cache_ttl_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._redis = redis_client
        self._cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._cached: Optional[List[PartnerOffer]] = None
        self._cached_at = 0.0
        self._refresh_lock = asyncio.Lock()

    @property
    def _key(self) -> str:
        return self._redis.key("offers")

    def _cache_is_fresh(self) -> bool:
        return (
            self._cached is not None
            and self._clock() - self._cached_at < self._cache_ttl_seconds
        )

    def invalidate_cache(self) -> None:
        self._cached = None

    async def _load(self) -> List[PartnerOffer]:
        try:
            raw_offers = await self._redis.client.hgetall(self._key)
        except RedisError as error:
            raise RepositoryError(f"Could not read the offer catalog: {error}") from error

        try:
            offers = [PartnerOffer.model_validate_json(raw) for raw in raw_offers.values()]
        except ValidationError as error:
            raise RepositoryError("Corrupt offer record in the catalog") from error

        return sorted(offers, key=lambda offer: offer.id)

    async def retrieve_all(self) -> List[PartnerOffer]:
        if self._cache_is_fresh():
            return list(self._cached)

        async with self._refresh_lock:
            if not self._cache_is_fresh():
                self._cached = await self._load()
                self._cached_at = self._clock()
                logger.debug(f"📚 Offer catalog loaded ({len(self._cached)} offers)")
            return list(self._cached)

    async def retrieve(self, offer_id: str) -> Optional[PartnerOffer]:
        for offer in await self.retrieve_all():
            if offer.id == offer_id:
                return offer
        return None

    async def upsert(self, offer: PartnerOffer) -> PartnerOffer:
        """Add or replace a catalog offer."""
        try:
            await self._redis.client.hset(self._key, offer.id, offer.model_dump_json())
        except RedisError as error:
            raise RepositoryError(f"Could not save offer {offer.id}: {error}") from error

        self.invalidate_cache()
        logger.info(f"📚 Offer {offer.id} saved (inactive={offer.is_inactive})")
        return offer
