"""
Redis connection used by the customer stores and the offer catalog.

Unlike a cache, these stores hold the purchase ledger, so there is no
in-memory fallback: if Redis cannot be reached the operation fails with
``RepositoryError`` before any payment is taken.
"""

import asyncio
import logging
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from storefront_commerce.core.exceptions import RepositoryError

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Owns the ``redis.asyncio`` connection pool and the key namespace.

    Attributes:
        url: Redis URL.
        key_prefix: Prefix of every key written through ``key()``.
    """

    def __init__(
        self,
        url: str,
        key_prefix: str = "storefront",
        max_retries: int = 3,
        socket_timeout: float = 10.0,
        client: Optional[redis.Redis] = None,
    ):
        self.url = url
        self.key_prefix = key_prefix
        self._max_retries = max_retries
        self._socket_timeout = socket_timeout
        self._client = client

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            raise RepositoryError("Redis client is not connected")
        return self._client

    def key(self, *parts: str) -> str:
        return ":".join((self.key_prefix, *parts))

    async def connect(self) -> None:
        """
        Connect and ping, retrying with a linear backoff.

        Raises:
            RepositoryError: Redis is still unreachable after the last attempt.
        """
        if self._client is not None:
            return

        last_error: Optional[Exception] = None
        for attempt in range(1, self._max_retries + 1):
            client = redis.from_url(
                self.url,
                decode_responses=True,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_timeout,
            )
            try:
                await client.ping()
            except (RedisError, OSError) as error:
                last_error = error
                await client.aclose()
                logger.warning(
                    f"⚠️ Attempt {attempt}/{self._max_retries} - could not connect to Redis: {error}"
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(attempt)
                continue

            self._client = client
            logger.info("✅ Connected to Redis")
            return

        logger.error(f"❌ Could not connect to Redis after {self._max_retries} attempts")
        raise RepositoryError(f"Redis unavailable: {last_error}") from last_error

    async def disconnect(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
            logger.info("🔌 Disconnected from Redis")
        except RedisError as error:
            logger.warning(f"⚠️ Error disconnecting from Redis: {error}")
        finally:
            self._client = None
