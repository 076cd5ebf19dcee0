"""
Per-subscription serialization.

Seat additions and renewals read a subscription, compute a price from it and
then change it. Two such operations on the same subscription must not
interleave, so each one holds a lock keyed by (customer, subscription) from
validation until the pipeline finishes.

The registry is in-process only; several worker processes still need an
external lock.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Tuple

logger = logging.getLogger(__name__)

LockKey = Tuple[str, str]


class SubscriptionLockRegistry:
    """Hands out one asyncio.Lock per (customer_id, subscription_id)."""

    def __init__(self):
        self._locks: Dict[LockKey, asyncio.Lock] = {}
        self._holders: Dict[LockKey, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_locked(self, customer_id: str, subscription_id: str) -> bool:
        lock = self._locks.get((customer_id, subscription_id))
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, customer_id: str, subscription_id: str) -> AsyncIterator[None]:
        """
        Hold the lock of one subscription for the duration of the block.

        Entries are dropped once no coroutine holds or waits for them.
        """
        key = (customer_id, subscription_id)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1

        try:
            if lock.locked():
                logger.debug(f"Waiting for subscription lock {customer_id}/{subscription_id}")
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]
