"""
Tests for per-subscription locks.
"""

import asyncio

import pytest

from storefront_commerce.core.locks import SubscriptionLockRegistry


class TestSubscriptionLockRegistry:
    """Tests for SubscriptionLockRegistry."""

    @pytest.mark.asyncio
    async def test_same_subscription_is_serialized(self):
        registry = SubscriptionLockRegistry()
        events = []

        async def operation(label):
            async with registry.hold("c-1", "sub-1"):
                events.append(f"start:{label}")
                await asyncio.sleep(0.01)
                events.append(f"end:{label}")

        await asyncio.gather(operation("a"), operation("b"))

        assert events == ["start:a", "end:a", "start:b", "end:b"]

    @pytest.mark.asyncio
    async def test_different_subscriptions_run_concurrently(self):
        registry = SubscriptionLockRegistry()
        entered = asyncio.Event()
        release = asyncio.Event()

        async def first():
            async with registry.hold("c-1", "sub-1"):
                entered.set()
                await release.wait()

        task = asyncio.create_task(first())
        await entered.wait()

        async with registry.hold("c-1", "sub-2"):
            assert registry.is_locked("c-1", "sub-1")
            assert registry.is_locked("c-1", "sub-2")

        release.set()
        await task

    @pytest.mark.asyncio
    async def test_entries_are_dropped_after_release(self):
        registry = SubscriptionLockRegistry()

        async with registry.hold("c-1", "sub-1"):
            assert len(registry) == 1

        assert len(registry) == 0
        assert registry.is_locked("c-1", "sub-1") is False

    @pytest.mark.asyncio
    async def test_released_when_block_raises(self):
        registry = SubscriptionLockRegistry()

        with pytest.raises(RuntimeError):
            async with registry.hold("c-1", "sub-1"):
                raise RuntimeError("boom")

        assert len(registry) == 0
