"""
Tests for the in-process metrics recorder.
"""

import pytest

from storefront_commerce.core.metrics import OperationStats, PerformanceMetrics


class TestOperationStats:
    """Tests for OperationStats."""

    def test_percentiles(self):
        stats = OperationStats("op")
        for duration in range(1, 101):
            stats.add_sample(float(duration), success=duration % 10 != 0)

        data = stats.get_stats()

        assert data["total_calls"] == 100
        assert data["failure_calls"] == 10
        assert data["success_rate_percent"] == 90.0
        assert data["min_ms"] == 1
        assert data["max_ms"] == 100
        assert data["p50_ms"] == 51
        assert data["p95_ms"] == 96
        assert data["p99_ms"] == 100

    def test_sample_window_is_bounded(self):
        stats = OperationStats("op", window=5)
        for duration in range(20):
            stats.add_sample(float(duration), success=True)

        assert len(stats.samples) == 5
        assert stats.total_calls == 20

    def test_empty_stats(self):
        data = OperationStats("op").get_stats()

        assert data["avg_ms"] == 0
        assert data["p95_ms"] == 0


class TestPerformanceMetrics:
    """Tests for PerformanceMetrics."""

    @pytest.mark.asyncio
    async def test_timer_records_success(self, fresh_metrics):
        async with fresh_metrics.timer("commerce.purchase", {"customer_id": "c-1"}):
            pass

        stats = fresh_metrics.get_stats("commerce.purchase")
        assert stats["success_calls"] == 1
        assert fresh_metrics.last_sample.metadata == {"customer_id": "c-1"}

    @pytest.mark.asyncio
    async def test_timer_records_failure_and_reraises(self, fresh_metrics):
        with pytest.raises(ValueError):
            async with fresh_metrics.timer("commerce.purchase"):
                raise ValueError("boom")

        stats = fresh_metrics.get_stats("commerce.purchase")
        assert stats["failure_calls"] == 1
        assert fresh_metrics.last_sample.success is False

    @pytest.mark.asyncio
    async def test_disabled_records_nothing(self, fresh_metrics):
        fresh_metrics.disable()

        async with fresh_metrics.timer("commerce.purchase"):
            pass
        fresh_metrics.record("commerce.renew_subscription", 5.0)

        assert fresh_metrics.get_all_stats() == {}
        fresh_metrics.enable()
        assert fresh_metrics.enabled

    def test_reset_single_operation(self, fresh_metrics):
        fresh_metrics.record("a", 1.0)
        fresh_metrics.record("b", 1.0)

        fresh_metrics.reset("a")

        assert list(fresh_metrics.get_all_stats()) == ["b"]

    def test_summary(self, fresh_metrics):
        fresh_metrics.record("a", 1.0)
        fresh_metrics.record("a", 1.0, success=False)
        fresh_metrics.record("b", 2.0)

        summary = fresh_metrics.get_summary()

        assert summary["total_calls"] == 3
        assert summary["total_failure"] == 1
        assert summary["operations_tracked"] == ["a", "b"]

    def test_unknown_operation(self):
        assert PerformanceMetrics().get_stats("missing") is None
