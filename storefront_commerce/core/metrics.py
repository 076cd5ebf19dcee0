"""
Operation metrics for storefront-commerce.

Records wall-clock duration and outcome of commerce operations (purchases,
seat additions, renewals) and of the calls they make to external systems.

Example:
    >>> from storefront_commerce.core.metrics import metrics
    >>>
    >>> async with metrics.timer("commerce.purchase", {"customer_id": "c-1"}):
    ...     await operations.purchase(line_items)
    >>>
    >>> metrics.get_stats("commerce.purchase")["p95_ms"]
"""

import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Deque, Dict, Optional

logger = logging.getLogger(__name__)

# Samples kept per operation for percentile computation.
DEFAULT_SAMPLE_WINDOW = 1000


@dataclass
class MetricSample:
    """One timed execution of an operation."""
    operation: str
    duration_ms: float
    success: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OperationStats:
    """Running counters and a bounded sample window for one operation."""
    operation: str
    window: int = DEFAULT_SAMPLE_WINDOW
    total_calls: int = 0
    success_calls: int = 0
    failure_calls: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: Optional[float] = None
    max_duration_ms: Optional[float] = None
    samples: Deque[float] = field(init=False)

    def __post_init__(self):
        self.samples = deque(maxlen=self.window)

    def add_sample(self, duration_ms: float, success: bool) -> None:
        self.total_calls += 1
        if success:
            self.success_calls += 1
        else:
            self.failure_calls += 1

        self.total_duration_ms += duration_ms
        self.samples.append(duration_ms)

        if self.min_duration_ms is None:
            self.min_duration_ms = self.max_duration_ms = duration_ms
        else:
            self.min_duration_ms = min(self.min_duration_ms, duration_ms)
            self.max_duration_ms = max(self.max_duration_ms, duration_ms)

    def _percentile(self, ordered, fraction: float) -> float:
        if not ordered:
            return 0.0
        index = min(len(ordered) - 1, int(len(ordered) * fraction))
        return ordered[index]

    def get_stats(self) -> Dict[str, Any]:
        ordered = sorted(self.samples)
        avg = self.total_duration_ms / self.total_calls if self.total_calls else 0.0
        success_rate = self.success_calls / self.total_calls * 100 if self.total_calls else 0.0

        return {
            "operation": self.operation,
            "total_calls": self.total_calls,
            "success_calls": self.success_calls,
            "failure_calls": self.failure_calls,
            "success_rate_percent": round(success_rate, 2),
            "avg_ms": round(avg, 2),
            "min_ms": round(self.min_duration_ms or 0, 2),
            "max_ms": round(self.max_duration_ms or 0, 2),
            "p50_ms": round(self._percentile(ordered, 0.50), 2),
            "p95_ms": round(self._percentile(ordered, 0.95), 2),
            "p99_ms": round(self._percentile(ordered, 0.99), 2),
        }


class PerformanceMetrics:
    """
    In-process metrics recorder.

    Attributes:
        operations: operation name -> OperationStats
        last_sample: Most recent sample recorded, for diagnostics.
    """

    def __init__(self, window: int = DEFAULT_SAMPLE_WINDOW):
        self.operations: Dict[str, OperationStats] = {}
        self.last_sample: Optional[MetricSample] = None
        self._window = window
        self._enabled = True

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True
        logger.info("📈 Commerce metrics recording on")

    def disable(self) -> None:
        self._enabled = False
        logger.info("📉 Commerce metrics recording off")

    def record(
        self,
        operation: str,
        duration_ms: float,
        success: bool = True,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Record one execution of ``operation``.

        Args:
            operation: Operation name, dotted by area (``commerce.purchase``).
            duration_ms: Duration in milliseconds.
            success: Whether the operation succeeded.
            metadata: Optional context attached to the sample.
        """
        if not self._enabled:
            return

        stats = self.operations.get(operation)
        if stats is None:
            stats = self.operations[operation] = OperationStats(operation, window=self._window)

        stats.add_sample(duration_ms, success)
        self.last_sample = MetricSample(operation, duration_ms, success, metadata=metadata or {})

    @asynccontextmanager
    async def timer(
        self,
        operation: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[None]:
        """
        Time the enclosed block. Any exception counts as a failure and is re-raised.
        """
        if not self._enabled:
            yield
            return

        start = time.perf_counter()
        success = False
        try:
            yield
            success = True
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self.record(operation, duration_ms, success, metadata)
            if not success:
                logger.debug(f"Operation '{operation}' failed after {duration_ms:.1f}ms")

    def get_stats(self, operation: str) -> Optional[Dict[str, Any]]:
        stats = self.operations.get(operation)
        return stats.get_stats() if stats else None

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        return {name: stats.get_stats() for name, stats in self.operations.items()}

    def reset(self, operation: Optional[str] = None) -> None:
        """Reset one operation, or everything when ``operation`` is None."""
        if operation:
            self.operations.pop(operation, None)
        else:
            self.operations.clear()
            self.last_sample = None

    def get_summary(self) -> Dict[str, Any]:
        total_calls = sum(s.total_calls for s in self.operations.values())
        total_success = sum(s.success_calls for s in self.operations.values())

        return {
            "enabled": self._enabled,
            "total_operations": len(self.operations),
            "total_calls": total_calls,
            "total_success": total_success,
            "total_failure": total_calls - total_success,
            "overall_success_rate_percent": round(
                total_success / total_calls * 100 if total_calls else 0.0, 2
            ),
            "operations_tracked": sorted(self.operations),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


# Process-wide recorder used when no instance is injected
metrics = PerformanceMetrics()
