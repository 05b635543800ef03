"""HDR histogram wrapper for bounded-memory latency percentiles.

Wraps ``hdrh.histogram.HdrHistogram`` with a nanosecond API. Values are
stored as integer microseconds, which keeps the bucket count small while
the three significant digits still resolve sub-millisecond latencies.
"""

from __future__ import annotations

from hdrh.histogram import HdrHistogram  # type: ignore[import-untyped]

from apimetrics.metrics.models import LatencyStats

# Range: 1 microsecond to 1 hour (in microseconds)
_LOWEST_TRACKABLE_US = 1
_HIGHEST_TRACKABLE_US = 3_600_000_000
_SIGNIFICANT_DIGITS = 3
_NS_PER_US = 1_000


class HdrHistogramWrapper:
    """HDR histogram that accepts and returns nanoseconds.

    Values outside the trackable range are clamped to it.

    Attributes:
        lowest_us: Lowest trackable value in microseconds.
        highest_us: Highest trackable value in microseconds.
    """

    def __init__(
        self,
        lowest_us: int = _LOWEST_TRACKABLE_US,
        highest_us: int = _HIGHEST_TRACKABLE_US,
        significant_digits: int = _SIGNIFICANT_DIGITS,
    ) -> None:
        self.lowest_us = lowest_us
        self.highest_us = highest_us
        self._histogram: HdrHistogram = HdrHistogram(  # type: ignore[no-any-unimported]
            lowest_us, highest_us, significant_digits
        )

    def record_latency_ns(self, latency_ns: int) -> bool:
        """Record a latency in nanoseconds.

        Args:
            latency_ns: Latency in nanoseconds.

        Returns:
            True if the value was recorded.
        """
        value_us = latency_ns // _NS_PER_US
        value_us = max(self.lowest_us, min(value_us, self.highest_us))
        return bool(self._histogram.record_value(value_us))

    def get_percentile(self, percentile: float) -> int:
        """Return the latency in nanoseconds at ``percentile`` (0-100), or 0 if empty."""
        if self._histogram.total_count == 0:
            return 0
        return int(self._histogram.get_value_at_percentile(percentile)) * _NS_PER_US

    def get_min(self) -> int:
        """Return the minimum recorded latency in nanoseconds, or 0 if empty."""
        if self._histogram.total_count == 0:
            return 0
        return int(self._histogram.get_min_value()) * _NS_PER_US

    def get_max(self) -> int:
        """Return the maximum recorded latency in nanoseconds, or 0 if empty."""
        if self._histogram.total_count == 0:
            return 0
        return int(self._histogram.get_max_value()) * _NS_PER_US

    def get_mean(self) -> int:
        """Return the mean recorded latency in nanoseconds, or 0 if empty."""
        if self._histogram.total_count == 0:
            return 0
        return int(self._histogram.get_mean_value() * _NS_PER_US)

    def get_total_count(self) -> int:
        """Return the number of recorded values."""
        return int(self._histogram.total_count)

    def latency_stats(self) -> LatencyStats:
        """Summarize the histogram as ``LatencyStats``."""
        return LatencyStats(
            min=self.get_min(),
            max=self.get_max(),
            avg=self.get_mean(),
            p50=self.get_percentile(50.0),
            p95=self.get_percentile(95.0),
            p99=self.get_percentile(99.0),
        )

    def reset(self) -> None:
        """Clear all recorded values."""
        self._histogram.reset()

    def add(self, other: HdrHistogramWrapper) -> None:
        """Merge another histogram into this one.

        Args:
            other: Histogram to merge from.
        """
        self._histogram.add(other._histogram)
