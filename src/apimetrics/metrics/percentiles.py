"""Nearest-rank latency percentiles.

The estimator picks the sample at rank ``ceil(p * n / 100)`` of the sorted
latencies. Ranks are computed with integer arithmetic, so a given sample
always yields the same values.
"""

from __future__ import annotations

from collections.abc import Iterable

import numpy as np

from apimetrics._internal.errors import InvalidObservationError
from apimetrics.metrics.models import LatencyStats

LATENCY_PERCENTILES = (50, 95, 99)


def nearest_rank(sorted_values: np.ndarray, percentile: int) -> int:
    """Return the nearest-rank percentile of an ascending, non-empty array.

    Args:
        sorted_values: Latencies sorted ascending.
        percentile: Integer percentile in ``[0, 100]``.

    Returns:
        The sample value at the nearest rank.
    """
    n = len(sorted_values)
    rank = -(-percentile * n // 100)
    rank = min(max(rank, 1), n)
    return int(sorted_values[rank - 1])


def compute_latency_stats(latencies: Iterable[int]) -> LatencyStats:
    """Compute min/max/avg/p50/p95/p99 over a batch of latencies.

    Args:
        latencies: Latencies in nanoseconds, in any order.

    Returns:
        LatencyStats in nanoseconds. ``avg`` is the truncated integer mean.
        An empty input returns the all-zero ``LatencyStats()``.

    Raises:
        InvalidObservationError: If any latency is negative.
    """
    arr = np.fromiter(latencies, dtype=np.int64)
    if arr.size == 0:
        return LatencyStats()

    arr.sort()
    if arr[0] < 0:
        msg = f"Latency must be >= 0, got: {int(arr[0])}"
        raise InvalidObservationError(msg)

    p50, p95, p99 = (nearest_rank(arr, p) for p in LATENCY_PERCENTILES)
    return LatencyStats(
        min=int(arr[0]),
        max=int(arr[-1]),
        avg=int(arr.sum()) // int(arr.size),
        p50=p50,
        p95=p95,
        p99=p99,
    )
