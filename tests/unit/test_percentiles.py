"""Tests for nearest-rank latency percentiles."""

from __future__ import annotations

import numpy as np
import pytest

from apimetrics._internal.errors import InvalidObservationError
from apimetrics.metrics.models import LatencyStats
from apimetrics.metrics.percentiles import compute_latency_stats, nearest_rank

MS = 1_000_000


class TestNearestRank:
    def test_one_to_hundred(self):
        values = np.arange(1, 101, dtype=np.int64)
        assert nearest_rank(values, 50) == 50
        assert nearest_rank(values, 95) == 95
        assert nearest_rank(values, 99) == 99

    def test_rank_rounds_up(self):
        values = np.array([10, 20, 30], dtype=np.int64)
        # ceil(0.5 * 3) = 2, ceil(0.95 * 3) = 3
        assert nearest_rank(values, 50) == 20
        assert nearest_rank(values, 95) == 30

    def test_zero_percentile_is_minimum(self):
        values = np.array([5, 7, 9], dtype=np.int64)
        assert nearest_rank(values, 0) == 5

    def test_hundredth_percentile_is_maximum(self):
        values = np.array([5, 7, 9], dtype=np.int64)
        assert nearest_rank(values, 100) == 9

    def test_single_value(self):
        values = np.array([42], dtype=np.int64)
        assert nearest_rank(values, 50) == 42
        assert nearest_rank(values, 99) == 42


class TestComputeLatencyStats:
    def test_three_requests(self):
        stats = compute_latency_stats([10 * MS, 20 * MS, 30 * MS])
        assert stats.min == 10 * MS
        assert stats.max == 30 * MS
        assert stats.avg == 20 * MS
        assert stats.p50 == 20 * MS
        assert stats.p95 == 30 * MS
        assert stats.p99 == 30 * MS

    def test_order_does_not_matter(self):
        shuffled = [30 * MS, 10 * MS, 20 * MS]
        assert compute_latency_stats(shuffled) == compute_latency_stats(sorted(shuffled))

    def test_empty_returns_zeros(self):
        stats = compute_latency_stats([])
        assert stats == LatencyStats()
        assert stats.avg == 0
        assert stats.p99 == 0

    def test_avg_truncates(self):
        stats = compute_latency_stats([1, 2])
        assert stats.avg == 1

    def test_outputs_are_ints(self):
        stats = compute_latency_stats([3, 1, 2])
        for value in (stats.min, stats.max, stats.avg, stats.p50, stats.p95, stats.p99):
            assert type(value) is int

    def test_accepts_generator(self):
        stats = compute_latency_stats(i * MS for i in range(1, 101))
        assert stats.p50 == 50 * MS
        assert stats.p95 == 95 * MS
        assert stats.p99 == 99 * MS

    def test_percentiles_are_ordered(self):
        stats = compute_latency_stats([7, 300, 12, 5, 90, 41, 8, 1000, 3])
        assert stats.min <= stats.p50 <= stats.p95 <= stats.p99 <= stats.max

    def test_negative_latency_raises(self):
        with pytest.raises(InvalidObservationError, match="must be >= 0"):
            compute_latency_stats([10, -1])

    def test_large_nanosecond_values_exact(self):
        # One hour in nanoseconds stays exact in int64
        hour = 3_600 * 1_000_000_000
        stats = compute_latency_stats([hour, hour + 1])
        assert stats.max == hour + 1
        assert stats.avg == hour
