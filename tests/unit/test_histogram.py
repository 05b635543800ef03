"""Tests for HdrHistogramWrapper."""

from __future__ import annotations

from apimetrics.metrics.histogram import HdrHistogramWrapper

MS = 1_000_000


class TestHdrHistogramWrapper:
    def test_record_and_get_percentile(self):
        h = HdrHistogramWrapper()
        for i in range(1, 101):
            h.record_latency_ns(i * MS)

        p50 = h.get_percentile(50.0)
        assert 49 * MS <= p50 <= 51 * MS

        p99 = h.get_percentile(99.0)
        assert 98 * MS <= p99 <= 101 * MS

    def test_empty_histogram_returns_zeros(self):
        h = HdrHistogramWrapper()
        assert h.get_percentile(50.0) == 0
        assert h.get_min() == 0
        assert h.get_max() == 0
        assert h.get_mean() == 0
        assert h.get_total_count() == 0

    def test_values_are_nanoseconds(self):
        h = HdrHistogramWrapper()
        h.record_latency_ns(10 * MS)
        assert 9.9 * MS <= h.get_percentile(50.0) <= 10.1 * MS

    def test_min_max_mean(self):
        h = HdrHistogramWrapper()
        h.record_latency_ns(5 * MS)
        h.record_latency_ns(15 * MS)
        h.record_latency_ns(25 * MS)

        assert 4.9 * MS <= h.get_min() <= 5.1 * MS
        assert 24.9 * MS <= h.get_max() <= 25.1 * MS
        assert 14 * MS <= h.get_mean() <= 16 * MS

    def test_latency_stats(self):
        h = HdrHistogramWrapper()
        for i in range(1, 1001):
            h.record_latency_ns(i * MS)

        stats = h.latency_stats()
        assert stats.min <= stats.p50 <= stats.p95 <= stats.p99 <= stats.max
        assert 490 * MS <= stats.p50 <= 510 * MS
        assert 940 * MS <= stats.p95 <= 960 * MS

    def test_total_count(self):
        h = HdrHistogramWrapper()
        h.record_latency_ns(10 * MS)
        h.record_latency_ns(20 * MS)
        assert h.get_total_count() == 2

    def test_reset_clears_histogram(self):
        h = HdrHistogramWrapper()
        h.record_latency_ns(10 * MS)
        h.reset()
        assert h.get_total_count() == 0
        assert h.get_percentile(50.0) == 0

    def test_add_merges_histograms(self):
        h1 = HdrHistogramWrapper()
        h2 = HdrHistogramWrapper()
        for i in range(1, 51):
            h1.record_latency_ns(i * MS)
        for i in range(51, 101):
            h2.record_latency_ns(i * MS)

        h1.add(h2)
        assert h1.get_total_count() == 100
        assert 49 * MS <= h1.get_percentile(50.0) <= 51 * MS

    def test_clamps_sub_microsecond_values(self):
        h = HdrHistogramWrapper()
        h.record_latency_ns(10)
        assert h.get_total_count() == 1
        assert h.get_min() >= 1_000
