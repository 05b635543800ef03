"""Tests for the metric value objects."""

from __future__ import annotations

import dataclasses
from datetime import UTC, datetime

import pytest

from apimetrics._internal.errors import InvalidObservationError
from apimetrics.metrics.models import (
    TRANSPORT_FAILURE_STATUS,
    MetricsBucket,
    RawObservation,
    RunMetrics,
    freeze_histogram,
    is_success,
    success_rate,
)

T0 = datetime(2025, 11, 22, 10, 0, 0, tzinfo=UTC)


class TestRawObservation:
    def test_valid_observation(self):
        obs = RawObservation(timestamp=T0, latency_ns=1_000, status_code=200, bytes_in=10)
        assert obs.succeeded
        assert obs.error is None
        assert obs.request_index == 0

    def test_frozen(self):
        obs = RawObservation(timestamp=T0, latency_ns=1_000, status_code=200)
        with pytest.raises(dataclasses.FrozenInstanceError):
            obs.latency_ns = 5  # type: ignore[misc]

    def test_negative_latency_rejected(self):
        with pytest.raises(InvalidObservationError, match="latency"):
            RawObservation(timestamp=T0, latency_ns=-1, status_code=200)

    def test_negative_bytes_rejected(self):
        with pytest.raises(InvalidObservationError, match="byte counts"):
            RawObservation(timestamp=T0, latency_ns=1, status_code=200, bytes_out=-3)

    def test_naive_timestamp_rejected(self):
        with pytest.raises(InvalidObservationError, match="timezone-aware"):
            RawObservation(timestamp=datetime(2025, 1, 1), latency_ns=1, status_code=200)

    def test_negative_request_index_rejected(self):
        with pytest.raises(InvalidObservationError, match="request index"):
            RawObservation(timestamp=T0, latency_ns=1, status_code=200, request_index=-1)

    def test_transport_failure_is_not_success(self):
        obs = RawObservation(
            timestamp=T0,
            latency_ns=0,
            status_code=TRANSPORT_FAILURE_STATUS,
            error="dial tcp: connection refused",
        )
        assert not obs.succeeded


class TestHelpers:
    @pytest.mark.parametrize(
        ("code", "expected"),
        [(0, False), (199, False), (200, True), (204, True), (302, True), (399, True), (400, False), (503, False)],
    )
    def test_is_success(self, code, expected):
        assert is_success(code) is expected

    def test_success_rate_never_divides_by_zero(self):
        assert success_rate(0, 0) == 0.0
        assert success_rate(1, 2) == 0.5

    def test_freeze_histogram_orders_numerically(self):
        frozen = freeze_histogram({"503": 1, "0": 2, "200": 3, "1000": 1})
        assert list(frozen) == ["0", "200", "503", "1000"]

    def test_freeze_histogram_is_read_only(self):
        frozen = freeze_histogram({"200": 1})
        with pytest.raises(TypeError):
            frozen["200"] = 2  # type: ignore[index]

    def test_empty_bucket_defaults(self):
        bucket = MetricsBucket(execution_id="e", bucket_number=0, start_time=T0, end_time=T0)
        assert bucket.total_requests == 0
        assert bucket.success_rate == 0.0
        assert dict(bucket.status_codes) == {}
        assert bucket.errors == ()

    def test_default_histograms_are_empty_and_read_only(self):
        metrics = RunMetrics()
        bucket = MetricsBucket(execution_id="e", bucket_number=0, start_time=T0, end_time=T0)

        assert dict(metrics.status_codes) == {}
        assert dict(bucket.status_codes) == {}
        with pytest.raises(TypeError):
            metrics.status_codes["200"] = 1  # type: ignore[index]
