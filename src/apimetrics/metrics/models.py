"""Value objects for the metrics aggregation core.

All latency and duration fields are integer nanoseconds. Rates are
decimals in ``[0, 1]``. Conversion to milliseconds or percentages happens
only in :mod:`apimetrics.metrics.presentation`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from apimetrics._internal.errors import InvalidObservationError

__all__ = [
    "TRANSPORT_FAILURE_STATUS",
    "LatencyStats",
    "LiveTotals",
    "MetricsBucket",
    "RawObservation",
    "RequestDefinition",
    "RequestMetricSummary",
    "RunMetrics",
    "TestResultSummary",
    "freeze_histogram",
    "is_success",
    "success_rate",
]

# Status code recorded when no HTTP response was received (Vegeta's value).
TRANSPORT_FAILURE_STATUS = 0

_EMPTY_HISTOGRAM: Mapping[str, int] = MappingProxyType({})


def is_success(status_code: int) -> bool:
    """Return True for a status code counted as a successful request.

    Success is any status in ``[200, 400)``. Transport failures (status 0)
    and 4xx/5xx responses are failures.
    """
    return 200 <= status_code < 400


def success_rate(success_count: int, total_requests: int) -> float:
    """Return ``success_count / total_requests``, or 0.0 when there are no requests."""
    if total_requests <= 0:
        return 0.0
    return success_count / total_requests


def freeze_histogram(counts: Mapping[str, int]) -> Mapping[str, int]:
    """Return a read-only status histogram with keys in numeric order.

    Args:
        counts: Stringified status code to occurrence count.

    Returns:
        A ``MappingProxyType`` whose iteration order is stable, so equal
        histograms always serialize to identical bytes.
    """
    if not counts:
        return _EMPTY_HISTOGRAM
    ordered = sorted(counts.items(), key=lambda item: (len(item[0]), item[0]))
    return MappingProxyType(dict(ordered))


@dataclass(frozen=True)
class RawObservation:
    """Outcome of one request produced by the load generator.

    Attributes:
        timestamp: Timezone-aware instant the request completed.
        latency_ns: Request latency in nanoseconds.
        status_code: HTTP status, or ``TRANSPORT_FAILURE_STATUS`` when no
            response was received.
        bytes_in: Response bytes received.
        bytes_out: Request bytes sent.
        error: Error string, if the request failed.
        request_index: Index of the request definition within the
            execution plan that produced this observation.
    """

    timestamp: datetime
    latency_ns: int
    status_code: int
    bytes_in: int = 0
    bytes_out: int = 0
    error: str | None = None
    request_index: int = 0

    def __post_init__(self) -> None:
        if self.timestamp.tzinfo is None or self.timestamp.utcoffset() is None:
            msg = f"Observation timestamp must be timezone-aware, got: {self.timestamp!r}"
            raise InvalidObservationError(msg)
        if self.latency_ns < 0:
            msg = f"Observation latency must be >= 0, got: {self.latency_ns}"
            raise InvalidObservationError(msg)
        if self.bytes_in < 0 or self.bytes_out < 0:
            msg = f"Observation byte counts must be >= 0, got: in={self.bytes_in} out={self.bytes_out}"
            raise InvalidObservationError(msg)
        if self.status_code < 0:
            msg = f"Observation status code must be >= 0, got: {self.status_code}"
            raise InvalidObservationError(msg)
        if self.request_index < 0:
            msg = f"Observation request index must be >= 0, got: {self.request_index}"
            raise InvalidObservationError(msg)

    @property
    def succeeded(self) -> bool:
        """Whether the observation counts towards ``success_count``."""
        return is_success(self.status_code)


@dataclass(frozen=True)
class LatencyStats:
    """Latency distribution summary, all values in nanoseconds.

    The zero instance is the well-defined result for an empty sample.
    """

    min: int = 0
    max: int = 0
    avg: int = 0
    p50: int = 0
    p95: int = 0
    p99: int = 0


@dataclass(frozen=True)
class MetricsBucket:
    """Aggregated metrics for one fixed-width time window of an execution.

    Attributes:
        execution_id: Owning execution.
        bucket_number: Window index since run start, starting at 0.
        start_time: Inclusive window start.
        end_time: Exclusive window end (clipped for a trailing partial window).
        total_requests: Observations in the window.
        success_count: Observations with a success status.
        failure_count: ``total_requests - success_count``.
        latency: Latency distribution of the window's observations.
        success_rate: ``success_count / total_requests`` or 0.0.
        bytes_in: Sum of response bytes.
        bytes_out: Sum of request bytes.
        status_codes: Stringified status code to count.
        errors: Retained distinct error strings, sorted.
        dropped_errors: Error occurrences not retained in ``errors``.
    """

    execution_id: str
    bucket_number: int
    start_time: datetime
    end_time: datetime
    total_requests: int = 0
    success_count: int = 0
    failure_count: int = 0
    latency: LatencyStats = field(default_factory=LatencyStats)
    success_rate: float = 0.0
    bytes_in: int = 0
    bytes_out: int = 0
    status_codes: Mapping[str, int] = field(default_factory=lambda: _EMPTY_HISTOGRAM)
    errors: tuple[str, ...] = ()
    dropped_errors: int = 0


@dataclass(frozen=True)
class RunMetrics:
    """Whole-run metrics for a set of observations.

    Attributes:
        total_requests: Observations attributed to this run.
        success_count: Successful observations.
        failure_count: ``total_requests - success_count``.
        success_rate: ``success_count / total_requests`` or 0.0.
        latency: Latency distribution over the whole run.
        duration_ns: Time between the earliest and latest request start.
        wait_ns: Time between the latest request start and the last completion.
        actual_rate: Requests per second over ``duration_ns``.
        throughput: Successful requests per second over ``duration_ns + wait_ns``.
        bytes_in: Sum of response bytes.
        bytes_out: Sum of request bytes.
        status_codes: Stringified status code to count.
        errors: Retained distinct error strings, sorted.
        dropped_errors: Error occurrences not retained in ``errors``.
        earliest: Earliest request start, None for an empty run.
        latest: Latest request start, None for an empty run.
        end: Latest request completion, None for an empty run.
    """

    total_requests: int = 0
    success_count: int = 0
    failure_count: int = 0
    success_rate: float = 0.0
    latency: LatencyStats = field(default_factory=LatencyStats)
    duration_ns: int = 0
    wait_ns: int = 0
    actual_rate: float = 0.0
    throughput: float = 0.0
    bytes_in: int = 0
    bytes_out: int = 0
    status_codes: Mapping[str, int] = field(default_factory=lambda: _EMPTY_HISTOGRAM)
    errors: tuple[str, ...] = ()
    dropped_errors: int = 0
    earliest: datetime | None = None
    latest: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class RequestDefinition:
    """One request of an execution plan, as far as summaries need it."""

    index: int
    method: str
    target: str


@dataclass(frozen=True)
class RequestMetricSummary:
    """Whole-run metrics for a single request definition."""

    request_index: int
    method: str
    target: str
    metrics: RunMetrics = field(default_factory=RunMetrics)


@dataclass(frozen=True)
class TestResultSummary:
    """End-of-run summary for one test of an execution.

    Attributes:
        execution_id: Owning execution.
        test_id: Identifier of the test within the execution.
        metrics: Metrics over every observation of the test.
        requests: Per-request breakdown, ordered by request index. Empty
            when the test issued a single request definition.
    """

    __test__ = False  # not a pytest test class

    execution_id: str
    test_id: str
    metrics: RunMetrics = field(default_factory=RunMetrics)
    requests: tuple[RequestMetricSummary, ...] = ()


@dataclass(frozen=True)
class LiveTotals:
    """Run-so-far view for a live execution.

    Counts are exact. Latencies come from an HDR histogram and are
    accurate to about three significant digits.
    """

    total_requests: int = 0
    success_count: int = 0
    failure_count: int = 0
    success_rate: float = 0.0
    latency: LatencyStats = field(default_factory=LatencyStats)
    buckets_emitted: int = 0
    late_observations: int = 0
