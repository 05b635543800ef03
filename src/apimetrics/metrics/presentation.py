"""Display conversions and view models.

This module is the only place where stored nanoseconds become
milliseconds and stored decimals become percentages. Aggregates are never
modified; every function builds new display values.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

import numpy as np

from apimetrics._internal.config import DEFAULT_LOG_SCALE_RATIO

if TYPE_CHECKING:
    from collections.abc import Sequence

    from apimetrics.metrics.models import MetricsBucket, RunMetrics

NS_PER_MS = 1_000_000

_DURATION_RE = re.compile(r"^(\d+)([smh])$")
_DURATION_UNITS = {"s": 1, "m": 60, "h": 3600}


def ns_to_ms(nanoseconds: int) -> float:
    """Convert nanoseconds to milliseconds."""
    return nanoseconds / NS_PER_MS


def rate_to_percent(rate: float) -> float:
    """Convert a decimal rate (0-1) to a percentage (0-100)."""
    return rate * 100


def format_latency(nanoseconds: int | None) -> str:
    """Format a nanosecond latency as milliseconds, e.g. ``"12.34ms"``.

    Zero or missing latencies render as ``"N/A"``.
    """
    if not nanoseconds:
        return "N/A"
    return f"{ns_to_ms(nanoseconds):.2f}ms"


def format_percentage(value: float, as_decimal: bool = True, decimals: int = 2) -> str:
    """Format a rate as a percentage string, e.g. ``"95.50%"``.

    Args:
        value: The rate to format.
        as_decimal: If True, ``value`` is a decimal (0-1); otherwise it is
            already a percentage (0-100).
        decimals: Digits after the decimal point.
    """
    percentage = rate_to_percent(value) if as_decimal else value
    return f"{percentage:.{decimals}f}%"


def format_bytes(num_bytes: int | None) -> str:
    """Format a byte count with B, KB or MB units (1024 steps)."""
    if not num_bytes:
        return "0B"
    if num_bytes < 1024:
        return f"{num_bytes}B"
    if num_bytes < 1024 * 1024:
        return f"{num_bytes / 1024:.2f}KB"
    return f"{num_bytes / (1024 * 1024):.2f}MB"


def format_duration(nanoseconds: int) -> str:
    """Format a duration the way Go prints ``time.Duration``, e.g. ``"30.001s"``.

    Sub-second durations use ms, µs or ns; longer ones use h/m/s parts
    with trailing zeros trimmed from the seconds.
    """
    if nanoseconds == 0:
        return "0s"
    sign = "-" if nanoseconds < 0 else ""
    ns = abs(nanoseconds)

    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_trim(ns / 1_000)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_trim(ns / 1_000_000)}ms"

    hours, rest = divmod(ns, 3_600 * 1_000_000_000)
    minutes, rest = divmod(rest, 60 * 1_000_000_000)
    seconds = _trim_seconds(rest)
    if hours:
        return f"{sign}{hours}h{minutes}m{seconds}s"
    if minutes:
        return f"{sign}{minutes}m{seconds}s"
    return f"{sign}{seconds}s"


def _trim(value: float) -> str:
    text = f"{value:.9f}".rstrip("0").rstrip(".")
    return text or "0"


def _trim_seconds(ns: int) -> str:
    whole, frac = divmod(ns, 1_000_000_000)
    if frac == 0:
        return str(whole)
    return f"{whole}.{frac:09d}".rstrip("0")


def parse_duration(duration: str) -> timedelta:
    """Parse a duration string such as ``"30s"``, ``"5m"`` or ``"1h"``.

    Raises:
        ValueError: If the string is not ``<digits><s|m|h>``.
    """
    match = _DURATION_RE.match(duration)
    if not match:
        msg = f"Invalid duration format: {duration}"
        raise ValueError(msg)
    value = int(match.group(1))
    return timedelta(seconds=value * _DURATION_UNITS[match.group(2)])


def should_use_log_scale(
    buckets: Sequence[MetricsBucket],
    ratio: float = DEFAULT_LOG_SCALE_RATIO,
) -> bool:
    """Decide whether a latency chart over ``buckets`` needs a log axis.

    True when the largest max latency exceeds ``ratio`` times the median
    p50 latency of the series. Buckets without requests are ignored, so
    idle gaps do not pull the median down. False when no bucket has
    requests.
    """
    populated = [b for b in buckets if b.total_requests > 0]
    if not populated:
        return False
    max_latency = max(b.latency.max for b in populated)
    median_p50 = float(np.median([b.latency.p50 for b in populated]))
    return max_latency > median_p50 * ratio


@dataclass(frozen=True)
class BucketRow:
    """Display values for one bucket. Latencies in ms, success in percent."""

    bucket_number: int
    start_time: str
    end_time: str
    total_requests: int
    success_count: int
    failure_count: int
    success_percent: float
    avg_ms: float
    min_ms: float
    max_ms: float
    p50_ms: float
    p95_ms: float
    p99_ms: float
    bytes_in: str
    bytes_out: str


@dataclass(frozen=True)
class SummaryRow:
    """Display values for run metrics. Latencies in ms, success in percent."""

    total_requests: int
    success_count: int
    failure_count: int
    success_percent: float
    avg_ms: float
    min_ms: float
    max_ms: float
    p50_ms: float
    p95_ms: float
    p99_ms: float
    duration: str
    actual_rate: float
    throughput: float
    bytes_in: str
    bytes_out: str


def bucket_row(bucket: MetricsBucket) -> BucketRow:
    """Build the display row for a bucket."""
    lat = bucket.latency
    return BucketRow(
        bucket_number=bucket.bucket_number,
        start_time=bucket.start_time.strftime("%H:%M:%S"),
        end_time=bucket.end_time.strftime("%H:%M:%S"),
        total_requests=bucket.total_requests,
        success_count=bucket.success_count,
        failure_count=bucket.failure_count,
        success_percent=rate_to_percent(bucket.success_rate),
        avg_ms=ns_to_ms(lat.avg),
        min_ms=ns_to_ms(lat.min),
        max_ms=ns_to_ms(lat.max),
        p50_ms=ns_to_ms(lat.p50),
        p95_ms=ns_to_ms(lat.p95),
        p99_ms=ns_to_ms(lat.p99),
        bytes_in=format_bytes(bucket.bytes_in),
        bytes_out=format_bytes(bucket.bytes_out),
    )


def summary_row(metrics: RunMetrics) -> SummaryRow:
    """Build the display row for run metrics."""
    lat = metrics.latency
    return SummaryRow(
        total_requests=metrics.total_requests,
        success_count=metrics.success_count,
        failure_count=metrics.failure_count,
        success_percent=rate_to_percent(metrics.success_rate),
        avg_ms=ns_to_ms(lat.avg),
        min_ms=ns_to_ms(lat.min),
        max_ms=ns_to_ms(lat.max),
        p50_ms=ns_to_ms(lat.p50),
        p95_ms=ns_to_ms(lat.p95),
        p99_ms=ns_to_ms(lat.p99),
        duration=format_duration(metrics.duration_ns),
        actual_rate=metrics.actual_rate,
        throughput=metrics.throughput,
        bytes_in=format_bytes(metrics.bytes_in),
        bytes_out=format_bytes(metrics.bytes_out),
    )
