"""End-of-run summaries.

``summarize`` is the canonical path: it works on the raw observations of
a test and is a pure function of them. ``merge_buckets`` derives an
approximate run view from already-emitted buckets, and
``check_consistency`` compares the two.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from apimetrics._internal.config import DEFAULT_MAX_ERRORS
from apimetrics._internal.errors import InvalidObservationError
from apimetrics._internal.logging import get_logger
from apimetrics.metrics.accumulator import ObservationAccumulator
from apimetrics.metrics.error_log import BoundedErrorSet
from apimetrics.metrics.models import (
    LatencyStats,
    RequestDefinition,
    RequestMetricSummary,
    RunMetrics,
    TestResultSummary,
    freeze_histogram,
    success_rate,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from apimetrics.metrics.models import MetricsBucket, RawObservation

logger = get_logger("metrics.summarizer")

_NS_PER_SECOND = 1_000_000_000


def timedelta_to_ns(delta: timedelta) -> int:
    """Convert a ``timedelta`` to integer nanoseconds."""
    return (delta.days * 86_400 + delta.seconds) * _NS_PER_SECOND + delta.microseconds * 1_000


def run_rates(
    total_requests: int,
    success_count: int,
    duration_ns: int,
    wait_ns: int,
) -> tuple[float, float]:
    """Return ``(actual_rate, throughput)`` in requests per second.

    ``actual_rate`` is every request over the attack duration;
    ``throughput`` is successful requests over the duration plus the wait
    for the last responses. Either is 0.0 when its interval is zero.
    """
    actual_rate = total_requests * _NS_PER_SECOND / duration_ns if duration_ns > 0 else 0.0
    span_ns = duration_ns + wait_ns
    throughput = success_count * _NS_PER_SECOND / span_ns if span_ns > 0 else 0.0
    return actual_rate, throughput


class _RunAccumulator(ObservationAccumulator):
    """Observation counters plus the run's start/end envelope."""

    __slots__ = ("earliest", "end", "latest")

    def __init__(self, max_errors: int) -> None:
        super().__init__(max_errors)
        self.earliest: datetime | None = None
        self.latest: datetime | None = None
        self.end: datetime | None = None

    def add(self, obs: RawObservation) -> None:
        super().add(obs)
        started = obs.timestamp - timedelta(microseconds=obs.latency_ns // 1_000)
        if self.earliest is None or started < self.earliest:
            self.earliest = started
        if self.latest is None or started > self.latest:
            self.latest = started
        if self.end is None or obs.timestamp > self.end:
            self.end = obs.timestamp

    def run_metrics(self) -> RunMetrics:
        if self.earliest is None or self.latest is None or self.end is None:
            return RunMetrics()
        duration_ns = timedelta_to_ns(self.latest - self.earliest)
        wait_ns = timedelta_to_ns(self.end - self.latest)
        actual_rate, throughput = run_rates(
            self.total_requests, self.success_count, duration_ns, wait_ns
        )
        return RunMetrics(
            total_requests=self.total_requests,
            success_count=self.success_count,
            failure_count=self.failure_count,
            success_rate=self.success_rate,
            latency=self.latency_stats(),
            duration_ns=duration_ns,
            wait_ns=wait_ns,
            actual_rate=actual_rate,
            throughput=throughput,
            bytes_in=self.bytes_in,
            bytes_out=self.bytes_out,
            status_codes=self.status_codes(),
            errors=self.errors,
            dropped_errors=self.dropped_errors,
            earliest=self.earliest,
            latest=self.latest,
            end=self.end,
        )


def summarize_observations(
    observations: Iterable[RawObservation],
    *,
    max_errors: int = DEFAULT_MAX_ERRORS,
) -> RunMetrics:
    """Aggregate observations into ``RunMetrics``.

    Args:
        observations: Observations in any order.
        max_errors: Distinct error strings kept.

    Returns:
        The run metrics; the all-zero ``RunMetrics()`` for no observations.
    """
    acc = _RunAccumulator(max_errors)
    for obs in observations:
        acc.add(obs)
    return acc.run_metrics()


def summarize(
    execution_id: str,
    test_id: str,
    observations: Iterable[RawObservation],
    *,
    requests: Sequence[RequestDefinition] | None = None,
    max_errors: int = DEFAULT_MAX_ERRORS,
) -> TestResultSummary:
    """Summarize a whole test run.

    Per-request rows are produced when request definitions are given or
    the observations span more than one request index.

    Args:
        execution_id: Owning execution.
        test_id: Test identifier within the execution.
        observations: Every observation of the test, in any order.
        requests: Request definitions of the execution plan.
        max_errors: Distinct error strings kept per aggregate.

    Returns:
        The test summary.

    Raises:
        InvalidObservationError: If definitions are given and an observation
            references an index without one.
    """
    definitions = {d.index: d for d in requests or ()}
    overall = _RunAccumulator(max_errors)
    per_request: dict[int, _RunAccumulator] = defaultdict(lambda: _RunAccumulator(max_errors))

    for obs in observations:
        if definitions and obs.request_index not in definitions:
            msg = f"Observation references unknown request index {obs.request_index}"
            raise InvalidObservationError(msg)
        overall.add(obs)
        per_request[obs.request_index].add(obs)

    breakdown: tuple[RequestMetricSummary, ...] = ()
    if definitions or len(per_request) > 1:
        indexes = sorted(set(definitions) | set(per_request))
        rows: list[RequestMetricSummary] = []
        for index in indexes:
            definition = definitions.get(index)
            acc = per_request.get(index)
            rows.append(
                RequestMetricSummary(
                    request_index=index,
                    method=definition.method if definition else "",
                    target=definition.target if definition else "",
                    metrics=acc.run_metrics() if acc is not None else RunMetrics(),
                )
            )
        breakdown = tuple(rows)

    summary = TestResultSummary(
        execution_id=execution_id,
        test_id=test_id,
        metrics=overall.run_metrics(),
        requests=breakdown,
    )
    logger.debug(
        "Summarized %d requests across %d request definitions",
        summary.metrics.total_requests,
        max(len(breakdown), 1),
        extra={"execution_id": execution_id, "test_id": test_id},
    )
    return summary


def combine_run_metrics(
    parts: Sequence[RunMetrics],
    *,
    max_errors: int = DEFAULT_MAX_ERRORS,
) -> RunMetrics:
    """Combine run metrics of disjoint observation sets.

    Counts, bytes, status histograms and min/max are exact. ``avg`` is
    weighted by request count. Percentiles are the maximum of the parts,
    an upper bound on the true combined percentile. Timing is recomputed
    from the combined earliest/latest/end envelope.

    Args:
        parts: Metrics to combine; empty parts are ignored.
        max_errors: Distinct error strings kept.

    Returns:
        Combined metrics, all-zero when every part is empty.
    """
    populated = [p for p in parts if p.total_requests > 0]
    if not populated:
        return RunMetrics()

    total = sum(p.total_requests for p in populated)
    success = sum(p.success_count for p in populated)
    status: dict[str, int] = defaultdict(int)
    errors = BoundedErrorSet(max_errors)
    for part in populated:
        for code, count in part.status_codes.items():
            status[code] += count
        errors.merge(part.errors, part.dropped_errors)

    earliest = [p.earliest for p in populated if p.earliest is not None]
    latest = [p.latest for p in populated if p.latest is not None]
    ends = [p.end for p in populated if p.end is not None]
    duration_ns = wait_ns = 0
    if earliest and latest and ends:
        duration_ns = timedelta_to_ns(max(latest) - min(earliest))
        wait_ns = timedelta_to_ns(max(ends) - max(latest))
    actual_rate, throughput = run_rates(total, success, duration_ns, wait_ns)

    return RunMetrics(
        total_requests=total,
        success_count=success,
        failure_count=total - success,
        success_rate=success_rate(success, total),
        latency=_combine_latency([(p.latency, p.total_requests) for p in populated]),
        duration_ns=duration_ns,
        wait_ns=wait_ns,
        actual_rate=actual_rate,
        throughput=throughput,
        bytes_in=sum(p.bytes_in for p in populated),
        bytes_out=sum(p.bytes_out for p in populated),
        status_codes=freeze_histogram(status),
        errors=errors.errors,
        dropped_errors=errors.dropped,
        earliest=min(earliest) if earliest else None,
        latest=max(latest) if latest else None,
        end=max(ends) if ends else None,
    )


def merge_buckets(
    buckets: Sequence[MetricsBucket],
    *,
    max_errors: int = DEFAULT_MAX_ERRORS,
) -> RunMetrics:
    """Derive run metrics from an execution's emitted buckets.

    Counts, bytes, the status histogram, min and max are exact. ``avg`` is
    weighted by request count. Percentiles are the maximum per-bucket
    value (an upper bound). Timing spans the first non-empty bucket start
    to the last non-empty bucket end, so it is only as precise as the
    bucket grid.

    Args:
        buckets: Buckets of one execution.
        max_errors: Distinct error strings kept.

    Returns:
        Derived metrics, all-zero when the buckets hold no requests.
    """
    populated = [b for b in buckets if b.total_requests > 0]
    if not populated:
        return RunMetrics()

    total = sum(b.total_requests for b in populated)
    success = sum(b.success_count for b in populated)
    status: dict[str, int] = defaultdict(int)
    errors = BoundedErrorSet(max_errors)
    for bucket in populated:
        for code, count in bucket.status_codes.items():
            status[code] += count
        errors.merge(bucket.errors, bucket.dropped_errors)

    earliest = min(b.start_time for b in populated)
    end = max(b.end_time for b in populated)
    duration_ns = timedelta_to_ns(end - earliest)
    actual_rate, throughput = run_rates(total, success, duration_ns, 0)

    return RunMetrics(
        total_requests=total,
        success_count=success,
        failure_count=total - success,
        success_rate=success_rate(success, total),
        latency=_combine_latency([(b.latency, b.total_requests) for b in populated]),
        duration_ns=duration_ns,
        actual_rate=actual_rate,
        throughput=throughput,
        bytes_in=sum(b.bytes_in for b in populated),
        bytes_out=sum(b.bytes_out for b in populated),
        status_codes=freeze_histogram(status),
        errors=errors.errors,
        dropped_errors=errors.dropped,
        earliest=earliest,
        latest=end,
        end=end,
    )


def check_consistency(
    summary: TestResultSummary,
    buckets: Sequence[MetricsBucket],
) -> list[str]:
    """Cross-check a summary against the buckets of the same observations.

    Args:
        summary: Canonical summary.
        buckets: Buckets emitted for the same observation set.

    Returns:
        Human-readable discrepancies; empty when the two views agree.
    """
    run = summary.metrics
    derived = merge_buckets(buckets)
    problems: list[str] = []

    for name in ("total_requests", "success_count", "failure_count", "bytes_in", "bytes_out"):
        expected = getattr(run, name)
        actual = getattr(derived, name)
        if expected != actual:
            problems.append(f"{name}: summary={expected} buckets={actual}")

    if dict(run.status_codes) != dict(derived.status_codes):
        problems.append(
            f"status_codes: summary={dict(run.status_codes)} buckets={dict(derived.status_codes)}"
        )

    if run.total_requests == 0:
        return problems

    if run.latency.min != derived.latency.min:
        problems.append(f"min latency: summary={run.latency.min} buckets={derived.latency.min}")
    if run.latency.max != derived.latency.max:
        problems.append(f"max latency: summary={run.latency.max} buckets={derived.latency.max}")

    populated = [b for b in buckets if b.total_requests > 0]
    # Percentile bounds need at least one populated bucket
    for name in ("p50", "p95", "p99") if populated else ():
        value = getattr(run.latency, name)
        low = min(getattr(b.latency, name) for b in populated)
        high = max(getattr(b.latency, name) for b in populated)
        if not low <= value <= high:
            problems.append(f"{name} latency: summary={value} outside bucket range [{low}, {high}]")

    if problems:
        logger.warning(
            "Summary and buckets disagree: %s",
            "; ".join(problems),
            extra={"execution_id": summary.execution_id, "test_id": summary.test_id},
        )
    return problems


def _combine_latency(parts: Sequence[tuple[LatencyStats, int]]) -> LatencyStats:
    total = sum(count for _, count in parts)
    if total == 0:
        return LatencyStats()
    return LatencyStats(
        min=min(stats.min for stats, _ in parts),
        max=max(stats.max for stats, _ in parts),
        avg=sum(stats.avg * count for stats, count in parts) // total,
        p50=max(stats.p50 for stats, _ in parts),
        p95=max(stats.p95 for stats, _ in parts),
        p99=max(stats.p99 for stats, _ in parts),
    )
