"""Fixed-width time bucketing of an execution's observation stream.

A ``BucketAggregator`` belongs to exactly one execution for the lifetime
of its run. Observations are routed purely by timestamp; buckets are
emitted in bucket-number order, each exactly once, as immutable
``MetricsBucket`` values.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from apimetrics._internal.config import DEFAULT_BUCKET_WINDOW_SECONDS, DEFAULT_MAX_ERRORS
from apimetrics._internal.errors import AggregatorClosedError, InvalidObservationError
from apimetrics._internal.logging import bind, get_logger
from apimetrics.metrics.accumulator import ObservationAccumulator
from apimetrics.metrics.histogram import HdrHistogramWrapper
from apimetrics.metrics.models import LiveTotals, MetricsBucket, success_rate

if TYPE_CHECKING:
    from collections.abc import Callable

    from apimetrics.metrics.models import RawObservation

logger = get_logger("metrics.buckets")

DEFAULT_WINDOW = timedelta(seconds=DEFAULT_BUCKET_WINDOW_SECONDS)


class BucketAggregator:
    """Groups observations into fixed-width windows since the run start.

    Bucket ``n`` covers ``[start_time + n * window, start_time + (n + 1) * window)``.
    Windows with no observations still produce an all-zero bucket, so the
    emitted sequence always partitions the run without gaps.

    Observations that map to an already-emitted bucket are counted as late
    and not applied; emitted buckets never change.

    Attributes:
        execution_id: Execution the buckets belong to.
        start_time: Run start, the origin of the bucket grid.
        window: Bucket width.
    """

    def __init__(
        self,
        execution_id: str,
        start_time: datetime,
        *,
        window: timedelta = DEFAULT_WINDOW,
        max_errors: int = DEFAULT_MAX_ERRORS,
        on_bucket: Callable[[MetricsBucket], None] | None = None,
    ) -> None:
        """Initialize the aggregator.

        Args:
            execution_id: Execution the buckets belong to.
            start_time: Timezone-aware run start.
            window: Bucket width, must be positive.
            max_errors: Distinct error strings kept per bucket.
            on_bucket: Optional callback invoked once with each emitted bucket.

        Raises:
            ValueError: If ``window`` is not positive.
            InvalidObservationError: If ``start_time`` is naive.
        """
        if window <= timedelta(0):
            msg = f"window must be positive, got: {window}"
            raise ValueError(msg)
        if start_time.tzinfo is None or start_time.utcoffset() is None:
            msg = f"start_time must be timezone-aware, got: {start_time!r}"
            raise InvalidObservationError(msg)

        self.execution_id = execution_id
        self.start_time = start_time
        self.window = window
        self._max_errors = max_errors
        self._on_bucket = on_bucket
        self._log = bind(logger, execution_id=execution_id)

        self._open: dict[int, ObservationAccumulator] = {}
        self._emitted: list[MetricsBucket] = []
        self._highest_seen = -1
        self._last_timestamp: datetime | None = None
        self._late_observations = 0
        self._closed = False

        # Cumulative state for the live view (never reset)
        self._live_histogram = HdrHistogramWrapper()
        self._live_total = 0
        self._live_success = 0

    @property
    def next_bucket_number(self) -> int:
        """Number of the next bucket to be emitted."""
        return len(self._emitted)

    @property
    def emitted(self) -> list[MetricsBucket]:
        """All buckets emitted so far, ordered by bucket number."""
        return list(self._emitted)

    @property
    def late_observations(self) -> int:
        """Observations that arrived after their bucket was emitted."""
        return self._late_observations

    @property
    def closed(self) -> bool:
        return self._closed

    def bucket_number_for(self, timestamp: datetime) -> int:
        """Return the bucket number a timestamp falls into (negative before start)."""
        return (timestamp - self.start_time) // self.window

    def window_bounds(self, bucket_number: int) -> tuple[datetime, datetime]:
        """Return the ``(start, end)`` of a full window."""
        start = self.start_time + self.window * bucket_number
        return start, start + self.window

    def add_observation(self, obs: RawObservation) -> int:
        """Route an observation to the bucket its timestamp falls into.

        Args:
            obs: The observation to aggregate.

        Returns:
            The bucket number the observation maps to.

        Raises:
            AggregatorClosedError: If the run was finished or aborted.
            InvalidObservationError: If the observation precedes the run start.
        """
        if self._closed:
            msg = f"Aggregator for execution {self.execution_id} is closed"
            raise AggregatorClosedError(msg)

        number = self.bucket_number_for(obs.timestamp)
        if number < 0:
            msg = f"Observation at {obs.timestamp.isoformat()} precedes run start {self.start_time.isoformat()}"
            raise InvalidObservationError(msg)

        if number < self.next_bucket_number:
            self._late_observations += 1
            self._log.warning(
                "Dropping late observation for emitted bucket %d",
                number,
                extra={"bucket_number": number},
            )
            return number

        acc = self._open.get(number)
        if acc is None:
            acc = ObservationAccumulator(self._max_errors)
            self._open[number] = acc
        acc.add(obs)

        self._highest_seen = max(self._highest_seen, number)
        if self._last_timestamp is None or obs.timestamp > self._last_timestamp:
            self._last_timestamp = obs.timestamp

        self._live_histogram.record_latency_ns(obs.latency_ns)
        self._live_total += 1
        if obs.succeeded:
            self._live_success += 1

        return number

    def flush(self, bucket_number: int) -> MetricsBucket:
        """Finalize a bucket whose window has elapsed.

        Earlier buckets that were not emitted yet are emitted first, so the
        output stays in order without gaps. Flushing an emitted bucket
        again returns the stored bucket without re-emitting it.

        Args:
            bucket_number: The bucket to finalize.

        Returns:
            The immutable bucket.

        Raises:
            ValueError: If ``bucket_number`` is negative.
            AggregatorClosedError: If the bucket was never emitted and the
                run is closed.
        """
        if bucket_number < 0:
            msg = f"bucket_number must be >= 0, got: {bucket_number}"
            raise ValueError(msg)
        if bucket_number < self.next_bucket_number:
            return self._emitted[bucket_number]
        if self._closed:
            msg = f"Aggregator for execution {self.execution_id} is closed"
            raise AggregatorClosedError(msg)

        while self.next_bucket_number <= bucket_number:
            self._emit(self.next_bucket_number)
        return self._emitted[bucket_number]

    def flush_until(self, now: datetime) -> list[MetricsBucket]:
        """Emit every bucket whose window ended at or before ``now``.

        Args:
            now: Current time on the same clock as the observations.

        Returns:
            Newly emitted buckets, possibly empty.
        """
        if self._closed:
            return []
        elapsed_windows = self.bucket_number_for(now)
        flushed: list[MetricsBucket] = []
        while self.next_bucket_number < elapsed_windows:
            flushed.append(self._emit(self.next_bucket_number))
        return flushed

    def finish(self, end_time: datetime | None = None) -> list[MetricsBucket]:
        """End the run and emit every remaining bucket.

        The trailing bucket is clipped to the run end, which is the later
        of ``end_time`` and the latest observation. A run end on a window
        boundary leaves that window at full width.

        Args:
            end_time: When the run ended. Defaults to the latest observation.

        Returns:
            Newly emitted buckets, possibly empty.

        Raises:
            AggregatorClosedError: If the run was already finished or aborted.
        """
        if self._closed:
            msg = f"Aggregator for execution {self.execution_id} is closed"
            raise AggregatorClosedError(msg)

        run_end = self._last_timestamp
        if end_time is not None and (run_end is None or end_time > run_end):
            run_end = end_time

        last = self._highest_seen
        if run_end is not None and run_end > self.start_time:
            elapsed = run_end - self.start_time
            covering = -(-elapsed // self.window)
            last = max(last, covering - 1)

        flushed: list[MetricsBucket] = []
        while self.next_bucket_number <= last:
            number = self.next_bucket_number
            clip = run_end if number == last else None
            flushed.append(self._emit(number, clip_to=clip))

        self._closed = True
        self._log.debug("Run finished with %d buckets", self.next_bucket_number)
        return flushed

    def abort(self) -> None:
        """Cancel the run, discarding every bucket that was not emitted."""
        discarded = len(self._open)
        self._open.clear()
        self._closed = True
        self._log.info("Run aborted, discarded %d open buckets", discarded)

    def live_totals(self) -> LiveTotals:
        """Return the run-so-far totals, including open buckets."""
        return LiveTotals(
            total_requests=self._live_total,
            success_count=self._live_success,
            failure_count=self._live_total - self._live_success,
            success_rate=success_rate(self._live_success, self._live_total),
            latency=self._live_histogram.latency_stats(),
            buckets_emitted=self.next_bucket_number,
            late_observations=self._late_observations,
        )

    def _emit(self, number: int, clip_to: datetime | None = None) -> MetricsBucket:
        start, end = self.window_bounds(number)
        if clip_to is not None and start < clip_to < end:
            end = clip_to

        acc = self._open.pop(number, None) or ObservationAccumulator(self._max_errors)
        bucket = MetricsBucket(
            execution_id=self.execution_id,
            bucket_number=number,
            start_time=start,
            end_time=end,
            total_requests=acc.total_requests,
            success_count=acc.success_count,
            failure_count=acc.failure_count,
            latency=acc.latency_stats(),
            success_rate=acc.success_rate,
            bytes_in=acc.bytes_in,
            bytes_out=acc.bytes_out,
            status_codes=acc.status_codes(),
            errors=acc.errors,
            dropped_errors=acc.dropped_errors,
        )
        self._emitted.append(bucket)
        self._log.debug(
            "Emitted bucket %d with %d requests",
            number,
            bucket.total_requests,
            extra={"bucket_number": number},
        )

        if self._on_bucket is not None:
            self._on_bucket(bucket)
        return bucket
