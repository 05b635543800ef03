"""Running counters shared by bucket and run aggregation."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from apimetrics._internal.config import DEFAULT_MAX_ERRORS
from apimetrics.metrics.error_log import BoundedErrorSet
from apimetrics.metrics.models import LatencyStats, freeze_histogram, success_rate
from apimetrics.metrics.percentiles import compute_latency_stats

if TYPE_CHECKING:
    from collections.abc import Mapping

    from apimetrics.metrics.models import RawObservation


class ObservationAccumulator:
    """Collects the raw material for one aggregate.

    Latencies are kept individually so percentiles stay exact; everything
    else is a counter.
    """

    __slots__ = (
        "_errors",
        "_latencies",
        "_status_codes",
        "bytes_in",
        "bytes_out",
        "success_count",
    )

    def __init__(self, max_errors: int = DEFAULT_MAX_ERRORS) -> None:
        self._latencies: list[int] = []
        self._status_codes: dict[str, int] = defaultdict(int)
        self._errors = BoundedErrorSet(max_errors)
        self.success_count = 0
        self.bytes_in = 0
        self.bytes_out = 0

    def add(self, obs: RawObservation) -> None:
        """Fold one observation into the counters."""
        self._latencies.append(obs.latency_ns)
        self._status_codes[str(obs.status_code)] += 1
        if obs.succeeded:
            self.success_count += 1
        self.bytes_in += obs.bytes_in
        self.bytes_out += obs.bytes_out
        self._errors.add_observation(obs)

    @property
    def total_requests(self) -> int:
        return len(self._latencies)

    @property
    def failure_count(self) -> int:
        return self.total_requests - self.success_count

    @property
    def success_rate(self) -> float:
        return success_rate(self.success_count, self.total_requests)

    @property
    def errors(self) -> tuple[str, ...]:
        return self._errors.errors

    @property
    def dropped_errors(self) -> int:
        return self._errors.dropped

    def latency_stats(self) -> LatencyStats:
        return compute_latency_stats(self._latencies)

    def status_codes(self) -> Mapping[str, int]:
        return freeze_histogram(self._status_codes)
