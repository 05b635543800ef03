"""ApiMetrics — turn load-test observations into latency summaries and time buckets."""

from __future__ import annotations

from apimetrics.metrics.buckets import BucketAggregator
from apimetrics.metrics.models import (
    LatencyStats,
    MetricsBucket,
    RawObservation,
    RequestDefinition,
    RequestMetricSummary,
    RunMetrics,
    TestResultSummary,
)
from apimetrics.metrics.percentiles import compute_latency_stats
from apimetrics.metrics.rollup import Execution, ExecutionStatus
from apimetrics.metrics.summarizer import summarize

__version__ = "0.1.0"

__all__ = [
    "BucketAggregator",
    "Execution",
    "ExecutionStatus",
    "LatencyStats",
    "MetricsBucket",
    "RawObservation",
    "RequestDefinition",
    "RequestMetricSummary",
    "RunMetrics",
    "TestResultSummary",
    "compute_latency_stats",
    "summarize",
]
