"""Storage-boundary records.

Records use the camelCase column names of the persisted schema. The
``statusCodes`` and ``errors``/``errorDetails`` columns are JSON text, encoded
compactly with sorted keys so an unchanged value always encodes to the
same bytes.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import TYPE_CHECKING, Any

from apimetrics.metrics.models import (
    LatencyStats,
    MetricsBucket,
    freeze_histogram,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from apimetrics.metrics.models import RequestMetricSummary, RunMetrics, TestResultSummary

Record = dict[str, Any]


def encode_json(value: object) -> str:
    """Encode a value as compact, key-sorted JSON text."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def _latency_fields(latency: LatencyStats) -> Record:
    return {
        "avgLatency": latency.avg,
        "minLatency": latency.min,
        "maxLatency": latency.max,
        "p50Latency": latency.p50,
        "p95Latency": latency.p95,
        "p99Latency": latency.p99,
    }


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def bucket_to_record(bucket: MetricsBucket) -> Record:
    """Encode a bucket as a storage row."""
    return {
        "executionId": bucket.execution_id,
        "bucketNumber": bucket.bucket_number,
        "startTime": bucket.start_time.isoformat(),
        "endTime": bucket.end_time.isoformat(),
        "totalRequests": bucket.total_requests,
        "successCount": bucket.success_count,
        "failureCount": bucket.failure_count,
        **_latency_fields(bucket.latency),
        "successRate": bucket.success_rate,
        "bytesIn": bucket.bytes_in,
        "bytesOut": bucket.bytes_out,
        "statusCodes": encode_json(dict(bucket.status_codes)),
        "errors": encode_json(list(bucket.errors)),
        "droppedErrors": bucket.dropped_errors,
    }


def bucket_from_record(record: Mapping[str, Any]) -> MetricsBucket:
    """Decode a storage row produced by :func:`bucket_to_record`.

    Raises:
        KeyError: If a required column is missing.
        ValueError: If a timestamp or JSON column is malformed.
    """
    status_codes = json.loads(record["statusCodes"]) if record.get("statusCodes") else {}
    errors = json.loads(record["errors"]) if record.get("errors") else []
    return MetricsBucket(
        execution_id=record["executionId"],
        bucket_number=int(record["bucketNumber"]),
        start_time=datetime.fromisoformat(record["startTime"]),
        end_time=datetime.fromisoformat(record["endTime"]),
        total_requests=int(record["totalRequests"]),
        success_count=int(record["successCount"]),
        failure_count=int(record["failureCount"]),
        latency=LatencyStats(
            min=int(record["minLatency"]),
            max=int(record["maxLatency"]),
            avg=int(record["avgLatency"]),
            p50=int(record["p50Latency"]),
            p95=int(record["p95Latency"]),
            p99=int(record["p99Latency"]),
        ),
        success_rate=float(record["successRate"]),
        bytes_in=int(record["bytesIn"]),
        bytes_out=int(record["bytesOut"]),
        status_codes=freeze_histogram({str(k): int(v) for k, v in status_codes.items()}),
        errors=tuple(errors),
        dropped_errors=int(record.get("droppedErrors", 0)),
    )


def run_metrics_to_record(metrics: RunMetrics) -> Record:
    """Encode run metrics as the metric columns shared by summaries and executions."""
    return {
        **_latency_fields(metrics.latency),
        "successRate": metrics.success_rate,
        "totalRequests": metrics.total_requests,
        "successCount": metrics.success_count,
        "failureCount": metrics.failure_count,
        "testDuration": metrics.duration_ns,
        "wait": metrics.wait_ns,
        "actualRate": metrics.actual_rate,
        "throughput": metrics.throughput,
        "bytesIn": metrics.bytes_in,
        "bytesOut": metrics.bytes_out,
        "statusCodes": encode_json(dict(metrics.status_codes)),
        "errorDetails": encode_json(list(metrics.errors)),
        "droppedErrors": metrics.dropped_errors,
        "earliest": _isoformat(metrics.earliest),
        "latest": _isoformat(metrics.latest),
        "end": _isoformat(metrics.end),
    }


def request_summary_to_record(row: RequestMetricSummary) -> Record:
    """Encode a per-request child row."""
    return {
        "requestIndex": row.request_index,
        "method": row.method,
        "target": row.target,
        **run_metrics_to_record(row.metrics),
    }


def summary_to_record(summary: TestResultSummary) -> Record:
    """Encode a test summary with its per-request child rows."""
    return {
        "loadTestExecutionId": summary.execution_id,
        "testId": summary.test_id,
        **run_metrics_to_record(summary.metrics),
        "requestMetricSummaries": [request_summary_to_record(r) for r in summary.requests],
    }
