"""Custom exception hierarchy for ApiMetrics."""

from __future__ import annotations


class ApiMetricsError(Exception):
    """Base exception for all ApiMetrics errors.

    All custom exceptions in the package inherit from this class, making
    it easy to catch any ApiMetrics-specific error with a single except
    clause.
    """


class InvalidObservationError(ApiMetricsError):
    """Raised when an observation is structurally invalid.

    Examples:
        - A latency or byte count is negative.
        - A timestamp is naive (has no timezone) or precedes the run start.
        - An observation references an unknown request definition.
    """


class AggregatorClosedError(ApiMetricsError):
    """Raised when observations arrive after a run was finished or aborted."""


class BucketConflictError(ApiMetricsError):
    """Raised when a bucket is redelivered with content that differs from
    the stored bucket for the same ``(execution_id, bucket_number)`` key.
    """


class ExecutionStateError(ApiMetricsError):
    """Raised on an execution status transition that is not allowed.

    Examples:
        - Applying a result to a failed execution.
        - Failing an execution that already completed.
    """


class IngestError(ApiMetricsError):
    """Raised when load-generator output cannot be decoded."""


class ConfigError(ApiMetricsError):
    """Raised when configuration is invalid or missing.

    Examples:
        - Required environment variable has an invalid value.
        - Configuration value is out of acceptable range.
    """
