"""Execution-level rollup of test summaries.

An execution starts ``running``. Ingesting a result completes it;
``fail`` records a failed run. Every operation returns a new
``Execution``; stored metric values stay in nanoseconds and decimals.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING

from apimetrics._internal.config import DEFAULT_MAX_ERRORS
from apimetrics._internal.errors import ExecutionStateError
from apimetrics._internal.logging import get_logger
from apimetrics.metrics.summarizer import combine_run_metrics

if TYPE_CHECKING:
    from collections.abc import Sequence

    from apimetrics.metrics.models import RunMetrics, TestResultSummary

logger = get_logger("metrics.rollup")


class ExecutionStatus(str, Enum):
    """Lifecycle state of an execution."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Execution:
    """An execution together with its folded-in metrics.

    Attributes:
        execution_id: Execution identifier.
        name: Display name.
        status: Lifecycle state.
        metrics: Execution-level metrics, None until a result is applied.
        result_timestamp: When the metrics were last updated.
        results: Attached test summaries, one per ``test_id``.
        failure_reason: Why the execution failed, if it did.
    """

    execution_id: str
    name: str = ""
    status: ExecutionStatus = ExecutionStatus.RUNNING
    metrics: RunMetrics | None = None
    result_timestamp: datetime | None = None
    results: tuple[TestResultSummary, ...] = ()
    failure_reason: str | None = None


def _attach(
    results: tuple[TestResultSummary, ...],
    summary: TestResultSummary,
) -> tuple[TestResultSummary, ...]:
    kept = tuple(r for r in results if r.test_id != summary.test_id)
    return (*kept, summary)


def _check_accepts_results(execution: Execution) -> None:
    if execution.status is ExecutionStatus.FAILED:
        msg = f"Execution {execution.execution_id} has failed and cannot accept results"
        raise ExecutionStateError(msg)


def _check_summary_owner(execution: Execution, summary: TestResultSummary) -> None:
    if summary.execution_id != execution.execution_id:
        msg = (
            f"Summary {summary.test_id} belongs to execution {summary.execution_id}, "
            f"not {execution.execution_id}"
        )
        raise ExecutionStateError(msg)


def apply(
    execution: Execution,
    summary: TestResultSummary,
    *,
    at: datetime | None = None,
) -> Execution:
    """Fold a single summary onto the execution (last write wins).

    The execution's metrics become exactly ``summary.metrics``; previously
    applied summaries stay attached but no longer contribute. A summary
    with an already-attached ``test_id`` replaces the earlier one.

    Args:
        execution: Execution to update.
        summary: Summary to apply.
        at: Result timestamp. Defaults to the current UTC time.

    Returns:
        The completed execution.

    Raises:
        ExecutionStateError: If the execution has failed or the summary
            belongs to another execution.
    """
    _check_accepts_results(execution)
    _check_summary_owner(execution, summary)

    updated = replace(
        execution,
        status=ExecutionStatus.COMPLETED,
        metrics=summary.metrics,
        result_timestamp=at or datetime.now(UTC),
        results=_attach(execution.results, summary),
    )
    logger.info(
        "Applied result %s (%d requests)",
        summary.test_id,
        summary.metrics.total_requests,
        extra={"execution_id": execution.execution_id, "test_id": summary.test_id},
    )
    return updated


def merge(
    execution: Execution,
    summaries: Sequence[TestResultSummary],
    *,
    at: datetime | None = None,
    max_errors: int = DEFAULT_MAX_ERRORS,
) -> Execution:
    """Attach summaries and roll every attached summary up into the execution.

    Unlike :func:`apply`, the execution metrics combine all attached
    summaries: counts, bytes and histograms add up, min/max are exact,
    ``avg`` is weighted by request count and percentiles are the maximum
    over the summaries.

    Args:
        execution: Execution to update.
        summaries: Summaries to attach before rolling up.
        at: Result timestamp. Defaults to the current UTC time.
        max_errors: Distinct error strings kept.

    Returns:
        The completed execution.

    Raises:
        ExecutionStateError: If the execution has failed or a summary
            belongs to another execution.
    """
    _check_accepts_results(execution)
    results = execution.results
    for summary in summaries:
        _check_summary_owner(execution, summary)
        results = _attach(results, summary)

    metrics = combine_run_metrics([r.metrics for r in results], max_errors=max_errors)
    updated = replace(
        execution,
        status=ExecutionStatus.COMPLETED,
        metrics=metrics,
        result_timestamp=at or datetime.now(UTC),
        results=results,
    )
    logger.info(
        "Rolled up %d results (%d requests)",
        len(results),
        metrics.total_requests,
        extra={"execution_id": execution.execution_id},
    )
    return updated


def fail(
    execution: Execution,
    reason: str,
    *,
    at: datetime | None = None,
) -> Execution:
    """Mark a running execution as failed.

    Failing an already-failed execution keeps the first reason.

    Args:
        execution: Execution to update.
        reason: Failure description.
        at: Failure timestamp. Defaults to the current UTC time.

    Returns:
        The failed execution.

    Raises:
        ExecutionStateError: If the execution already completed.
    """
    if execution.status is ExecutionStatus.FAILED:
        return execution
    if execution.status is ExecutionStatus.COMPLETED:
        msg = f"Execution {execution.execution_id} already completed"
        raise ExecutionStateError(msg)

    logger.info("Execution failed: %s", reason, extra={"execution_id": execution.execution_id})
    return replace(
        execution,
        status=ExecutionStatus.FAILED,
        result_timestamp=at or datetime.now(UTC),
        failure_reason=reason,
    )
