"""``apimetrics summarize`` — aggregate a Vegeta results file."""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.table import Table

from apimetrics._internal.config import load_config
from apimetrics._internal.errors import ApiMetricsError
from apimetrics._internal.logging import setup_logging
from apimetrics.ingest.vegeta import read_results_file
from apimetrics.metrics.buckets import BucketAggregator
from apimetrics.metrics.presentation import (
    bucket_row,
    format_latency,
    format_percentage,
    parse_duration,
    should_use_log_scale,
    summary_row,
)
from apimetrics.metrics.records import bucket_to_record, summary_to_record
from apimetrics.metrics.rollup import Execution, apply
from apimetrics.metrics.summarizer import check_consistency, summarize

if TYPE_CHECKING:
    from apimetrics._internal.config import ApiMetricsConfig
    from apimetrics.metrics.models import MetricsBucket, RawObservation, TestResultSummary

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def _bucketize(
    execution_id: str,
    observations: list[RawObservation],
    window: timedelta,
    max_errors: int,
) -> list[MetricsBucket]:
    """Replay observations through a BucketAggregator started at the first request."""
    if not observations:
        return []
    first_start = min(
        obs.timestamp - timedelta(microseconds=obs.latency_ns // 1_000) for obs in observations
    )
    aggregator = BucketAggregator(
        execution_id,
        first_start,
        window=window,
        max_errors=max_errors,
    )
    for obs in observations:
        aggregator.add_observation(obs)
    aggregator.finish()
    return aggregator.emitted


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _print_summary(execution: Execution, summary: TestResultSummary) -> None:
    """Print the run summary and per-request breakdown."""
    row = summary_row(summary.metrics)
    table = Table(title="Summary", show_header=True, header_style="bold green", expand=True)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Execution", execution.execution_id)
    table.add_row("Status", execution.status.value)
    table.add_row("Test", summary.test_id)
    table.add_row("Total Requests", str(row.total_requests))
    table.add_row("Success", str(row.success_count))
    table.add_row("Errors", str(row.failure_count))
    table.add_row("Success Rate", format_percentage(row.success_percent, as_decimal=False))
    table.add_row("Duration", row.duration)
    table.add_row("Actual Rate", f"{row.actual_rate:.2f} req/s")
    table.add_row("Throughput", f"{row.throughput:.2f} req/s")
    table.add_row("Avg Latency", f"{row.avg_ms:.2f}ms")
    table.add_row("Min Latency", f"{row.min_ms:.2f}ms")
    table.add_row("Max Latency", f"{row.max_ms:.2f}ms")
    table.add_row("p50 Latency", f"{row.p50_ms:.2f}ms")
    table.add_row("p95 Latency", f"{row.p95_ms:.2f}ms")
    table.add_row("p99 Latency", f"{row.p99_ms:.2f}ms")
    table.add_row("Bytes In", row.bytes_in)
    table.add_row("Bytes Out", row.bytes_out)

    status_codes = ", ".join(f"{code}: {count}" for code, count in summary.metrics.status_codes.items())
    table.add_row("Status Codes", status_codes or "-")
    console.print(table)

    if summary.requests:
        req_table = Table(
            title="Per-Request Breakdown",
            show_header=True,
            header_style="bold cyan",
            expand=True,
        )
        req_table.add_column("#", justify="right")
        req_table.add_column("Method")
        req_table.add_column("Target")
        req_table.add_column("Requests", justify="right")
        req_table.add_column("Avg", justify="right")
        req_table.add_column("p95", justify="right")
        req_table.add_column("p99", justify="right")
        req_table.add_column("Success %", justify="right")

        for request in summary.requests:
            m = request.metrics
            req_table.add_row(
                str(request.request_index + 1),
                request.method or "-",
                request.target or "-",
                str(m.total_requests),
                format_latency(m.latency.avg),
                format_latency(m.latency.p95),
                format_latency(m.latency.p99),
                format_percentage(m.success_rate, decimals=1),
            )
        console.print(req_table)

    for error in summary.metrics.errors:
        console.print(f"[red]error:[/red] {error}")
    if summary.metrics.dropped_errors:
        console.print(f"[yellow]{summary.metrics.dropped_errors} further error occurrences not shown[/yellow]")


def _print_buckets(buckets: list[MetricsBucket], config: ApiMetricsConfig) -> None:
    """Print the bucket timeline."""
    table = Table(title="Buckets", show_header=True, header_style="bold cyan", expand=True)
    table.add_column("Bucket", justify="right")
    table.add_column("Start")
    table.add_column("Requests", justify="right")
    table.add_column("OK", justify="right")
    table.add_column("KO", justify="right")
    table.add_column("Success %", justify="right")
    table.add_column("Avg", justify="right")
    table.add_column("p50", justify="right")
    table.add_column("p95", justify="right")
    table.add_column("p99", justify="right")
    table.add_column("Bytes In", justify="right")

    for bucket in buckets:
        row = bucket_row(bucket)
        table.add_row(
            str(row.bucket_number),
            row.start_time,
            str(row.total_requests),
            str(row.success_count),
            str(row.failure_count),
            f"{row.success_percent:.1f}%",
            f"{row.avg_ms:.2f}",
            f"{row.p50_ms:.2f}",
            f"{row.p95_ms:.2f}",
            f"{row.p99_ms:.2f}",
            row.bytes_in,
        )
    console.print(table)

    if should_use_log_scale(buckets, config.log_scale_ratio):
        console.print(
            f"[yellow]Max latency exceeds {config.log_scale_ratio:g}x the median p50; "
            "use a logarithmic latency scale.[/yellow]"
        )


def _print_json(summary: TestResultSummary, buckets: list[MetricsBucket]) -> None:
    """Print the storage records as JSON on stdout."""
    payload = {
        "summary": summary_to_record(summary),
        "buckets": [bucket_to_record(b) for b in buckets],
    }
    typer.echo(json.dumps(payload, indent=2))


# ---------------------------------------------------------------------------
# Command
# ---------------------------------------------------------------------------


def summarize_cmd(
    ctx: typer.Context,
    results_file: Path = typer.Argument(
        ...,
        help="Vegeta results encoded as JSON lines (vegeta encode --to json).",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    window: str | None = typer.Option(
        None,
        "--window",
        "-w",
        help="Bucket width, e.g. 5s or 1m (default: APIMETRICS_BUCKET_WINDOW).",
    ),
    execution_id: str = typer.Option(
        "local",
        "--execution-id",
        "-e",
        help="Execution identifier stamped on buckets and the summary.",
    ),
    test_id: str | None = typer.Option(
        None,
        "--test-id",
        "-t",
        help="Test identifier (default: results file name).",
    ),
    max_errors: int | None = typer.Option(
        None,
        "--max-errors",
        help="Distinct error strings kept per aggregate.",
        min=1,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print storage records as JSON instead of tables.",
    ),
    no_buckets: bool = typer.Option(
        False,
        "--no-buckets",
        help="Skip the bucket timeline.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose (DEBUG) logging.",
    ),
) -> None:
    """Aggregate a Vegeta results file into a summary and bucket timeline."""
    log_json = bool(ctx.obj and ctx.obj.get("log_json"))
    setup_logging(logging.DEBUG if verbose else logging.WARNING, json_format=log_json)

    try:
        config = load_config()
    except ApiMetricsError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    try:
        bucket_window = parse_duration(window) if window else config.bucket_window
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--window") from exc

    error_cap = max_errors or config.max_error_strings
    test_name = test_id or results_file.stem

    try:
        observations, requests = read_results_file(results_file)
        buckets = _bucketize(execution_id, observations, bucket_window, error_cap)
        summary = summarize(
            execution_id,
            test_name,
            observations,
            requests=requests,
            max_errors=error_cap,
        )
        execution = apply(Execution(execution_id=execution_id), summary)
    except ApiMetricsError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    for problem in check_consistency(summary, buckets):
        console.print(f"[yellow]warning:[/yellow] {problem}")

    if json_output:
        _print_json(summary, [] if no_buckets else buckets)
        return

    _print_summary(execution, summary)
    if buckets and not no_buckets:
        _print_buckets(buckets, config)
