"""Typer application behind the ``apimetrics`` command."""

from __future__ import annotations

import logging

import typer

from apimetrics import __version__
from apimetrics._internal.logging import setup_logging
from apimetrics.cli.summarize import summarize_cmd

app = typer.Typer(
    name="apimetrics",
    help="Aggregate load-test results into latency summaries and time buckets.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command(
    "summarize",
    help="Summarize a Vegeta results file into a run summary and bucket timeline.",
)(summarize_cmd)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"apimetrics {__version__}")
        raise typer.Exit


@app.callback()
def main(
    ctx: typer.Context,
    log_json: bool = typer.Option(
        False,
        "--log-json",
        help="Write log records to stderr as JSON lines.",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_print_version,
        is_eager=True,
    ),
) -> None:
    """Latency and throughput aggregation for load-test results."""
    setup_logging(logging.WARNING, json_format=log_json)
    ctx.obj = {"log_json": log_json}
