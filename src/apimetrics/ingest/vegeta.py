"""Decoder for Vegeta's JSON result encoding.

``vegeta attack | vegeta encode --to json`` writes one JSON object per
request::

    {"attack":"","seq":0,"code":200,"timestamp":"2024-05-01T10:00:00.123456789Z",
     "latency":12000000,"bytes_out":0,"bytes_in":512,"error":"",
     "method":"GET","url":"http://localhost:8080/health"}

Vegeta timestamps mark the request start; observations are stamped with
the completion time (start + latency).
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from apimetrics._internal.errors import IngestError, InvalidObservationError
from apimetrics._internal.logging import get_logger
from apimetrics.metrics.models import RawObservation, RequestDefinition

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence
    from pathlib import Path

logger = get_logger("ingest.vegeta")

_RFC3339_RE = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(?P<frac>\d+))?(?P<tz>Z|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp with up to nanosecond precision.

    Digits beyond microseconds are truncated.

    Raises:
        ValueError: If the value is not an RFC 3339 timestamp with an offset.
    """
    match = _RFC3339_RE.match(value)
    if not match:
        msg = f"Invalid RFC 3339 timestamp: {value!r}"
        raise ValueError(msg)
    frac = (match.group("frac") or "")[:6].ljust(6, "0")
    tz = "+00:00" if match.group("tz") == "Z" else match.group("tz")
    return datetime.fromisoformat(f"{match.group('base')}.{frac}{tz}")


def _resolve_index(
    record: dict[str, Any],
    index_by_request: dict[tuple[str, str], int],
) -> int:
    method = str(record.get("method") or "").upper()
    url = str(record.get("url") or "")
    return index_by_request.get((method, url), 0)


def decode_result(
    record: dict[str, Any],
    index_by_request: dict[tuple[str, str], int] | None = None,
) -> RawObservation:
    """Convert one decoded Vegeta result object into an observation.

    Raises:
        KeyError: If a required field is missing.
        ValueError: If a field has the wrong type or format.
        InvalidObservationError: If the values are out of range.
    """
    started = parse_timestamp(record["timestamp"])
    latency_ns = int(record["latency"])
    return RawObservation(
        timestamp=started + timedelta(microseconds=latency_ns // 1_000),
        latency_ns=latency_ns,
        status_code=int(record["code"]),
        bytes_in=int(record.get("bytes_in", 0)),
        bytes_out=int(record.get("bytes_out", 0)),
        error=record.get("error") or None,
        request_index=_resolve_index(record, index_by_request or {}),
    )


def decode_results(
    lines: Iterable[str],
    *,
    requests: Sequence[RequestDefinition] | None = None,
) -> Iterator[RawObservation]:
    """Decode Vegeta JSON result lines into observations.

    Args:
        lines: Lines of ``vegeta encode --to json`` output. Blank lines are
            skipped.
        requests: Request definitions; a result whose method and URL match
            a definition is attributed to its index, otherwise to index 0.

    Yields:
        One observation per result line.

    Raises:
        IngestError: If a line is not a valid Vegeta result.
    """
    index_by_request = {(r.method.upper(), r.target): r.index for r in requests or ()}
    decoded = 0
    for line_number, line in _numbered(lines):
        text = line.strip()
        if not text:
            continue
        try:
            record = json.loads(text)
            if not isinstance(record, dict):
                msg = "expected a JSON object"
                raise TypeError(msg)
            observation = decode_result(record, index_by_request)
        except (KeyError, TypeError, ValueError, InvalidObservationError) as exc:
            msg = f"Line {line_number}: invalid Vegeta result: {exc}"
            raise IngestError(msg) from exc
        decoded += 1
        yield observation
    logger.debug("Decoded %d Vegeta results", decoded)


def _numbered(lines: Iterable[str]) -> Iterator[tuple[int, str]]:
    """Enumerate lines from 1, turning decode failures of a text stream into IngestError."""
    iterator = iter(lines)
    line_number = 0
    while True:
        try:
            line = next(iterator)
        except StopIteration:
            return
        except UnicodeDecodeError as exc:
            msg = f"Line {line_number + 1}: results are not valid UTF-8: {exc}"
            raise IngestError(msg) from exc
        line_number += 1
        yield line_number, line


def discover_requests(lines: Iterable[str]) -> list[RequestDefinition]:
    """Derive request definitions from the distinct method/URL pairs of result lines.

    Definitions are indexed in order of first appearance. Lines that do
    not parse are skipped here; :func:`decode_results` reports them.
    """
    found: dict[tuple[str, str], RequestDefinition] = {}
    for line in lines:
        text = line.strip()
        if not text:
            continue
        try:
            record = json.loads(text)
        except ValueError:
            continue
        if not isinstance(record, dict):
            continue
        key = (str(record.get("method") or "").upper(), str(record.get("url") or ""))
        if key not in found:
            found[key] = RequestDefinition(index=len(found), method=key[0], target=key[1])
    return list(found.values())


def read_results_file(path: Path) -> tuple[list[RawObservation], list[RequestDefinition]]:
    """Decode a Vegeta results file and the request definitions it covers.

    Definitions are returned only when the file hits more than one
    method/URL pair; a single-target file yields an empty list.

    Raises:
        IngestError: If the file is not UTF-8 or a line is not a valid result.
    """
    raw = path.read_bytes()
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        line_number = raw.count(b"\n", 0, exc.start) + 1
        msg = f"Line {line_number}: results are not valid UTF-8: {exc}"
        raise IngestError(msg) from exc

    lines = text.splitlines()
    requests = discover_requests(lines)
    if len(requests) < 2:
        requests = []
    observations = list(decode_results(lines, requests=requests))
    logger.debug("Read %d results for %d request definitions", len(observations), len(requests))
    return observations, requests
