"""Tests for the Vegeta result decoder."""

from __future__ import annotations

import io
import json
from datetime import UTC, datetime, timedelta, timezone
from typing import TYPE_CHECKING

import pytest

from apimetrics._internal.errors import IngestError
from apimetrics.ingest.vegeta import (
    decode_result,
    decode_results,
    discover_requests,
    parse_timestamp,
    read_results_file,
)
from apimetrics.metrics.models import RequestDefinition

if TYPE_CHECKING:
    from pathlib import Path

MS = 1_000_000


def _record(**overrides) -> dict:
    record = {
        "attack": "",
        "seq": 0,
        "code": 200,
        "timestamp": "2025-11-22T10:00:00.123456789Z",
        "latency": 12 * MS,
        "bytes_out": 0,
        "bytes_in": 512,
        "error": "",
        "method": "GET",
        "url": "http://localhost:8080/health",
    }
    record.update(overrides)
    return record


class TestParseTimestamp:
    def test_nanoseconds_truncated(self):
        assert parse_timestamp("2025-11-22T10:00:00.123456789Z") == datetime(
            2025, 11, 22, 10, 0, 0, 123456, tzinfo=UTC
        )

    def test_without_fraction(self):
        assert parse_timestamp("2025-11-22T10:00:00Z") == datetime(2025, 11, 22, 10, 0, 0, tzinfo=UTC)

    def test_short_fraction(self):
        assert parse_timestamp("2025-11-22T10:00:00.5Z").microsecond == 500_000

    def test_offset(self):
        parsed = parse_timestamp("2025-11-22T12:00:00.000000001+02:00")
        assert parsed.utcoffset() == timedelta(hours=2)
        assert parsed == datetime(2025, 11, 22, 10, 0, 0, tzinfo=UTC)
        assert parsed.tzinfo == timezone(timedelta(hours=2))

    @pytest.mark.parametrize("value", ["2025-11-22 10:00:00Z", "2025-11-22T10:00:00", "yesterday"])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid RFC 3339 timestamp"):
            parse_timestamp(value)


class TestDecodeResult:
    def test_fields(self):
        obs = decode_result(_record())

        assert obs.timestamp == datetime(2025, 11, 22, 10, 0, 0, 135456, tzinfo=UTC)
        assert obs.latency_ns == 12 * MS
        assert obs.status_code == 200
        assert obs.bytes_in == 512
        assert obs.bytes_out == 0
        assert obs.error is None
        assert obs.request_index == 0

    def test_transport_failure(self):
        obs = decode_result(_record(code=0, latency=0, bytes_in=0, error="dial tcp: connection refused"))
        assert obs.status_code == 0
        assert not obs.succeeded
        assert obs.error == "dial tcp: connection refused"

    def test_request_index_from_method_and_url(self):
        index = {("POST", "http://localhost:8080/orders"): 2}
        obs = decode_result(_record(method="post", url="http://localhost:8080/orders"), index)
        assert obs.request_index == 2

    def test_missing_field(self):
        record = _record()
        del record["latency"]
        with pytest.raises(KeyError):
            decode_result(record)


class TestDecodeResults:
    def test_decodes_lines_and_skips_blanks(self):
        lines = [json.dumps(_record()), "", "   ", json.dumps(_record(code=503, error="503 Service Unavailable"))]

        observations = list(decode_results(lines))

        assert [o.status_code for o in observations] == [200, 503]
        assert observations[1].error == "503 Service Unavailable"

    def test_requests_map_to_indexes(self):
        requests = [
            RequestDefinition(index=0, method="GET", target="http://localhost:8080/health"),
            RequestDefinition(index=1, method="POST", target="http://localhost:8080/orders"),
        ]
        lines = [
            json.dumps(_record(method="POST", url="http://localhost:8080/orders")),
            json.dumps(_record()),
            json.dumps(_record(url="http://localhost:8080/unknown")),
        ]

        observations = list(decode_results(lines, requests=requests))

        assert [o.request_index for o in observations] == [1, 0, 0]

    def test_invalid_json_reports_line(self):
        lines = [json.dumps(_record()), "{not json"]
        with pytest.raises(IngestError, match="Line 2: invalid Vegeta result"):
            list(decode_results(lines))

    def test_non_object_rejected(self):
        with pytest.raises(IngestError, match="Line 1"):
            list(decode_results(["[1, 2, 3]"]))

    def test_negative_latency_rejected(self):
        with pytest.raises(IngestError, match="latency must be >= 0"):
            list(decode_results([json.dumps(_record(latency=-5))]))

    def test_bad_timestamp_rejected(self):
        with pytest.raises(IngestError, match="Invalid RFC 3339 timestamp"):
            list(decode_results([json.dumps(_record(timestamp="not a time"))]))

    def test_undecodable_stream_reports_line(self):
        raw = json.dumps(_record()).encode() + b"\n" + b'{"code": "\xff\xfe"}\n'
        stream = io.TextIOWrapper(io.BytesIO(raw), encoding="utf-8")
        with pytest.raises(IngestError, match="not valid UTF-8"):
            list(decode_results(stream))


class TestDiscoverRequests:
    def test_distinct_pairs_in_first_seen_order(self):
        lines = [
            json.dumps(_record(method="post", url="http://localhost:8080/orders")),
            json.dumps(_record()),
            json.dumps(_record(method="POST", url="http://localhost:8080/orders")),
        ]

        requests = discover_requests(lines)

        assert requests == [
            RequestDefinition(index=0, method="POST", target="http://localhost:8080/orders"),
            RequestDefinition(index=1, method="GET", target="http://localhost:8080/health"),
        ]

    def test_skips_blank_and_unparsable_lines(self):
        lines = ["", "{not json", "[1]", json.dumps(_record())]
        assert discover_requests(lines) == [
            RequestDefinition(index=0, method="GET", target="http://localhost:8080/health"),
        ]


class TestReadResultsFile:
    def test_single_target_has_no_definitions(self, tmp_path: Path):
        path = tmp_path / "results.json"
        path.write_text(json.dumps(_record()) + "\n" + json.dumps(_record(code=503)) + "\n")

        observations, requests = read_results_file(path)

        assert [o.status_code for o in observations] == [200, 503]
        assert requests == []

    def test_multiple_targets_are_indexed(self, tmp_path: Path):
        path = tmp_path / "results.json"
        path.write_text(
            json.dumps(_record())
            + "\n"
            + json.dumps(_record(method="POST", url="http://localhost:8080/orders"))
            + "\n"
        )

        observations, requests = read_results_file(path)

        assert [r.method for r in requests] == ["GET", "POST"]
        assert [o.request_index for o in observations] == [0, 1]

    def test_invalid_utf8_raises_ingest_error(self, tmp_path: Path):
        path = tmp_path / "results.json"
        path.write_bytes(json.dumps(_record()).encode() + b"\n\xff\xfe{}\n")

        with pytest.raises(IngestError, match="Line 2: results are not valid UTF-8"):
            read_results_file(path)
