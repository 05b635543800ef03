"""Shared test fixtures for the ApiMetrics test suite."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


# =============================================================================
# Pytest configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-apply markers based on test directory structure."""
    for item in items:
        test_path = str(item.fspath)
        if "/unit/" in test_path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in test_path:
            item.add_marker(pytest.mark.integration)
        elif "/e2e/" in test_path:
            item.add_marker(pytest.mark.e2e)


# =============================================================================
# Vegeta result files
# =============================================================================

RUN_START = datetime(2025, 11, 22, 10, 0, 0, tzinfo=UTC)


def _vegeta_line(
    offset: timedelta,
    latency_ns: int,
    code: int = 200,
    *,
    error: str = "",
    bytes_in: int = 512,
    bytes_out: int = 0,
    method: str = "GET",
    url: str = "http://localhost:8080/health",
) -> str:
    """Render one result in ``vegeta encode --to json`` format."""
    started = RUN_START + offset
    return json.dumps(
        {
            "attack": "",
            "seq": 0,
            "code": code,
            "timestamp": started.strftime("%Y-%m-%dT%H:%M:%S.%f") + "000Z",
            "latency": latency_ns,
            "bytes_out": bytes_out,
            "bytes_in": bytes_in,
            "error": error,
            "body": None,
            "method": method,
            "url": url,
            "headers": {},
        }
    )


@pytest.fixture
def vegeta_results_file(tmp_path: Path) -> Path:
    """Twelve seconds of results: one request every 500ms, every fifth a 503."""
    lines = []
    for i in range(24):
        code = 503 if i % 5 == 4 else 200
        error = "503 Service Unavailable" if code == 503 else ""
        lines.append(
            _vegeta_line(
                timedelta(milliseconds=500 * i),
                latency_ns=(10 + i) * 1_000_000,
                code=code,
                error=error,
            )
        )
    path = tmp_path / "results.json"
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def make_vegeta_line() -> Callable[..., str]:
    """Factory rendering single Vegeta result lines relative to ``RUN_START``."""
    return _vegeta_line
