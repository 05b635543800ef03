"""Configuration loading for ApiMetrics."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta

from apimetrics._internal.errors import ConfigError

DEFAULT_BUCKET_WINDOW_SECONDS = 5.0
DEFAULT_MAX_ERRORS = 100
DEFAULT_LOG_SCALE_RATIO = 10.0


@dataclass(frozen=True)
class ApiMetricsConfig:
    """Global ApiMetrics configuration.

    Attributes:
        bucket_window_seconds: Width of one live-timeline bucket in seconds.
        max_error_strings: Cap on distinct error strings kept per bucket
            or summary.
        log_scale_ratio: Charts switch to a logarithmic latency axis when
            the largest max latency exceeds this multiple of the median p50.
    """

    bucket_window_seconds: float = DEFAULT_BUCKET_WINDOW_SECONDS
    max_error_strings: int = DEFAULT_MAX_ERRORS
    log_scale_ratio: float = DEFAULT_LOG_SCALE_RATIO

    @property
    def bucket_window(self) -> timedelta:
        """Bucket width as a ``timedelta``."""
        return timedelta(seconds=self.bucket_window_seconds)


def _positive_float(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        value = float(raw)
    except ValueError:
        msg = f"{name} must be a number, got: {raw!r}"
        raise ConfigError(msg) from None
    if value <= 0:
        msg = f"{name} must be positive, got: {value}"
        raise ConfigError(msg)
    return value


def load_config() -> ApiMetricsConfig:
    """Load configuration from environment variables with defaults.

    Environment variables:
        APIMETRICS_BUCKET_WINDOW: Bucket width in seconds (default: 5.0).
        APIMETRICS_MAX_ERRORS: Distinct error strings kept (default: 100).
        APIMETRICS_LOG_SCALE_RATIO: Log-scale threshold ratio (default: 10.0).

    Returns:
        Populated ApiMetricsConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    window = _positive_float("APIMETRICS_BUCKET_WINDOW", DEFAULT_BUCKET_WINDOW_SECONDS)
    ratio = _positive_float("APIMETRICS_LOG_SCALE_RATIO", DEFAULT_LOG_SCALE_RATIO)

    max_errors_str = os.environ.get("APIMETRICS_MAX_ERRORS", str(DEFAULT_MAX_ERRORS))
    try:
        max_errors = int(max_errors_str)
    except ValueError:
        msg = f"APIMETRICS_MAX_ERRORS must be an integer, got: {max_errors_str!r}"
        raise ConfigError(msg) from None

    if max_errors < 1:
        msg = f"APIMETRICS_MAX_ERRORS must be >= 1, got: {max_errors}"
        raise ConfigError(msg)

    return ApiMetricsConfig(
        bucket_window_seconds=window,
        max_error_strings=max_errors,
        log_scale_ratio=ratio,
    )
