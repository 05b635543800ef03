"""Logging for ApiMetrics.

Everything logs under the ``apimetrics`` namespace. Records can carry
execution context (``execution_id``, ``bucket_number``, ``test_id``),
either per call via ``extra=`` or bound once with :func:`bind`.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping, MutableMapping
from datetime import UTC, datetime
from typing import Any, TextIO

ROOT_LOGGER = "apimetrics"

CONTEXT_FIELDS = ("execution_id", "bucket_number", "test_id")


class _JsonFormatter(logging.Formatter):
    """Formats each record as one JSON object per line.

    Keys: timestamp, level, logger, message, any context fields present on
    the record, and ``exception`` when exception info is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (key, getattr(record, key))
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class _TextFormatter(logging.Formatter):
    """Human-readable formatter that appends context as ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = " ".join(
            f"{key}={getattr(record, key)}"
            for key in CONTEXT_FIELDS
            if getattr(record, key, None) is not None
        )
        return f"{line} ({context})" if context else line


class _StderrHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Writes to whatever ``sys.stderr`` is at emit time."""

    @property  # type: ignore[override]
    def stream(self) -> TextIO:
        return sys.stderr

    @stream.setter
    def stream(self, value: TextIO) -> None:
        pass


class _ContextAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Adds bound context to every record; per-call ``extra`` wins."""

    def process(
        self,
        msg: Any,
        kwargs: MutableMapping[str, Any],
    ) -> tuple[Any, MutableMapping[str, Any]]:
        bound: Mapping[str, object] = self.extra or {}
        kwargs["extra"] = {**bound, **kwargs.get("extra", {})}
        return msg, kwargs


def setup_logging(
    level: int = logging.INFO,
    *,
    json_format: bool = False,
) -> logging.Logger:
    """Configure the ``apimetrics`` logger.

    Safe to call repeatedly: the single stderr handler is reused and its
    level and format are updated.

    Args:
        level: Logging level (e.g., ``logging.DEBUG``). Defaults to INFO.
        json_format: One JSON object per line instead of plain text.

    Returns:
        The configured ``apimetrics`` logger.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)
    logger.propagate = False

    handler = next((h for h in logger.handlers if isinstance(h, _StderrHandler)), None)
    if handler is None:
        handler = _StderrHandler()
        logger.addHandler(handler)
    handler.setLevel(level)
    handler.setFormatter(_JsonFormatter() if json_format else _TextFormatter())
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return ``logging.getLogger("apimetrics.<name>")``."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")


def bind(logger: logging.Logger, **context: object) -> logging.LoggerAdapter:  # type: ignore[type-arg]
    """Return an adapter that stamps ``context`` onto every record of ``logger``.

    Example:
        ``bind(logger, execution_id="exec-1").info("done")`` produces a
        record with ``record.execution_id == "exec-1"``.
    """
    return _ContextAdapter(logger, context)
