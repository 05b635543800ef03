"""Thread-safe in-memory bucket storage keyed by execution and bucket number."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from apimetrics._internal.errors import BucketConflictError
from apimetrics._internal.logging import get_logger

if TYPE_CHECKING:
    from apimetrics.metrics.models import MetricsBucket

logger = get_logger("metrics.store")


class BucketStore:
    """Stores emitted buckets, idempotent per ``(execution_id, bucket_number)``.

    Delivery of the same bucket twice is a no-op, so a transport that
    retries never creates duplicates. A ``threading.Lock`` protects
    concurrent writers.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._buckets: dict[str, dict[int, MetricsBucket]] = {}
        self._lock = threading.Lock()

    def put(self, bucket: MetricsBucket) -> bool:
        """Store a bucket.

        Args:
            bucket: The bucket to store.

        Returns:
            True if the bucket was stored, False if an identical bucket was
            already present.

        Raises:
            BucketConflictError: If a different bucket is stored under the
                same key.
        """
        with self._lock:
            per_execution = self._buckets.setdefault(bucket.execution_id, {})
            existing = per_execution.get(bucket.bucket_number)
            if existing is None:
                per_execution[bucket.bucket_number] = bucket
                return True
            if existing == bucket:
                logger.debug(
                    "Ignoring redelivery of bucket %d",
                    bucket.bucket_number,
                    extra={
                        "execution_id": bucket.execution_id,
                        "bucket_number": bucket.bucket_number,
                    },
                )
                return False
        msg = (
            f"Bucket {bucket.bucket_number} of execution {bucket.execution_id} "
            "was redelivered with different content"
        )
        raise BucketConflictError(msg)

    def get_all(self, execution_id: str) -> list[MetricsBucket]:
        """Return an execution's buckets ordered by bucket number."""
        with self._lock:
            per_execution = self._buckets.get(execution_id, {})
            return [per_execution[n] for n in sorted(per_execution)]

    def get_latest(self, execution_id: str) -> MetricsBucket | None:
        """Return the highest-numbered bucket of an execution, or None."""
        with self._lock:
            per_execution = self._buckets.get(execution_id)
            if not per_execution:
                return None
            return per_execution[max(per_execution)]

    def delete_execution(self, execution_id: str) -> int:
        """Delete every bucket of an execution.

        Returns:
            Number of buckets deleted.
        """
        with self._lock:
            removed = self._buckets.pop(execution_id, {})
        return len(removed)

    def __len__(self) -> int:
        """Return the number of stored buckets across executions."""
        with self._lock:
            return sum(len(b) for b in self._buckets.values())
