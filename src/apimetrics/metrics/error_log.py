"""Bounded accumulation of error strings."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from apimetrics.metrics.models import RawObservation


class BoundedErrorSet:
    """Distinct error strings with a hard cap on how many are kept.

    Keeps the ``limit`` lexicographically smallest distinct strings with
    exact occurrence counts. Every occurrence of any other string adds to
    ``dropped``. The retained set depends only on the multiset of errors
    seen, not on arrival order.

    Attributes:
        limit: Maximum number of distinct strings retained.
        dropped: Error occurrences not represented in the retained set.
    """

    def __init__(self, limit: int) -> None:
        if limit < 1:
            msg = f"limit must be >= 1, got: {limit}"
            raise ValueError(msg)
        self.limit = limit
        self.dropped = 0
        self._counts: dict[str, int] = {}

    def add(self, error: str, count: int = 1) -> None:
        """Record ``count`` occurrences of ``error``."""
        if error in self._counts:
            self._counts[error] += count
            return
        if len(self._counts) < self.limit:
            self._counts[error] = count
            return
        largest = max(self._counts)
        if error < largest:
            self.dropped += self._counts.pop(largest)
            self._counts[error] = count
        else:
            self.dropped += count

    def add_observation(self, obs: RawObservation) -> None:
        """Record the observation's error, if it has one."""
        if obs.error:
            self.add(obs.error)

    def merge(self, errors: tuple[str, ...], dropped: int) -> None:
        """Fold in the retained errors and drop count of another accumulator.

        Only the distinct strings are known for already-aggregated values,
        so each contributes a single occurrence.
        """
        for error in errors:
            self.add(error)
        self.dropped += dropped

    @property
    def errors(self) -> tuple[str, ...]:
        """Retained distinct errors, sorted."""
        return tuple(sorted(self._counts))

    def counts(self) -> dict[str, int]:
        """Occurrence count per retained error."""
        return dict(sorted(self._counts.items()))

    def __len__(self) -> int:
        return len(self._counts)
