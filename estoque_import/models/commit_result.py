from __future__ import annotations

import statistics
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .parsed_row import ParsedRow
from .reconciliation import ReconciliationMatch

if TYPE_CHECKING:
    from ..db.store import StoreError

"""Commit result models for the stock import.

Commits are partial-failure tolerant: every failed update is kept together
with the match that produced it so the user can retry exactly those items.
"""

__all__ = [
    "UpdateFailure",
    "UpdateOutcome",
    "InsertOutcome",
    "CommitResult",
    "BatchStatsAccumulator",
]


@dataclass(frozen=True)
class UpdateFailure:
    match: ReconciliationMatch
    error: StoreError


@dataclass(frozen=True)
class UpdateOutcome:
    """Result of applying a list of prepared updates."""
    updated: int
    failures: list[UpdateFailure] = field(default_factory=list)
    batch_times: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class InsertOutcome:
    """Result of inserting the new items."""
    inserted: int = 0
    skipped_existing: list[str] = field(default_factory=list)  # códigos já cadastrados
    skipped_duplicates: list[str] = field(default_factory=list)  # removidos por duplicate key
    rejected: list[ParsedRow] = field(default_factory=list)  # sem código ou descrição
    dropped_columns: list[str] = field(default_factory=list)
    error: StoreError | None = None


@dataclass(frozen=True)
class CommitResult:
    """Aggregated outcome of one "save to system" action."""
    updates: UpdateOutcome
    inserts: InsertOutcome

    @property
    def updated(self) -> int:
        return self.updates.updated

    @property
    def failed_updates(self) -> list[UpdateFailure]:
        return self.updates.failures

    @property
    def inserted(self) -> int:
        return self.inserts.inserted


class BatchStatsAccumulator:
    """Accumulates update batch timings for the commit summary."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Return (total_batches, avg_batch_seconds, p95_batch_seconds)."""
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)
        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            # 19º de 20 quantis = p95
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method="inclusive"
            )[18]
        return (total_batches, avg_batch_seconds, p95_batch_seconds)
