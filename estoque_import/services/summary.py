from __future__ import annotations

from ..models.commit_result import BatchStatsAccumulator, CommitResult
from ..models.reconciliation import ReconciliationResult

"""SUMMARY line rendering.

Two lines are printed by the CLI, one after processing and one after a commit.

    SUMMARY rows=3 skipped=1 warnings=0 updates=1 new=2 failed_lookups=0
    SUMMARY updated=1 failed=0 inserted=2 skipped_existing=0 skipped_duplicates=0 rejected=0 avg_batch_sec=0.01 p95_batch_sec=0.01
"""

__all__ = [
    "format_seconds",
    "render_process_summary",
    "render_commit_summary",
]


def format_seconds(value: float) -> str:
    """Compact seconds: integers without decimals, no scientific notation."""
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.2f}"


def render_process_summary(
    rows: int, skipped: int, warnings: int, result: ReconciliationResult
) -> str:
    return (
        f"SUMMARY rows={rows} "
        f"skipped={skipped} "
        f"warnings={warnings} "
        f"updates={len(result.prepared_updates)} "
        f"new={len(result.new_items)} "
        f"failed_lookups={result.failed_lookups}"
    )


def render_commit_summary(result: CommitResult) -> str:
    stats = BatchStatsAccumulator()
    for elapsed in result.updates.batch_times:
        stats.add_batch_time(elapsed)
    _, avg, p95 = stats.get_stats()
    inserts = result.inserts
    return (
        f"SUMMARY updated={result.updated} "
        f"failed={len(result.failed_updates)} "
        f"inserted={inserts.inserted} "
        f"skipped_existing={len(inserts.skipped_existing)} "
        f"skipped_duplicates={len(inserts.skipped_duplicates)} "
        f"rejected={len(inserts.rejected)} "
        f"avg_batch_sec={format_seconds(avg)} "
        f"p95_batch_sec={format_seconds(p95)}"
    )
