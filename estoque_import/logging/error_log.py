from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from ..db.store import StoreError
from ..models.error_record import ErrorRecord
from ..models.commit_result import CommitResult

"""Commit error log.

Failed store writes are buffered as ErrorRecords and written as JSON Lines to
``logs/errors-YYYYMMDD-HHMMSS.log`` (UTC, one file per run, created lazily).
"""

__all__ = [
    "ErrorRecord",
    "ErrorLogBuffer",
    "SCHEMA_PATH",
]

LOGS_DIR = Path("./logs")
# formato de cada linha do log
SCHEMA_PATH = Path(__file__).with_name("error_log_schema.json")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"


class ErrorLogBuffer:
    """In-memory buffer of ErrorRecords; ``flush`` appends them to the log file."""

    def __init__(self, logs_dir: Path | None = None) -> None:
        self._records: list[ErrorRecord] = []
        self._file_path: Path | None = None
        self._logs_dir = logs_dir if logs_dir is not None else LOGS_DIR

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"errors-{stamp}.log"
        return self._file_path

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def __len__(self) -> int:
        return len(self._records)

    def record_store_error(self, file: str, match_field: str, match_value, error: StoreError) -> None:
        self.append(
            ErrorRecord.create(
                file=file,
                match_field=match_field,
                match_value=match_value,
                error_type=error.kind.value,
                message=error.message,
            )
        )

    def record_commit(self, file: str, result: CommitResult, code_field: str) -> int:
        """Buffer every failure of a commit; return how many were added."""
        before = len(self._records)
        for failure in result.failed_updates:
            self.record_store_error(file, failure.match.match_field, failure.match.match_value, failure.error)
        if result.inserts.error is not None:
            self.record_store_error(file, code_field, None, result.inserts.error)
        return len(self._records) - before

    def flush(self) -> Path | None:
        """Write buffered records; None when there was nothing to write."""
        if not self._records:
            return None
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for r in self._records:
                f.write(r.to_json_line() + "\n")
        self._records.clear()
        return fp
