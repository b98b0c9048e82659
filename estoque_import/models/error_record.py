from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

"""ErrorRecord model for the commit error log.

One record per failed store write. ``match_value`` is ``None`` for failures
that concern the whole insert batch rather than one item.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: spreadsheet being imported
        match_field: inventory field used to address the record (codigo_produto, nome, id)
        match_value: value of ``match_field``; None for batch-level errors
        error_type: UPPER_SNAKE_CASE classification (from StoreErrorKind)
        message: store error message
    """
    timestamp: str
    file: str
    match_field: str
    match_value: Any
    error_type: str
    message: str

    @staticmethod
    def create(
        file: str, match_field: str, match_value: Any, error_type: str, message: str
    ) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            match_field=match_field,
            match_value=match_value,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, default=str)
