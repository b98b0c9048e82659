from __future__ import annotations

from collections.abc import Sequence

from ..models.parsed_row import ImportWarning, NumericCandidate, ParsedRow

"""Advisory warnings for rows whose inferred values need a second look.

Warnings never stop the pipeline; they are capped so that a badly mapped
spreadsheet doesn't produce thousands of identical messages.
"""

__all__ = [
    "VALUE_MISSING_REASON",
    "BALANCE_MISSING_REASON",
    "WarningCollector",
]

VALUE_MISSING_REASON = "valor_total null/0 but raw has numeric"
BALANCE_MISSING_REASON = "saldo null/invalid"


class WarningCollector:
    def __init__(self, limit: int = 40) -> None:
        self.limit = limit
        self.warnings: list[ImportWarning] = []
        self.dropped = 0  # avisos descartados após o limite

    def __len__(self) -> int:
        return len(self.warnings)

    def _add(self, row: ParsedRow, reason: str) -> None:
        if len(self.warnings) >= self.limit:
            self.dropped += 1
            return
        self.warnings.append(
            ImportWarning(
                row_number=row.row_number,
                codigo=row.codigo,
                descricao=row.descricao,
                reason=reason,
            )
        )

    def check(self, row: ParsedRow, candidates: Sequence[NumericCandidate], value_key: str | None = None) -> None:
        """Flag ``row`` using the numeric candidates it was inferred from."""
        if not row.valor_total:
            if any(c.parsed_value != 0 for c in candidates if c.key != value_key):
                self._add(row, VALUE_MISSING_REASON)
        if row.saldo is None and any(v is not None and v != "" for v in row.raw.values()):
            self._add(row, BALANCE_MISSING_REASON)
