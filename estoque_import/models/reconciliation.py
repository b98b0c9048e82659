from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .parsed_row import ParsedRow

"""Reconciliation result models.

Nothing in here has been written to the inventory store yet: a
ReconciliationResult is the dry-run diff the user reviews before saving.
"""

__all__ = [
    "ReconciliationMatch",
    "ReconciliationResult",
]


@dataclass(frozen=True)
class ReconciliationMatch:
    """Prepared update for one existing inventory record.

    Only produced when the payload holds at least one changed field.
    """
    match_field: str  # campo usado no UPDATE ... WHERE (código, nome ou id)
    match_value: Any
    payload: dict[str, Any]
    existing_snapshot: dict[str, Any]  # valores anteriores (auditoria)
    row: ParsedRow | None = None


@dataclass(frozen=True)
class ReconciliationResult:
    prepared_updates: list[ReconciliationMatch] = field(default_factory=list)
    new_items: list[ParsedRow] = field(default_factory=list)
    failed_lookups: int = 0  # chunks de consulta que falharam
