from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""Row-level models produced by the parsing pipeline.

A ParsedRow is the pipeline's output unit: one spreadsheet line reduced to the
fields the inventory table understands, with the original RawRow kept for
review and diagnostics.
"""

__all__ = [
    "DEFAULT_UNIT",
    "ParsedRow",
    "NumericCandidate",
    "ImportWarning",
]

DEFAULT_UNIT = "UN"


@dataclass(frozen=True)
class ParsedRow:
    """Normalized stock row.

    ``valor_unitario`` equals ``valor_total / saldo`` whenever both are known and
    ``saldo != 0``; otherwise it carries the explicit unit-value column, if any.
    """
    codigo: str
    descricao: str
    unidade: str = DEFAULT_UNIT
    saldo: float | None = None
    valor_total: float | None = None
    valor_unitario: float | None = None
    estoque_minimo: float | None = None
    grupo: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)
    row_number: int = 0  # linha de dados (cabeçalho = linha 1)
    explicit_saldo: bool = False  # coluna "saldo" encontrada por substring
    explicit_valor: bool = False  # coluna "valor" encontrada por substring


@dataclass(frozen=True)
class NumericCandidate:
    """A field of a row that parsed as a number and may feed inference."""
    key: str  # NormalizedHeaderKey
    raw_value: Any
    parsed_value: float


@dataclass(frozen=True)
class ImportWarning:
    """Advisory flag for a row whose values deserve manual review."""
    row_number: int
    codigo: str
    descricao: str
    reason: str
