from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..models.config_models import ImportConfig, InferenceConfig
from ..models.parsed_row import DEFAULT_UNIT, ImportWarning, ParsedRow
from .extractor import detect_value, extract_fields
from .groups import GroupCodeMap
from .headers import NormalizedRow
from .inference import infer_missing, numeric_candidates
from .numbers import parse_number
from .validation import WarningCollector

logger = logging.getLogger(__name__)

"""Row pipeline: RawRow -> ParsedRow.

Each stage is a small function of its own module:

    normalize headers -> extract fields -> parse numbers
        -> auto-detect value -> infer missing -> unit value -> warnings
"""

__all__ = [
    "FIRST_DATA_ROW",
    "ParseOutcome",
    "derive_unit_value",
    "parse_row",
    "parse_rows",
]

# linha 1 da planilha é o cabeçalho
FIRST_DATA_ROW = 2


@dataclass(frozen=True)
class ParseOutcome:
    rows: list[ParsedRow] = field(default_factory=list)
    warnings: list[ImportWarning] = field(default_factory=list)
    skipped: int = 0  # linhas em branco descartadas


def derive_unit_value(
    valor_total: float | None, saldo: float | None, explicit_unit_value: float | None
) -> float | None:
    if valor_total is not None and saldo is not None and saldo != 0:
        return valor_total / saldo
    return explicit_unit_value


def parse_row(
    raw: Mapping[str, Any],
    row_number: int = FIRST_DATA_ROW,
    group_map: GroupCodeMap | None = None,
    inference: InferenceConfig | None = None,
    collector: WarningCollector | None = None,
) -> ParsedRow | None:
    """Parse one RawRow; None when the row is blank and must be skipped.

    Args:
        raw: original header -> cell value
        row_number: spreadsheet line of this row (header is line 1)
        group_map: session group table used to resolve group codes
        inference: thresholds of the numeric inference
        collector: receives advisory warnings for the row, if given
    """
    row = NormalizedRow(raw)
    fields = extract_fields(row, group_map)
    if fields is None:
        return None

    saldo = parse_number(fields.saldo_raw)
    valor_total = parse_number(fields.valor_raw)
    valor_unitario = parse_number(fields.valor_unitario_raw)
    estoque_minimo = parse_number(fields.estoque_minimo_raw)

    candidates = numeric_candidates(row, fields.codigo, fields.bound_keys)
    # o saldo conhecido nunca é candidato a valor
    value_pool = [
        c for c in candidates
        if not (saldo is not None and c.key == fields.saldo_key)
    ]

    if not valor_total and not fields.explicit_valor:
        detected = detect_value([c for c in value_pool if c.key != fields.valor_key])
        if detected is not None:
            valor_total = detected

    exclude = [valor_unitario] if valor_unitario is not None else []
    saldo, valor_total = infer_missing(
        candidates,
        saldo=saldo,
        valor_total=valor_total,
        explicit_saldo=fields.explicit_saldo,
        saldo_key=fields.saldo_key,
        valor_key=fields.valor_key,
        exclude_values=exclude,
        config=inference,
    )

    parsed = ParsedRow(
        codigo=fields.codigo,
        descricao=fields.descricao,
        unidade=fields.unidade or DEFAULT_UNIT,
        saldo=saldo,
        valor_total=valor_total,
        valor_unitario=derive_unit_value(valor_total, saldo, valor_unitario),
        estoque_minimo=estoque_minimo,
        grupo=fields.grupo,
        raw=dict(raw),
        row_number=row_number,
        explicit_saldo=fields.explicit_saldo,
        explicit_valor=fields.explicit_valor,
    )
    if collector is not None:
        collector.check(parsed, candidates, fields.valor_key)
    return parsed


def parse_rows(
    raw_rows: Iterable[Mapping[str, Any]],
    group_map: GroupCodeMap | None = None,
    config: ImportConfig | None = None,
) -> ParseOutcome:
    """Run the row pipeline over a whole sheet."""
    cfg = config or ImportConfig()
    collector = WarningCollector(cfg.warning_limit)
    rows: list[ParsedRow] = []
    skipped = 0
    for offset, raw in enumerate(raw_rows):
        parsed = parse_row(raw, FIRST_DATA_ROW + offset, group_map, cfg.inference, collector)
        if parsed is None:
            skipped += 1
            continue
        rows.append(parsed)

    if collector.dropped:
        logger.debug("warnings over limit dropped=%d limit=%d", collector.dropped, collector.limit)
    logger.debug("parsed rows=%d skipped=%d warnings=%d", len(rows), skipped, len(collector))
    return ParseOutcome(rows=rows, warnings=list(collector.warnings), skipped=skipped)
