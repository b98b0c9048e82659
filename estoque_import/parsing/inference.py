from __future__ import annotations

import re
from collections.abc import Collection, Sequence

from ..models.config_models import InferenceConfig
from ..models.parsed_row import NumericCandidate
from .headers import NormalizedRow, cell_text
from .numbers import has_fraction, is_integral, parse_number

"""Numeric inference for rows missing balance and/or total value.

When a spreadsheet has no recognizable balance / value column, the numbers of
the row are classified heuristically:

- total value: a number with cents (fractional part), else the largest one;
- balance: a small non-negative integer, else the smallest remaining number.

The thresholds live in InferenceConfig and are best-effort, tuned on real
exports rather than derived from any format definition.
"""

__all__ = [
    "is_identifier_key",
    "numeric_candidates",
    "choose_value_total",
    "choose_balance",
    "infer_missing",
]

# início de palavra: "quantidade" e "unidade" contêm "id"
_IDENTIFIER = re.compile(r"\b(?:c[oó]d|grupo|id)")


def is_identifier_key(key: str) -> bool:
    return bool(_IDENTIFIER.search(key))


def numeric_candidates(
    row: NormalizedRow, codigo: str = "", exclude_keys: Collection[str] = ()
) -> list[NumericCandidate]:
    """Every field of ``row`` that parses as a number, minus identifier-like fields."""
    candidates: list[NumericCandidate] = []
    for key, value in row.items():
        if key in exclude_keys or is_identifier_key(key):
            continue
        if codigo and cell_text(value) == codigo:
            continue
        parsed = parse_number(value)
        if parsed is None:
            continue
        candidates.append(NumericCandidate(key=key, raw_value=value, parsed_value=parsed))
    return candidates


def choose_value_total(
    candidates: Sequence[NumericCandidate], epsilon: float = 1e-6
) -> float | None:
    if not candidates:
        return None
    for cand in candidates:
        if has_fraction(cand.parsed_value, epsilon):
            return cand.parsed_value
    return max(candidates, key=lambda c: abs(c.parsed_value)).parsed_value


def choose_balance(
    candidates: Sequence[NumericCandidate],
    epsilon: float = 1e-6,
    cap: float = 100_000,
    exclude_values: Collection[float] = (),
) -> float | None:
    pool = [c for c in candidates if c.parsed_value not in exclude_values]
    if not pool:
        return None
    integers = [
        c for c in pool
        if is_integral(c.parsed_value, epsilon) and abs(c.parsed_value) <= cap
    ]
    if integers:
        non_negative = [c.parsed_value for c in integers if c.parsed_value >= 0]
        if non_negative:
            return min(non_negative)
        return integers[0].parsed_value
    return min(pool, key=lambda c: abs(c.parsed_value)).parsed_value


def infer_missing(
    candidates: Sequence[NumericCandidate],
    *,
    saldo: float | None,
    valor_total: float | None,
    explicit_saldo: bool,
    saldo_key: str | None = None,
    valor_key: str | None = None,
    exclude_values: Collection[float] = (),
    config: InferenceConfig | None = None,
) -> tuple[float | None, float | None]:
    """Fill a null balance and a null/zero total value; return (saldo, valor_total).

    Total value is inferred first, from every candidate except the balance
    column; balance is then inferred without the values already chosen.
    Known non-zero values are never replaced.
    """
    cfg = config or InferenceConfig()
    eps = cfg.fraction_epsilon

    if not valor_total:
        pool = [
            c for c in candidates
            if c.key != valor_key and not (saldo is not None and c.key == saldo_key)
        ]
        chosen = choose_value_total(pool, eps)
        if chosen is not None and (valor_total is None or chosen != 0):
            valor_total = chosen

    if saldo is None and not explicit_saldo:
        taken = set(exclude_values)
        if valor_total:
            taken.add(valor_total)
        pool = [c for c in candidates if c.key != valor_key]
        saldo = choose_balance(pool, eps, cfg.integer_balance_cap, taken)

    return saldo, valor_total
