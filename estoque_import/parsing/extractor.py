from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from ..models.parsed_row import NumericCandidate
from .groups import GroupCodeMap
from .headers import NormalizedRow, normalize_header
from .numbers import parse_number

"""Row field extraction.

Maps one normalized spreadsheet row onto the target fields (code, description,
unit, group, balance, total value, unit value, minimum stock). Text fields are
found by ordered synonym lists; balance and total value first look for an
*explicit* column whose original header contains "saldo" / "valor".
"""

__all__ = [
    "CODE_KEYS",
    "DESCRIPTION_KEYS",
    "GROUP_KEYS",
    "UNIT_KEYS",
    "BALANCE_KEYS",
    "VALUE_KEYS",
    "UNIT_VALUE_KEYS",
    "MIN_STOCK_KEYS",
    "ExtractedFields",
    "find_explicit_column",
    "extract_fields",
    "detect_value",
]


def _keys(*names: str) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for name in names:
        seen.setdefault(normalize_header(name), None)
    return tuple(seen)


CODE_KEYS = _keys(
    "codigo produto", "cod produto", "cód. produto", "código produto", "codigo_produto",
    "codigo", "código", "cod", "cód",
)
DESCRIPTION_KEYS = _keys(
    "descricao", "descrição", "descricao produto", "descrição do produto",
    "produto", "nome", "nome peca", "item",
)
GROUP_KEYS = _keys("grupo", "grupo produto", "grupo de produto", "grupo de produtos", "grupo_produto")
UNIT_KEYS = _keys("u.m.", "um", "unidade medida", "unidade de medida", "unidade", "unid", "unid.", "und", "un")
BALANCE_KEYS = _keys(
    "saldo em estoque", "saldo", "saldo estoque", "saldo atual",
    "quantidade", "qtde atual", "qtde", "qtd", "estoque",
)
VALUE_KEYS = _keys("valor em estoque", "valor total", "valor", "custo atual", "custo total", "total")
UNIT_VALUE_KEYS = _keys(
    "valor unitario", "valor unitário", "c unitario", "c. unitário",
    "custo unitario", "custo unitário", "custo medio", "custo médio", "preco unitario",
)
MIN_STOCK_KEYS = _keys(
    "estoque minimo", "estoque mínimo", "est minimo", "saldo minimo", "saldo mínimo", "minimo", "mínimo",
)

# "valor unitário" / "custo médio" contêm "valor" mas não são valor total
_UNIT_VALUE_HINTS = ("unit", "medio", "médio")
# "saldo mínimo" é estoque mínimo, não saldo
_MIN_STOCK_HINTS = ("minimo", "mínimo")
_CODE_NAME = re.compile(r"^(?P<code>\S*\d\S*)\s+-\s+(?P<name>.+)$")
_CURRENCY_TOKEN = re.compile(r"[.,]\d{2}\b")
_DIGIT = re.compile(r"\d")


@dataclass(frozen=True)
class ExtractedFields:
    """Raw field values of one row, before numeric parsing and inference."""
    codigo: str
    descricao: str
    grupo: str | None
    unidade: str | None
    saldo_raw: Any
    valor_raw: Any
    valor_unitario_raw: Any
    estoque_minimo_raw: Any
    saldo_key: str | None  # coluna (normalizada) ligada ao saldo
    valor_key: str | None
    explicit_saldo: bool
    explicit_valor: bool
    bound_keys: frozenset[str]  # colunas já usadas por campos não inferíveis


def find_explicit_column(
    headers: Iterable[str], needle: str, exclude_hints: Sequence[str] = ()
) -> str | None:
    """First original header containing ``needle`` (case-insensitive)."""
    for header in headers:
        lowered = str(header).lower()
        if needle not in lowered:
            continue
        if any(hint in lowered for hint in exclude_hints):
            continue
        return header
    return None


def _split_code_name(descricao: str) -> tuple[str, str] | None:
    match = _CODE_NAME.match(descricao)
    if match is None:
        return None
    return match.group("code").strip(), match.group("name").strip()


def extract_fields(row: NormalizedRow, group_map: GroupCodeMap | None = None) -> ExtractedFields | None:
    """Extract the target fields of a row; None means the row is blank and skipped."""
    code_key, codigo = row.text(CODE_KEYS)
    desc_key, descricao = row.text(DESCRIPTION_KEYS)
    group_key, grupo = row.text(GROUP_KEYS)
    unit_key, unidade = row.text(UNIT_KEYS)
    unit_value_key, valor_unitario_raw = row.first(UNIT_VALUE_KEYS)
    min_key, estoque_minimo_raw = row.first(MIN_STOCK_KEYS)

    if not codigo and descricao:
        split = _split_code_name(descricao)
        if split is not None:
            codigo, descricao = split

    headers = list(row.raw.keys())
    saldo_header = find_explicit_column(headers, "saldo", _MIN_STOCK_HINTS)
    if saldo_header is not None:
        saldo_key = normalize_header(saldo_header)
        saldo_raw = row.raw.get(saldo_header)
    else:
        saldo_key, saldo_raw = row.first(BALANCE_KEYS)

    valor_header = find_explicit_column(headers, "valor", _UNIT_VALUE_HINTS)
    if valor_header is not None:
        valor_key = normalize_header(valor_header)
        valor_raw = row.raw.get(valor_header)
    else:
        valor_key, valor_raw = row.first(VALUE_KEYS)

    # linha em branco da planilha
    if not codigo and not descricao and parse_number(saldo_raw) is None and parse_number(valor_raw) is None:
        return None

    if grupo and group_map is not None:
        grupo = group_map.resolve(grupo) or ""

    bound = {code_key, desc_key, group_key, unit_key, unit_value_key, min_key}
    return ExtractedFields(
        codigo=codigo,
        descricao=descricao,
        grupo=grupo or None,
        unidade=unidade or None,
        saldo_raw=saldo_raw,
        valor_raw=valor_raw,
        valor_unitario_raw=valor_unitario_raw,
        estoque_minimo_raw=estoque_minimo_raw,
        saldo_key=saldo_key,
        valor_key=valor_key,
        explicit_saldo=saldo_header is not None,
        explicit_valor=valor_header is not None,
        bound_keys=frozenset(k for k in bound if k is not None),
    )


def _is_currency_like(value: Any) -> bool:
    if not isinstance(value, str) or not _DIGIT.search(value):
        return False
    return bool(_CURRENCY_TOKEN.search(value)) or "r$" in value.lower()


def detect_value(candidates: Sequence[NumericCandidate]) -> float | None:
    """Guess a total value from a row that has no explicit value column.

    The first currency-looking token wins ("12,00", "R$ 5"); otherwise the
    first non-zero number of the row.
    """
    for cand in candidates:
        if _is_currency_like(cand.raw_value) and cand.parsed_value != 0:
            return cand.parsed_value
    for cand in candidates:
        if cand.parsed_value != 0:
            return cand.parsed_value
    return None
