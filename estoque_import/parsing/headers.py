from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Mapping
from typing import Any

"""Header normalization for stock spreadsheets.

Spreadsheet exports from different ERPs name the same column in many ways
("Cód. Produto", "COD_PRODUTO", "cod produto\u00a0"). Every header is reduced to a
NormalizedHeaderKey so that columns can be compared by key equality.
"""

__all__ = [
    "normalize_header",
    "cell_text",
    "NormalizedRow",
]

_NON_ALNUM = re.compile(r"[\W_]+")
_SPACES = re.compile(r"\s+")


def cell_text(value: Any) -> str:
    """Trimmed text of a cell; integral floats lose their ".0" (codes read from xlsx)."""
    if value is None:
        return ""
    if isinstance(value, float):
        if value != value:  # NaN
            return ""
        if value.is_integer():
            value = int(value)
    return str(value).strip()


def normalize_header(header: Any) -> str:
    """Return the NormalizedHeaderKey for a raw header.

    Total and idempotent: ``normalize_header(normalize_header(h)) == normalize_header(h)``.
    """
    if header is None:
        return ""
    text = str(header).replace("\u00a0", " ")
    # \t e \n separam palavras; demais controles somem
    text = "".join(ch for ch in text if ch.isspace() or unicodedata.category(ch) != "Cc")
    # lower() antes do colapso: "İ".lower() gera marca combinante
    text = text.lower()
    text = _NON_ALNUM.sub(" ", text)
    return _SPACES.sub(" ", text).strip()


class NormalizedRow:
    """Read-only view of a RawRow keyed by NormalizedHeaderKey.

    Built once per row. On key collisions the last column wins, the way a
    spreadsheet-to-dict conversion would overwrite earlier keys.
    """

    def __init__(self, raw: Mapping[str, Any]) -> None:
        self.raw = raw
        self._values: dict[str, Any] = {}
        for header, value in raw.items():
            key = normalize_header(header)
            self._values[key] = value

    def text(self, keys: Iterable[str]) -> tuple[str | None, str]:
        """Like ``first`` but returns the value as trimmed text ("" when absent)."""
        key, value = self.first(keys)
        return key, cell_text(value)

    def first(self, keys: Iterable[str]) -> tuple[str | None, Any]:
        """Probe ``keys`` in order; return the first (key, value) whose value is not None."""
        for key in keys:
            value = self._values.get(key)
            if value is not None:
                return key, value
        return None, None

    def items(self):
        return self._values.items()
