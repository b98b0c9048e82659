from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from typing import Any

from .headers import cell_text

"""Group code resolution.

ERP exports usually carry a numeric group code ("0623005") where the inventory
shows a group name ("PARAFUSOS"). The user pastes a JSON array
``[{"codigo": "0623005", "grupo": "PARAFUSOS"}, ...]`` for the duration of an
import session; ``GroupCodeMap.resolve`` turns raw tokens into display names.
"""

__all__ = [
    "GroupMapError",
    "GroupCodeMap",
]

_DIGITS = re.compile(r"\d+")


class GroupMapError(Exception):
    """Raised when a pasted group mapping cannot be parsed."""


def _strip_zeros(code: str) -> str:
    return code.lstrip("0") or "0"


class GroupCodeMap:
    """Code -> group name table owned by one import session."""

    def __init__(self, entries: Mapping[str, str] | None = None) -> None:
        self._by_code: dict[str, str] = {}
        self._by_stripped: dict[str, str] = {}
        self._names: set[str] = set()
        if entries:
            self._replace(entries.items())

    def __len__(self) -> int:
        return len(self._by_code)

    def __bool__(self) -> bool:
        return bool(self._by_code)

    def _replace(self, pairs: Iterable[tuple[str, str]]) -> None:
        by_code: dict[str, str] = {}
        by_stripped: dict[str, str] = {}
        for code, name in pairs:
            code = cell_text(code)
            name = cell_text(name)
            if not code or not name:
                continue
            by_code[code] = name
            by_stripped.setdefault(_strip_zeros(code), name)
        self._by_code = by_code
        self._by_stripped = by_stripped
        self._names = set(by_code.values())

    def load_json(self, text: str) -> int:
        """Replace the table with a pasted JSON array; return the entry count.

        On any parse or shape error the current table is left untouched.
        """
        try:
            data = json.loads(text)
        except (TypeError, json.JSONDecodeError) as e:
            raise GroupMapError(f"invalid group mapping JSON: {e}") from e
        if not isinstance(data, list):
            raise GroupMapError("group mapping must be a JSON array of {codigo, grupo} objects")
        pairs: list[tuple[str, str]] = []
        for idx, item in enumerate(data):
            if not isinstance(item, dict) or "codigo" not in item or "grupo" not in item:
                raise GroupMapError(f"group mapping entry {idx} must have 'codigo' and 'grupo'")
            pairs.append((item["codigo"], item["grupo"]))
        self._replace(pairs)
        return len(self._by_code)

    def clear(self) -> None:
        self._replace(())

    def resolve(self, raw: Any) -> str | None:
        """Resolve a raw group token to its canonical name.

        Already-resolved names come back unchanged; unknown tokens come back
        trimmed, as they are taken to be display names already.
        """
        token = cell_text(raw)
        if not token:
            return None
        if token in self._names:
            return token
        if token in self._by_code:
            return self._by_code[token]
        match = _DIGITS.search(token)
        if match:
            digits = match.group(0)
            if digits in self._by_code:
                return self._by_code[digits]
            stripped = _strip_zeros(digits)
            if stripped in self._by_stripped:
                return self._by_stripped[stripped]
        return token
