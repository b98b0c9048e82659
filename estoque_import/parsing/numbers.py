from __future__ import annotations

import math
import numbers
import re
from typing import Any

"""Locale-tolerant numeric token parser.

Brazilian spreadsheets mix "1.234,56", "1234,56", "1234.56", "R$ 12,00" and
"-" placeholders in the same column. ``parse_number`` turns any cell into a
float or None and never raises.
"""

__all__ = [
    "parse_number",
    "is_integral",
    "has_fraction",
]

_DASH_ONLY = re.compile(r"^[-–—]+$")
_WHITESPACE = re.compile(r"\s+")
_NOT_NUMERIC = re.compile(r"[^0-9.\-]")
_FLOAT_PREFIX = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)")


def parse_number(value: Any) -> float | None:
    """Parse a spreadsheet cell into a float.

    Returns None for None, empty strings, dash-only placeholders, NaN/inf and
    anything without a leading numeric literal after cleanup.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, numbers.Real):
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError):
            return None
        return number if math.isfinite(number) else None

    text = str(value).strip()
    if not text or _DASH_ONLY.match(text):
        return None
    text = _WHITESPACE.sub("", text.replace("\u00a0", ""))
    if "," in text and "." in text:
        text = text.replace(".", "").replace(",", ".")
    elif "," in text:
        text = text.replace(",", ".")
    text = _NOT_NUMERIC.sub("", text)

    match = _FLOAT_PREFIX.match(text)
    if match is None:
        return None
    try:
        number = float(match.group(0))
    except (ValueError, OverflowError):  # pragma: no cover - regex guarantees a literal
        return None
    return number if math.isfinite(number) else None


def is_integral(number: float, epsilon: float = 1e-6) -> bool:
    return abs(math.fmod(number, 1.0)) < epsilon


def has_fraction(number: float, epsilon: float = 1e-6) -> bool:
    return abs(math.fmod(number, 1.0)) > epsilon
