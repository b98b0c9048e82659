"""Spreadsheet row parsing: header normalization, numeric parsing and inference."""

from .groups import GroupCodeMap, GroupMapError
from .headers import NormalizedRow, cell_text, normalize_header
from .numbers import parse_number
from .pipeline import ParseOutcome, parse_row, parse_rows

__all__ = [
    "GroupCodeMap",
    "GroupMapError",
    "NormalizedRow",
    "ParseOutcome",
    "cell_text",
    "normalize_header",
    "parse_number",
    "parse_row",
    "parse_rows",
]
