from __future__ import annotations

import csv
import io
import math
from pathlib import Path
from typing import Any

import chardet
import numpy as np
import pandas as pd

"""Stock file reader: .xlsx / .xls / .csv -> list of RawRow dicts.

Only the first sheet of a workbook is read; the first line is the header.
CSV files are read as text so that codes keep their leading zeros
("000176"); workbook cells keep their native types, with integral floats
returned as int.
"""

__all__ = [
    "SUPPORTED_SUFFIXES",
    "StockFileError",
    "detect_encoding",
    "detect_delimiter",
    "read_csv_rows",
    "read_workbook_rows",
    "read_stock_file",
]

SUPPORTED_SUFFIXES = (".xlsx", ".xls", ".csv")
_EXCEL_ENGINES = {".xlsx": "openpyxl", ".xls": "xlrd"}
_DELIMITERS = ",;\t|"


class StockFileError(Exception):
    """Raised when the stock file is missing, unsupported or unreadable."""


def detect_encoding(raw: bytes) -> str:
    """Encoding of ``raw``: BOM, then chardet, then utf-8 / latin-1."""
    if raw.startswith(b"\xef\xbb\xbf"):
        return "utf-8-sig"
    detected = (chardet.detect(raw[:65536]) or {}).get("encoding")
    for enc in (detected, "utf-8", "latin-1"):
        if not enc:
            continue
        try:
            raw.decode(enc)
        except (LookupError, UnicodeDecodeError):
            continue
        return enc
    return "latin-1"  # pragma: no cover - latin-1 decodes any byte string


def detect_delimiter(text: str) -> str:
    """Sniff the delimiter among ``, ; tab |``; the most frequent one in the header otherwise."""
    sample_lines = [line for line in text.splitlines() if line.strip()][:25]
    if not sample_lines:
        return ","
    try:
        return csv.Sniffer().sniff("\n".join(sample_lines), delimiters=_DELIMITERS).delimiter
    except csv.Error:
        header = sample_lines[0]
        return max(_DELIMITERS, key=header.count) if any(d in header for d in _DELIMITERS) else ","


def _clean_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        if math.isnan(value):
            return None
        if value.is_integer():
            return int(value)
        return value
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.isoformat()
    return value


def _frame_rows(df: pd.DataFrame) -> list[dict[str, Any]]:
    columns = [str(c) for c in df.columns]
    return [
        {col: _clean_cell(val) for col, val in zip(columns, values, strict=False)}
        for values in df.itertuples(index=False, name=None)
    ]


def read_csv_rows(path: Path) -> list[dict[str, Any]]:
    raw = path.read_bytes()
    if not raw.strip():
        return []
    text = raw.decode(detect_encoding(raw))
    df = pd.read_csv(
        io.StringIO(text),
        sep=detect_delimiter(text),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=False,
    )
    return _frame_rows(df)


def read_workbook_rows(path: Path) -> list[dict[str, Any]]:
    engine = _EXCEL_ENGINES[path.suffix.lower()]
    df = pd.read_excel(path, sheet_name=0, engine=engine, dtype=object)
    return _frame_rows(df)


def read_stock_file(path: Path) -> list[dict[str, Any]]:
    """Read the first sheet of a stock spreadsheet as RawRow dicts.

    Raises:
        StockFileError: missing file, unsupported extension or unreadable content
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise StockFileError(f"unsupported file type '{suffix or path.name}' (expected .xlsx, .xls or .csv)")
    if not path.is_file():
        raise StockFileError(f"file not found: {path}")
    try:
        if suffix == ".csv":
            return read_csv_rows(path)
        return read_workbook_rows(path)
    except Exception as e:
        raise StockFileError(f"failed reading {path.name}: {e}") from e
