from __future__ import annotations

import enum
import re
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

"""Inventory store contract and store error adapter.

The reconciliation and commit services only talk to an ``InventoryStore``.
Backend error messages are interpreted in exactly one place,
``classify_store_error``, which turns them into a typed StoreError the commit
repair loop can act on.
"""

__all__ = [
    "Record",
    "InventoryStore",
    "StoreErrorKind",
    "StoreError",
    "classify_store_error",
]

Record = dict[str, Any]


class InventoryStore(Protocol):
    async def query_by_field_in(
        self, table: str, field: str, values: Sequence[Any], range_limit: int
    ) -> list[Record]:
        """Records whose ``field`` is one of ``values`` (at most ``range_limit``)."""
        ...

    async def update_by_field_eq(
        self, table: str, field: str, value: Any, payload: Mapping[str, Any]
    ) -> None:
        ...

    async def upsert(
        self, table: str, rows: Sequence[Mapping[str, Any]], on_conflict: str
    ) -> list[Record]:
        ...

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Record]:
        ...


class StoreErrorKind(enum.Enum):
    UNKNOWN_COLUMN = "UNKNOWN_COLUMN"
    DUPLICATE_KEY = "DUPLICATE_KEY"
    UPSERT_UNSUPPORTED = "UPSERT_UNSUPPORTED"
    OTHER = "OTHER"


class StoreError(Exception):
    """A failed store call, classified.

    Attributes:
        kind: StoreErrorKind
        column: offending column for UNKNOWN_COLUMN
        conflict_field / conflict_value: parsed ``Key (field)=(value)`` for DUPLICATE_KEY
    """

    def __init__(
        self,
        message: str,
        kind: StoreErrorKind = StoreErrorKind.OTHER,
        column: str | None = None,
        conflict_field: str | None = None,
        conflict_value: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.column = column
        self.conflict_field = conflict_field
        self.conflict_value = conflict_value
        self.code = code

    def __repr__(self) -> str:
        return f"StoreError(kind={self.kind.value}, message={self.message!r})"


# PostgREST: "Could not find the 'foo' column of 'pecas' in the schema cache"
_POSTGREST_COLUMN = re.compile(r"could not find the '([^']+)' column", re.IGNORECASE)
# Postgres: 'column "foo" of relation "pecas" does not exist'
_PG_COLUMN = re.compile(r'column "([^"]+)"(?: of relation "[^"]+")? does not exist', re.IGNORECASE)
_DUPLICATE_DETAIL = re.compile(r"Key \(([^)]+)\)=\((.*)\) already exists", re.IGNORECASE)
_DUPLICATE_MESSAGE = re.compile(r"duplicate key value", re.IGNORECASE)
_UPSERT_MESSAGE = re.compile(
    r"no unique or exclusion constraint matching the ON CONFLICT"
    r"|on conflict.*not supported|upsert.*not supported",
    re.IGNORECASE,
)

_UNKNOWN_COLUMN_CODES = {"42703", "PGRST204"}
_DUPLICATE_CODES = {"23505"}
_UPSERT_CODES = {"42P10"}


def classify_store_error(message: str, code: str | None = None, detail: str | None = None) -> StoreError:
    """Build a typed StoreError from a backend message, error code and detail.

    Codes win over message sniffing; messages are still parsed to extract the
    column name and conflicting key.
    """
    text = message or ""
    combined = f"{text}\n{detail}" if detail else text

    column_match = _POSTGREST_COLUMN.search(combined) or _PG_COLUMN.search(combined)
    duplicate_match = _DUPLICATE_DETAIL.search(combined)

    if code in _UPSERT_CODES or (code is None and _UPSERT_MESSAGE.search(combined)):
        return StoreError(text, StoreErrorKind.UPSERT_UNSUPPORTED, code=code)

    if code in _UNKNOWN_COLUMN_CODES or (code is None and column_match):
        return StoreError(
            text,
            StoreErrorKind.UNKNOWN_COLUMN,
            column=column_match.group(1) if column_match else None,
            code=code,
        )

    if code in _DUPLICATE_CODES or (code is None and (duplicate_match or _DUPLICATE_MESSAGE.search(combined))):
        field = value = None
        if duplicate_match:
            field = duplicate_match.group(1).strip()
            value = duplicate_match.group(2).strip()
        return StoreError(
            text,
            StoreErrorKind.DUPLICATE_KEY,
            conflict_field=field,
            conflict_value=value,
            code=code,
        )

    return StoreError(text, StoreErrorKind.OTHER, code=code)
