from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from psycopg2.extras import execute_values

"""Batched INSERT / upsert through psycopg2.extras.execute_values.

Identifiers are quoted here; the caller passes table and column names taken
from the validated configuration and the row payloads. Errors from the driver
propagate unchanged so the store can classify them with their pgcode.
"""

__all__ = [
    "quote_ident",
    "batch_insert",
]


def quote_ident(name: str) -> str:
    """Double-quote an SQL identifier; ``schema.table`` is quoted per part."""
    return ".".join('"' + part.replace('"', '""') + '"' for part in str(name).split("."))


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    on_conflict: str | None = None,
) -> list[Any]:
    """Insert ``rows`` into ``table`` and return the written rows.

    Parameters
    ----------
    cursor: psycopg2 cursor (a RealDictCursor returns dict rows from RETURNING)
    table: target table
    columns: insert columns, in the order of each row tuple
    rows: row tuples
    on_conflict: conflict column; when set, existing rows are updated with the
        incoming values (``ON CONFLICT (col) DO UPDATE SET col = EXCLUDED.col``)
    """
    rows_list = [tuple(r) for r in rows]
    if not rows_list:
        return []

    cols_sql = ",".join(quote_ident(c) for c in columns)
    sql = f"INSERT INTO {quote_ident(table)} ({cols_sql}) VALUES %s"
    if on_conflict:
        updates = [c for c in columns if c != on_conflict]
        if updates:
            set_sql = ",".join(f"{quote_ident(c)} = EXCLUDED.{quote_ident(c)}" for c in updates)
            sql += f" ON CONFLICT ({quote_ident(on_conflict)}) DO UPDATE SET {set_sql}"
        else:
            sql += f" ON CONFLICT ({quote_ident(on_conflict)}) DO NOTHING"
    sql += " RETURNING *"

    # fetch=True junta o RETURNING de todas as páginas
    return list(execute_values(cursor, sql, rows_list, fetch=True))
