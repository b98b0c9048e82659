from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from ..models.config_models import DatabaseConfig
from .batch_insert import batch_insert, quote_ident
from .store import Record, StoreError, StoreErrorKind, classify_store_error

logger = logging.getLogger(__name__)

"""PostgreSQL implementation of the inventory store.

psycopg2 is blocking, so every call runs in a worker thread
(``asyncio.to_thread``) with a connection borrowed from a
ThreadedConnectionPool. Each call is its own short transaction: commit on
success, rollback on error.
"""

__all__ = [
    "resolve_dsn",
    "to_store_error",
    "PostgresInventoryStore",
]


def resolve_dsn(db_cfg: DatabaseConfig | None = None) -> str:
    """Build the connection string.

    Precedence (the CLI loads ``.env`` with override first):
        1. DATABASE_URL / PGDSN, then the ``dsn`` of the config file
        2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
        3. the ``database`` section of the config file for anything missing
    """
    db_cfg = db_cfg or DatabaseConfig()
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def to_store_error(exc: psycopg2.Error) -> StoreError:
    """Translate a driver error using its pgcode and diagnostic detail."""
    diag = getattr(exc, "diag", None)
    message = getattr(diag, "message_primary", None) or str(exc).strip()
    detail = getattr(diag, "message_detail", None)
    column = getattr(diag, "column_name", None)
    error = classify_store_error(message, code=getattr(exc, "pgcode", None), detail=detail)
    if error.kind is StoreErrorKind.UNKNOWN_COLUMN and error.column is None and column:
        error.column = column
    return error


class PostgresInventoryStore:
    """InventoryStore backed by psycopg2."""

    def __init__(self, dsn: str, minconn: int = 1, maxconn: int = 20, pool: Any = None) -> None:
        # maxconn >= update_batch_size: um lote de updates ocupa uma conexão por item
        self._pool = pool if pool is not None else ThreadedConnectionPool(minconn, maxconn, dsn)

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def _cursor(self):
        conn = self._pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                yield cur
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    async def _run(self, fn: Callable[[Any], Any]) -> Any:
        def call() -> Any:
            try:
                with self._cursor() as cur:
                    return fn(cur)
            except psycopg2.Error as e:
                raise to_store_error(e) from e

        return await asyncio.to_thread(call)

    async def query_by_field_in(
        self, table: str, field: str, values: Sequence[Any], range_limit: int
    ) -> list[Record]:
        if not values:
            return []
        sql = f"SELECT * FROM {quote_ident(table)} WHERE {quote_ident(field)} = ANY(%s) LIMIT %s"

        def fn(cur: Any) -> list[Record]:
            cur.execute(sql, (list(values), range_limit))
            return [dict(r) for r in cur.fetchall()]

        return await self._run(fn)

    async def update_by_field_eq(
        self, table: str, field: str, value: Any, payload: Mapping[str, Any]
    ) -> None:
        if not payload:
            return
        set_sql = ", ".join(f"{quote_ident(col)} = %s" for col in payload)
        sql = f"UPDATE {quote_ident(table)} SET {set_sql} WHERE {quote_ident(field)} = %s"
        params = [*payload.values(), value]

        def fn(cur: Any) -> None:
            cur.execute(sql, params)
            logger.debug("update table=%s %s=%r rowcount=%s", table, field, value, cur.rowcount)

        await self._run(fn)

    async def upsert(
        self, table: str, rows: Sequence[Mapping[str, Any]], on_conflict: str
    ) -> list[Record]:
        return await self._write(table, rows, on_conflict)

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> list[Record]:
        return await self._write(table, rows, None)

    async def _write(
        self, table: str, rows: Sequence[Mapping[str, Any]], on_conflict: str | None
    ) -> list[Record]:
        if not rows:
            return []
        # união das chaves, na ordem em que aparecem
        columns: list[str] = []
        for row in rows:
            for key in row:
                if key not in columns:
                    columns.append(key)
        values = [tuple(row.get(c) for c in columns) for row in rows]

        def fn(cur: Any) -> list[Record]:
            returned = batch_insert(cur, table, columns, values, on_conflict=on_conflict)
            return [dict(r) for r in returned]

        return await self._run(fn)
