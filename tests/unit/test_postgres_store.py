from __future__ import annotations

import asyncio
from types import SimpleNamespace

import psycopg2
import pytest

from estoque_import.db.postgres import PostgresInventoryStore, resolve_dsn, to_store_error
from estoque_import.db.store import StoreError, StoreErrorKind
from estoque_import.models.config_models import DatabaseConfig


class UndefinedColumn(psycopg2.Error):
    pgcode = "42703"


class FakeCursor:
    def __init__(self, rows=None, error=None) -> None:
        self.rows = rows or []
        self.error = error
        self.executed: list[tuple[str, object]] = []
        self.rowcount = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self.executed.append((sql, params))
        if self.error is not None:
            raise self.error
        self.rowcount = len(self.rows)

    def fetchall(self):
        return self.rows


class FakeConn:
    def __init__(self, cursor: FakeCursor) -> None:
        self._cursor = cursor
        self.commits = 0
        self.rollbacks = 0

    def cursor(self, cursor_factory=None):
        return self._cursor

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1


class FakePool:
    def __init__(self, conn: FakeConn) -> None:
        self.conn = conn
        self.borrowed = 0
        self.returned = 0
        self.closed = False

    def getconn(self):
        self.borrowed += 1
        return self.conn

    def putconn(self, conn):
        self.returned += 1

    def closeall(self):
        self.closed = True


def _store(rows=None, error=None):
    cursor = FakeCursor(rows, error)
    pool = FakePool(FakeConn(cursor))
    return PostgresInventoryStore("", pool=pool), pool, cursor


@pytest.fixture()
def clean_pg_env(monkeypatch):
    for var in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


class TestResolveDsn:
    def test_defaults(self, clean_pg_env):
        assert resolve_dsn() == "host=localhost port=5432 user=postgres dbname=postgres"

    def test_config_fallback(self, clean_pg_env):
        cfg = DatabaseConfig(host="db", port=6543, user="app", password="s3", database="estoque")
        assert resolve_dsn(cfg) == "host=db port=6543 user=app dbname=estoque password=s3"

    def test_env_overrides_config(self, clean_pg_env):
        clean_pg_env.setenv("PGHOST", "envhost")
        clean_pg_env.setenv("PGDATABASE", "envdb")
        cfg = DatabaseConfig(host="db", database="estoque", user="app")
        assert resolve_dsn(cfg) == "host=envhost port=5432 user=app dbname=envdb"

    def test_full_dsn_wins(self, clean_pg_env):
        cfg = DatabaseConfig(dsn="postgresql://cfg/db", host="db")
        assert resolve_dsn(cfg) == "postgresql://cfg/db"
        clean_pg_env.setenv("DATABASE_URL", "postgresql://env/db")
        assert resolve_dsn(cfg) == "postgresql://env/db"


def test_to_store_error_uses_diag_column():
    exc = SimpleNamespace(
        pgcode="42703",
        diag=SimpleNamespace(message_primary="column does not exist", message_detail=None, column_name="estoque_minimo"),
    )
    err = to_store_error(exc)
    assert err.kind is StoreErrorKind.UNKNOWN_COLUMN
    assert err.column == "estoque_minimo"


def test_to_store_error_duplicate_detail():
    exc = SimpleNamespace(
        pgcode="23505",
        diag=SimpleNamespace(
            message_primary='duplicate key value violates unique constraint "pecas_codigo_produto_key"',
            message_detail="Key (codigo_produto)=(A1) already exists.",
            column_name=None,
        ),
    )
    err = to_store_error(exc)
    assert err.kind is StoreErrorKind.DUPLICATE_KEY
    assert (err.conflict_field, err.conflict_value) == ("codigo_produto", "A1")


def test_query_by_field_in():
    store, pool, cursor = _store(rows=[{"id": 1, "codigo_produto": "000176"}])
    records = asyncio.run(store.query_by_field_in("pecas", "codigo_produto", ["000176", "A1"], 20000))
    assert records == [{"id": 1, "codigo_produto": "000176"}]
    sql, params = cursor.executed[0]
    assert sql == 'SELECT * FROM "pecas" WHERE "codigo_produto" = ANY(%s) LIMIT %s'
    assert params == (["000176", "A1"], 20000)
    assert pool.conn.commits == 1
    assert pool.borrowed == pool.returned == 1


def test_query_without_values_skips_database():
    store, pool, _ = _store()
    assert asyncio.run(store.query_by_field_in("pecas", "nome", [], 10)) == []
    assert pool.borrowed == 0


def test_update_by_field_eq():
    store, pool, cursor = _store()
    asyncio.run(store.update_by_field_eq("pecas", "codigo_produto", "000176", {"saldo_estoque": 14.4, "valor_total": 70}))
    sql, params = cursor.executed[0]
    assert sql == 'UPDATE "pecas" SET "saldo_estoque" = %s, "valor_total" = %s WHERE "codigo_produto" = %s'
    assert params == [14.4, 70, "000176"]


def test_driver_error_becomes_store_error_and_rolls_back():
    store, pool, _ = _store(error=UndefinedColumn('column "quantidade_estoque" of relation "pecas" does not exist'))
    with pytest.raises(StoreError) as exc_info:
        asyncio.run(store.update_by_field_eq("pecas", "id", 1, {"quantidade_estoque": 3}))
    assert exc_info.value.kind is StoreErrorKind.UNKNOWN_COLUMN
    assert exc_info.value.column == "quantidade_estoque"
    assert pool.conn.rollbacks == 1
    assert pool.conn.commits == 0
    assert pool.returned == 1


def test_upsert_uses_union_of_columns(monkeypatch):
    import estoque_import.db.batch_insert as bi

    calls = []

    def fake_execute_values(cursor, sql, rows, page_size=1000, fetch=False):
        calls.append((sql, list(rows)))
        return [{"id": 7, "codigo_produto": "A1"}]

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    store, _, _ = _store()
    returned = asyncio.run(
        store.upsert("pecas", [{"codigo_produto": "A1"}, {"codigo_produto": "A2", "nome": "Polia"}], "codigo_produto")
    )
    assert returned == [{"id": 7, "codigo_produto": "A1"}]
    sql, rows = calls[0]
    assert sql.startswith('INSERT INTO "pecas" ("codigo_produto","nome") VALUES %s ON CONFLICT ("codigo_produto")')
    assert rows == [("A1", None), ("A2", "Polia")]


def test_close_closes_pool():
    store, pool, _ = _store()
    store.close()
    assert pool.closed is True
