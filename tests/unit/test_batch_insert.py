from __future__ import annotations

import pytest

from estoque_import.db.batch_insert import batch_insert, quote_ident


class DummyCursor:
    def __init__(self) -> None:
        self.queries: list[str] = []
        self.rows: list[list[tuple]] = []
        self.fetch_flags: list[bool] = []
        self.fetched: list[dict] = [{"id": 1}, {"id": 2}]


# execute_values substituído no módulo: a lógica é testada sem banco
@pytest.fixture(autouse=True)
def patch_execute_values(monkeypatch):
    import estoque_import.db.batch_insert as bi

    def fake_execute_values(cursor, sql, rows, page_size=100, fetch=False):
        cursor.queries.append(sql)
        cursor.rows.append(list(rows))
        cursor.fetch_flags.append(fetch)
        return cursor.fetched if fetch else None

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    return fake_execute_values


def test_batch_insert_returns_written_rows():
    cur = DummyCursor()
    returned = batch_insert(cur, table="pecas", columns=["codigo_produto", "nome"], rows=[["1", "A"], ["2", "B"]])
    assert returned == [{"id": 1}, {"id": 2}]
    assert cur.queries == ['INSERT INTO "pecas" ("codigo_produto","nome") VALUES %s RETURNING *']
    assert cur.rows == [[("1", "A"), ("2", "B")]]
    assert cur.fetch_flags == [True]


def test_batch_insert_on_conflict_updates_other_columns():
    cur = DummyCursor()
    batch_insert(cur, "pecas", ["codigo_produto", "saldo_estoque"], [["1", 3]], on_conflict="codigo_produto")
    sql = cur.queries[0]
    assert 'ON CONFLICT ("codigo_produto") DO UPDATE SET "saldo_estoque" = EXCLUDED."saldo_estoque"' in sql
    assert sql.endswith("RETURNING *")


def test_batch_insert_on_conflict_only_key_column():
    cur = DummyCursor()
    batch_insert(cur, "pecas", ["codigo_produto"], [["1"]], on_conflict="codigo_produto")
    assert cur.queries[0].endswith('ON CONFLICT ("codigo_produto") DO NOTHING RETURNING *')


def test_batch_insert_empty_rows():
    cur = DummyCursor()
    assert batch_insert(cur, table="pecas", columns=["id"], rows=[]) == []
    assert cur.queries == []


def test_driver_errors_propagate(monkeypatch):
    import estoque_import.db.batch_insert as bi

    def boom(*args, **kwargs):
        raise RuntimeError("driver failure")

    monkeypatch.setattr(bi, "execute_values", boom)
    with pytest.raises(RuntimeError, match="driver failure"):
        batch_insert(DummyCursor(), "pecas", ["nome"], [["A"]])


def test_quote_ident():
    assert quote_ident("pecas") == '"pecas"'
    assert quote_ident("public.pecas") == '"public"."pecas"'
    assert quote_ident('we"ird') == '"we""ird"'
