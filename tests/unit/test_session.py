from __future__ import annotations

import asyncio

import pytest

from estoque_import.excel.reader import StockFileError
from estoque_import.models.config_models import ImportConfig
from estoque_import.parsing.groups import GroupMapError
from estoque_import.services.session import ImportSession, SessionError

ROWS = [
    {"codigo": "000176", "descricao": "Parafuso M6", "Saldo": "14", "Valor Total": "70,00"},
    {"codigo": "A1", "descricao": "Correia", "Saldo": "2", "Valor Total": "9,90", "Grupo": "623005"},
    {"codigo": None, "descricao": None, "Saldo": None, "Valor Total": None},
]


@pytest.fixture()
def session():
    with ImportSession() as s:
        yield s


def test_state_errors(session, fake_store):
    with pytest.raises(SessionError):
        asyncio.run(session.process(fake_store))
    session.load_rows(ROWS)
    with pytest.raises(SessionError):
        asyncio.run(session.save(fake_store))
    with pytest.raises(SessionError):
        asyncio.run(session.retry_failed(fake_store))
    with pytest.raises(SessionError):
        session.update_new_item(0, codigo="X")


def test_load_process_save(session, fake_store):
    outcome = session.load_rows(ROWS, source="estoque.csv")
    assert len(outcome.rows) == 2
    assert session.skipped == 1
    assert session.source == "estoque.csv"

    result = asyncio.run(session.process(fake_store))
    assert len(result.prepared_updates) == 1
    assert [it.codigo for it in session.new_items] == ["A1"]

    commit = asyncio.run(session.save(fake_store))
    assert commit.updated == 1
    assert commit.inserted == 1
    assert commit.failed_updates == []
    assert commit.inserts.error is None
    assert session.last_commit is commit
    assert session.new_items == []
    assert fake_store.records[0]["saldo_estoque"] == 14

    with pytest.raises(SessionError):
        asyncio.run(session.save(fake_store))


def test_failed_updates_are_retried(session, fake_store):
    fake_store.fail_updates = {"000176"}
    fake_store.fail_once = True
    session.load_rows(ROWS)
    asyncio.run(session.process(fake_store))

    commit = asyncio.run(session.save(fake_store))
    assert len(commit.failed_updates) == 1
    assert len(session.failed_updates) == 1

    outcome = asyncio.run(session.retry_failed(fake_store))
    assert outcome.updated == 1
    assert session.failed_updates == []


def test_insert_error_keeps_new_items_pending(session, fake_store):
    from estoque_import.db.store import classify_store_error

    fake_store.upsert_error = classify_store_error("permission denied for table pecas", code="42501")
    session.load_rows(ROWS)
    asyncio.run(session.process(fake_store))
    commit = asyncio.run(session.save(fake_store))
    assert commit.inserts.error is fake_store.upsert_error
    assert [it.codigo for it in session.new_items] == ["A1"]


def test_load_file_error_keeps_previous_rows(session, temp_workdir):
    session.load_rows(ROWS)
    with pytest.raises(StockFileError):
        session.load_file(temp_workdir / "missing.csv")
    with pytest.raises(StockFileError):
        session.load_file(temp_workdir / "estoque.pdf")
    assert len(session.rows) == 2


def test_load_file_csv(session, temp_workdir):
    path = temp_workdir / "data" / "estoque.csv"
    path.write_text("codigo;descricao;Saldo\n000176;Parafuso M6;3\n", encoding="utf-8")
    outcome = session.load_file(path)
    assert [r.codigo for r in outcome.rows] == ["000176"]
    assert session.source == "estoque.csv"


def test_group_map_reparses_rows(session, fake_store):
    session.load_rows(ROWS)
    asyncio.run(session.process(fake_store))
    assert session.rows[1].grupo == "623005"

    assert session.load_group_map('[{"codigo": "0623005", "grupo": "CORREIAS"}]') == 1
    assert session.rows[1].grupo == "CORREIAS"
    assert session.result is None

    session.clear_group_map()
    assert session.rows[1].grupo == "623005"


def test_bad_group_map_keeps_current(session):
    session.load_group_map('[{"codigo": "1", "grupo": "A"}]')
    with pytest.raises(GroupMapError):
        session.load_group_map("not json")
    assert len(session.group_map) == 1
    assert session.group_map.resolve("1") == "A"


def test_update_new_item(session, fake_store):
    session.load_rows(ROWS)
    asyncio.run(session.process(fake_store))

    item = session.update_new_item(0, codigo="  A1-B ", unidade="", saldo=4)
    assert item.codigo == "A1-B"
    assert item.unidade == "UN"
    assert item.valor_unitario == pytest.approx(9.9 / 4)
    assert session.new_items[0] is item

    with pytest.raises(SessionError):
        session.update_new_item(0, raw={})
    with pytest.raises(SessionError):
        session.update_new_item(5, codigo="X")


def test_warnings_page(session):
    rows = [{"codigo": str(i), "descricao": "x", "Saldo": ""} for i in range(25)]
    session.load_rows(rows)
    assert len(session.warnings) == 25
    assert [w.codigo for w in session.warnings_page(1)] == [str(i) for i in range(10)]
    assert len(session.warnings_page(3)) == 5
    assert session.warnings_page(4) == []
    with pytest.raises(ValueError):
        session.warnings_page(0)


def test_warning_limit_from_config():
    rows = [{"codigo": str(i), "descricao": "x", "Saldo": ""} for i in range(25)]
    with ImportSession(ImportConfig(warning_limit=5)) as s:
        s.load_rows(rows)
        assert len(s.warnings) == 5


def test_close_discards_state(fake_store):
    s = ImportSession()
    s.load_rows(ROWS)
    s.load_group_map('[{"codigo": "1", "grupo": "A"}]')
    s.close()
    assert s.closed is True
    assert s.rows == []
    assert len(s.group_map) == 0
    with pytest.raises(SessionError):
        s.load_rows(ROWS)
