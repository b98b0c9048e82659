# Shared pytest fixtures
from __future__ import annotations

import tempfile
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import pytest

from estoque_import.db.store import StoreError, StoreErrorKind, classify_store_error
from estoque_import.logging.init import reset_logging


class FakeInventoryStore:
    """In-memory InventoryStore with failure injection.

    - ``fail_query_calls``: 1-based indexes of query_by_field_in calls that raise
    - ``fail_updates``: match values whose update raises (consumed once if ``fail_once``)
    - ``upsert_error``: raised by every upsert
    - ``insert_errors``: raised by the next insert calls, in order
    - ``columns``: when set, writes with other columns raise UNKNOWN_COLUMN
    """

    def __init__(self, records: list[dict[str, Any]] | None = None, code_field: str = "codigo_produto") -> None:
        self.records: list[dict[str, Any]] = [dict(r) for r in records or []]
        self.code_field = code_field
        self.queries: list[tuple[str, str, list[Any]]] = []
        self.updates: list[tuple[str, Any, dict[str, Any]]] = []
        self.upserts: list[list[dict[str, Any]]] = []
        self.inserts: list[list[dict[str, Any]]] = []
        self.fail_query_calls: set[int] = set()
        self.fail_updates: set[Any] = set()
        self.fail_once = False
        self.upsert_error: StoreError | None = None
        self.insert_errors: list[StoreError] = []
        self.columns: set[str] | None = None
        self._next_id = 1000

    async def query_by_field_in(self, table: str, field: str, values: Sequence[Any], range_limit: int):
        self.queries.append((table, field, list(values)))
        if len(self.queries) in self.fail_query_calls:
            raise StoreError("upstream request failed")
        wanted = {str(v) for v in values}
        return [dict(r) for r in self.records if str(r.get(field)) in wanted][:range_limit]

    async def update_by_field_eq(self, table: str, field: str, value: Any, payload: Mapping[str, Any]) -> None:
        self.updates.append((field, value, dict(payload)))
        if value in self.fail_updates:
            if self.fail_once:
                self.fail_updates.discard(value)
            raise StoreError(f"timeout updating {value}")
        self._check_columns(table, payload)
        for r in self.records:
            if r.get(field) == value:
                r.update(payload)

    async def upsert(self, table: str, rows: Sequence[Mapping[str, Any]], on_conflict: str):
        self.upserts.append([dict(r) for r in rows])
        if self.upsert_error is not None:
            raise self.upsert_error
        for row in rows:
            existing = next((r for r in self.records if r.get(on_conflict) == row.get(on_conflict)), None)
            if existing is None:
                self._append(row)
            else:
                existing.update(row)
        return [dict(r) for r in rows]

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]):
        self.inserts.append([dict(r) for r in rows])
        if self.insert_errors:
            raise self.insert_errors.pop(0)
        for row in rows:
            self._check_columns(table, row)
        for row in rows:
            code = row.get(self.code_field)
            if any(r.get(self.code_field) == code for r in self.records):
                raise classify_store_error(
                    'duplicate key value violates unique constraint "pecas_codigo_produto_key"',
                    code="23505",
                    detail=f"Key ({self.code_field})=({code}) already exists.",
                )
        for row in rows:
            self._append(row)
        return [dict(r) for r in rows]

    def _check_columns(self, table: str, row: Mapping[str, Any]) -> None:
        if self.columns is None:
            return
        for col in row:
            if col not in self.columns:
                raise classify_store_error(f"Could not find the '{col}' column of '{table}' in the schema cache")

    def _append(self, row: Mapping[str, Any]) -> None:
        self._next_id += 1
        self.records.append({"id": self._next_id, **row})


def upsert_unsupported() -> StoreError:
    return StoreError(
        "there is no unique or exclusion constraint matching the ON CONFLICT specification",
        StoreErrorKind.UPSERT_UNSUPPORTED,
        code="42P10",
    )


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """table: pecas
fields:
  code: codigo_produto
  name: nome
  balance: [saldo_estoque, quantidade_estoque]
lookup_chunk_size: 50
update_batch_size: 20
warning_limit: 40
inference:
  fraction_epsilon: 0.000001
  integer_balance_cap: 100000
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def existing_records() -> list[dict[str, Any]]:
    return [
        {
            "id": 1,
            "codigo_produto": "000176",
            "nome": "Parafuso M6",
            "unidade_medida": "UN",
            "grupo_produto": "PARAFUSOS",
            "saldo_estoque": 10,
            "quantidade_estoque": 10,
            "valor_total": 50.0,
            "valor_unitario": 5.0,
            "estoque_minimo": None,
        },
        {
            "id": 2,
            "codigo_produto": "000200",
            "nome": "Porca M6",
            "unidade_medida": "UN",
            "grupo_produto": None,
            "saldo_estoque": 4,
            "quantidade_estoque": 4,
            "valor_total": 2.0,
            "valor_unitario": 0.5,
            "estoque_minimo": None,
        },
    ]


@pytest.fixture()
def fake_store(existing_records) -> FakeInventoryStore:
    return FakeInventoryStore(existing_records)


@pytest.fixture()
def store_factory():
    """FakeInventoryStore class, for tests that build their own records."""
    return FakeInventoryStore


@pytest.fixture()
def upsert_unsupported_error() -> StoreError:
    return upsert_unsupported()
