from __future__ import annotations

import logging
import math
from collections.abc import Iterator, Sequence
from typing import Any

from ..db.store import InventoryStore, Record, StoreError
from ..models.config_models import ImportConfig, InventoryFields
from ..models.parsed_row import ParsedRow
from ..models.reconciliation import ReconciliationMatch, ReconciliationResult
from ..parsing.groups import GroupCodeMap
from ..parsing.headers import cell_text

logger = logging.getLogger(__name__)

"""Reconciliation of parsed rows against the inventory table.

Read-only: existing records are fetched in chunked ``IN`` queries (codes
first, then names), indexed by trimmed code and trimmed name, and every parsed
row becomes either a prepared update (only the fields that change) or a new
item. Nothing is written until the user confirms the commit.
"""

__all__ = [
    "chunked",
    "fetch_existing",
    "build_payload",
    "match_key",
    "reconcile",
]


def chunked(values: Sequence[Any], size: int) -> Iterator[list[Any]]:
    for start in range(0, len(values), max(1, size)):
        yield list(values[start:start + size])


def _unique(values: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(v for v in values if v))


def _record_identity(record: Record, fields: InventoryFields) -> Any:
    ident = record.get(fields.id)
    if ident is not None:
        return ("id", ident)
    return ("key", cell_text(record.get(fields.code)), cell_text(record.get(fields.name)))


async def fetch_existing(
    store: InventoryStore,
    codes: Sequence[str],
    names: Sequence[str],
    config: ImportConfig,
) -> tuple[list[Record], int]:
    """Fetch candidate records; return (records de-duplicated by id, failed chunk count).

    Chunks run one after the other. A failing chunk is logged and contributes
    no records.
    """
    fields = config.fields
    merged: dict[Any, Record] = {}
    failed = 0
    queries = 0
    for field, values in ((fields.code, codes), (fields.name, names)):
        for chunk in chunked(values, config.lookup_chunk_size):
            queries += 1
            try:
                records = await store.query_by_field_in(
                    config.table, field, chunk, config.lookup_range_limit
                )
            except StoreError as e:
                failed += 1
                logger.warning(
                    "lookup chunk failed table=%s field=%s keys=%d error=%s",
                    config.table, field, len(chunk), e.message,
                )
                continue
            for record in records:
                merged[_record_identity(record, fields)] = record
    logger.debug("lookup queries=%d failed=%d records=%d", queries, failed, len(merged))
    return list(merged.values()), failed


def _differs(old: Any, new: Any) -> bool:
    if old is None:
        return new is not None
    if isinstance(new, (int, float)) and not isinstance(new, bool):
        try:
            return not math.isclose(float(old), float(new), rel_tol=0.0, abs_tol=1e-9)
        except (TypeError, ValueError):
            return True
    return cell_text(old) != cell_text(new)


def build_payload(
    row: ParsedRow,
    existing: Record,
    fields: InventoryFields,
    group_map: GroupCodeMap | None = None,
) -> dict[str, Any]:
    """Fields of ``existing`` that ``row`` changes."""
    payload: dict[str, Any] = {}

    grupo = group_map.resolve(row.grupo) if group_map is not None else row.grupo
    if grupo and _differs(existing.get(fields.group), grupo):
        payload[fields.group] = grupo

    if row.saldo is not None:
        # só colunas que o registro tem; sem nenhuma, todas as configuradas
        targets = [f for f in fields.balance if f in existing] or list(fields.balance)
        for balance_field in targets:
            if _differs(existing.get(balance_field), row.saldo):
                payload[balance_field] = row.saldo

    if row.valor_total is not None and _differs(existing.get(fields.value_total), row.valor_total):
        payload[fields.value_total] = row.valor_total

    if row.valor_unitario is not None and _differs(existing.get(fields.unit_value), row.valor_unitario):
        payload[fields.unit_value] = row.valor_unitario

    if row.estoque_minimo is not None and _differs(existing.get(fields.min_stock), row.estoque_minimo):
        payload[fields.min_stock] = row.estoque_minimo

    return payload


def match_key(existing: Record, fields: InventoryFields) -> tuple[str, Any]:
    """(field, value) addressing ``existing``: code, else name, else id."""
    code = cell_text(existing.get(fields.code))
    if code:
        return fields.code, existing.get(fields.code)
    name = cell_text(existing.get(fields.name))
    if name:
        return fields.name, existing.get(fields.name)
    return fields.id, existing.get(fields.id)


async def reconcile(
    rows: Sequence[ParsedRow],
    store: InventoryStore,
    config: ImportConfig | None = None,
    group_map: GroupCodeMap | None = None,
) -> ReconciliationResult:
    """Split ``rows`` into prepared updates and new items (dry run)."""
    cfg = config or ImportConfig()
    fields = cfg.fields

    codes = _unique([r.codigo.strip() for r in rows])
    names = _unique([r.descricao.strip() for r in rows])
    records, failed = await fetch_existing(store, codes, names, cfg)

    by_code: dict[str, Record] = {}
    by_name: dict[str, Record] = {}
    for record in records:
        code = cell_text(record.get(fields.code))
        name = cell_text(record.get(fields.name))
        if code:
            by_code[code] = record
        if name:
            by_name[name] = record

    updates: list[ReconciliationMatch] = []
    new_items: list[ParsedRow] = []
    unchanged = 0
    for row in rows:
        existing = by_code.get(row.codigo.strip()) if row.codigo else None
        if existing is None and row.descricao:
            existing = by_name.get(row.descricao.strip())
        if existing is None:
            new_items.append(row)
            continue

        payload = build_payload(row, existing, fields, group_map)
        if not payload:
            unchanged += 1
            continue
        field, value = match_key(existing, fields)
        updates.append(
            ReconciliationMatch(
                match_field=field,
                match_value=value,
                payload=payload,
                existing_snapshot={k: existing.get(k) for k in payload},
                row=row,
            )
        )

    logger.info(
        "reconciled rows=%d updates=%d new=%d unchanged=%d failed_lookups=%d",
        len(rows), len(updates), len(new_items), unchanged, failed,
    )
    return ReconciliationResult(prepared_updates=updates, new_items=new_items, failed_lookups=failed)
