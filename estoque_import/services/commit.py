from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from ..db.store import InventoryStore, Record, StoreError, StoreErrorKind
from ..models.commit_result import InsertOutcome, UpdateFailure, UpdateOutcome
from ..models.config_models import ImportConfig, InventoryFields
from ..models.parsed_row import ParsedRow
from ..models.reconciliation import ReconciliationMatch
from ..parsing.headers import cell_text
from .reconciliation import chunked, fetch_existing

logger = logging.getLogger(__name__)

"""Commit executor: applies prepared updates and inserts new items.

Updates run in fixed-size batches; the items of one batch are dispatched
concurrently and the batch is awaited before the next one starts. A failing
update is recorded and never retried automatically: the caller decides to
retry exactly the failed matches. New items go through upsert-by-code, or,
when the store can't upsert, a plain insert whose payload is repaired (unknown
columns stripped, conflicting rows dropped) for a bounded number of attempts.
"""

__all__ = [
    "UPDATE_REPAIR_ATTEMPTS",
    "BatchCallback",
    "commit_updates",
    "retry_failed_updates",
    "build_insert_row",
    "insert_new_items",
]

# tentativas por update removendo colunas inexistentes do payload
UPDATE_REPAIR_ATTEMPTS = 4

BatchCallback = Callable[[int, int, float], None]  # (itens, falhas, segundos)


def _as_store_error(exc: Exception) -> StoreError:
    if isinstance(exc, StoreError):
        return exc
    return StoreError(f"{type(exc).__name__}: {exc}")


async def _apply_update(store: InventoryStore, table: str, match: ReconciliationMatch) -> None:
    payload = dict(match.payload)
    for attempt in range(1, UPDATE_REPAIR_ATTEMPTS + 1):
        try:
            await store.update_by_field_eq(table, match.match_field, match.match_value, payload)
            return
        except StoreError as e:
            if attempt == UPDATE_REPAIR_ATTEMPTS:
                raise
            if e.kind is not StoreErrorKind.UNKNOWN_COLUMN or e.column not in payload:
                raise
            logger.warning(
                "update %s=%r: column %s not in table, dropped from payload",
                match.match_field, match.match_value, e.column,
            )
            payload.pop(e.column)
            if not payload:
                return


async def commit_updates(
    store: InventoryStore,
    matches: Sequence[ReconciliationMatch],
    table: str = "pecas",
    batch_size: int = 20,
    on_batch: BatchCallback | None = None,
) -> UpdateOutcome:
    """Apply ``matches`` batch by batch; failures are collected, not raised."""
    updated = 0
    failures: list[UpdateFailure] = []
    batch_times: list[float] = []

    for batch in chunked(matches, batch_size):
        start = time.perf_counter()
        results = await asyncio.gather(
            *(_apply_update(store, table, m) for m in batch),
            return_exceptions=True,
        )
        elapsed = time.perf_counter() - start
        batch_times.append(elapsed)

        batch_failed = 0
        for match, result in zip(batch, results, strict=True):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                batch_failed += 1
                error = _as_store_error(result)
                failures.append(UpdateFailure(match=match, error=error))
                logger.warning(
                    "update failed %s=%r kind=%s error=%s",
                    match.match_field, match.match_value, error.kind.value, error.message,
                )
            else:
                updated += 1
        if on_batch is not None:
            on_batch(len(batch), batch_failed, elapsed)

    logger.info("updates applied=%d failed=%d batches=%d", updated, len(failures), len(batch_times))
    return UpdateOutcome(updated=updated, failures=failures, batch_times=batch_times)


async def retry_failed_updates(
    store: InventoryStore,
    failures: Sequence[UpdateFailure],
    table: str = "pecas",
    batch_size: int = 20,
    on_batch: BatchCallback | None = None,
) -> UpdateOutcome:
    """Re-submit exactly the matches of ``failures``."""
    return await commit_updates(store, [f.match for f in failures], table, batch_size, on_batch)


def build_insert_row(item: ParsedRow, fields: InventoryFields) -> dict[str, Any]:
    """Insert payload for a new item; a missing balance is stored as 0."""
    saldo = item.saldo if item.saldo is not None else 0
    row: dict[str, Any] = {
        fields.code: item.codigo,
        fields.name: item.descricao,
        fields.unit: item.unidade,
    }
    for balance_field in fields.balance:
        row[balance_field] = saldo
    row[fields.value_total] = item.valor_total
    row[fields.unit_value] = item.valor_unitario
    if item.grupo:
        row[fields.group] = item.grupo
    if item.estoque_minimo is not None:
        row[fields.min_stock] = item.estoque_minimo
    return row


def _drop_conflicts(rows: list[dict[str, Any]], error: StoreError, fields: InventoryFields) -> list[dict[str, Any]]:
    """Rows minus those matching the ``Key (field)=(value)`` of a duplicate-key error."""
    if not error.conflict_field or error.conflict_value is None:
        return rows
    # chave composta: "(codigo_produto, nome)=(A1, Parafuso)"
    names = [n.strip() for n in error.conflict_field.split(",")]
    values = [v.strip() for v in error.conflict_value.split(",")]
    if len(names) != len(values):
        names, values = [error.conflict_field], [error.conflict_value]
    return [
        r for r in rows
        if not all(cell_text(r.get(n)) == v for n, v in zip(names, values, strict=True))
    ]


async def _existing_codes(store: InventoryStore, codes: Sequence[str], config: ImportConfig) -> set[str]:
    records, failed = await fetch_existing(store, codes, [], config)
    if failed:
        logger.warning("re-check of new item codes incomplete: %d chunk(s) failed", failed)
    return {cell_text(r.get(config.fields.code)) for r in records}


async def _insert_with_repair(
    store: InventoryStore,
    rows: list[dict[str, Any]],
    config: ImportConfig,
) -> tuple[int, list[str], list[str], StoreError | None]:
    """Plain insert with payload repair; (inserted, dropped columns, dropped codes, error)."""
    fields = config.fields
    dropped_columns: list[str] = []
    dropped_codes: list[str] = []
    error: StoreError | None = None
    for attempt in range(1, config.insert_max_attempts + 1):
        if not rows:
            return 0, dropped_columns, dropped_codes, None
        try:
            await store.insert(config.table, rows)
            return len(rows), dropped_columns, dropped_codes, None
        except StoreError as e:
            error = e
            if e.kind is StoreErrorKind.UNKNOWN_COLUMN and e.column and any(e.column in r for r in rows):
                logger.warning("insert attempt %d: column %s not in table, dropped", attempt, e.column)
                dropped_columns.append(e.column)
                rows = [{k: v for k, v in r.items() if k != e.column} for r in rows]
                continue
            if e.kind is StoreErrorKind.DUPLICATE_KEY:
                remaining = _drop_conflicts(rows, e, fields)
                if len(remaining) < len(rows):
                    removed = [r for r in rows if r not in remaining]
                    dropped_codes.extend(cell_text(r.get(fields.code)) for r in removed)
                    logger.warning(
                        "insert attempt %d: duplicate key (%s)=(%s), %d row(s) dropped",
                        attempt, e.conflict_field, e.conflict_value, len(removed),
                    )
                    rows = remaining
                    continue
            break
    logger.error("insert of new items failed: %s", error.message if error else "unknown error")
    return 0, dropped_columns, dropped_codes, error


async def insert_new_items(
    store: InventoryStore,
    items: Sequence[ParsedRow],
    config: ImportConfig | None = None,
) -> InsertOutcome:
    """Insert the pending new items.

    1. items without code or description are rejected
    2. codes that exist by now are skipped (the store may have changed since
       reconciliation)
    3. upsert on the code field; when unsupported, insert with repair
    """
    cfg = config or ImportConfig()
    fields = cfg.fields

    rejected = [it for it in items if not it.codigo.strip() or not it.descricao.strip()]
    valid = [it for it in items if it.codigo.strip() and it.descricao.strip()]
    if rejected:
        logger.warning("new items without code or description rejected=%d", len(rejected))

    existing = await _existing_codes(store, _unique_codes(valid), cfg) if valid else set()
    skipped_existing = [it.codigo for it in valid if it.codigo.strip() in existing]
    pending = [it for it in valid if it.codigo.strip() not in existing]

    # mesma planilha com o código repetido: vale a última linha
    by_code: dict[str, ParsedRow] = {}
    skipped_duplicates: list[str] = []
    for it in pending:
        code = it.codigo.strip()
        if code in by_code:
            skipped_duplicates.append(code)
        by_code[code] = it
    rows = [build_insert_row(it, fields) for it in by_code.values()]

    if not rows:
        return InsertOutcome(
            skipped_existing=skipped_existing,
            skipped_duplicates=skipped_duplicates,
            rejected=rejected,
        )

    try:
        returned: list[Record] = await store.upsert(cfg.table, rows, on_conflict=fields.code)
    except StoreError as e:
        if e.kind is StoreErrorKind.OTHER:
            logger.error("upsert of new items failed: %s", e.message)
            return InsertOutcome(
                skipped_existing=skipped_existing,
                skipped_duplicates=skipped_duplicates,
                rejected=rejected,
                error=e,
            )
        logger.info("upsert unavailable (%s), falling back to insert", e.kind.value)
    else:
        logger.info("new items upserted=%d returned=%d", len(rows), len(returned))
        return InsertOutcome(
            inserted=len(rows),
            skipped_existing=skipped_existing,
            skipped_duplicates=skipped_duplicates,
            rejected=rejected,
        )

    inserted, dropped_columns, dropped_codes, error = await _insert_with_repair(store, rows, cfg)
    if error is None:
        logger.info("new items inserted=%d", inserted)
    return InsertOutcome(
        inserted=inserted,
        skipped_existing=skipped_existing,
        skipped_duplicates=skipped_duplicates + dropped_codes,
        rejected=rejected,
        dropped_columns=dropped_columns,
        error=error,
    )


def _unique_codes(items: Sequence[ParsedRow]) -> list[str]:
    return list(dict.fromkeys(it.codigo.strip() for it in items))
