from __future__ import annotations

import dataclasses
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from ..db.store import InventoryStore
from ..excel.reader import read_stock_file
from ..models.commit_result import CommitResult, UpdateFailure, UpdateOutcome
from ..models.config_models import ImportConfig
from ..models.parsed_row import DEFAULT_UNIT, ImportWarning, ParsedRow
from ..models.reconciliation import ReconciliationResult
from ..parsing.groups import GroupCodeMap
from ..parsing.pipeline import ParseOutcome, derive_unit_value, parse_rows
from .commit import BatchCallback, commit_updates, insert_new_items, retry_failed_updates
from .reconciliation import reconcile

logger = logging.getLogger(__name__)

"""Import session.

One ImportSession holds everything a single "Importar Estoque" run needs: the
loaded rows, the group code map pasted by the user, the reconciliation diff,
the pending new items and the failures of the last commit. Nothing is shared
between sessions and nothing is persisted; ``close`` discards it all.

Typical flow::

    with ImportSession(config) as session:
        session.load_file(path)
        result = await session.process(store)   # dry run
        commit = await session.save(store)      # explicit confirmation
        if commit.failed_updates:
            await session.retry_failed(store)
"""

__all__ = [
    "SessionError",
    "ImportSession",
]

EDITABLE_FIELDS = frozenset(
    {"codigo", "descricao", "unidade", "saldo", "valor_total", "valor_unitario", "estoque_minimo", "grupo"}
)


class SessionError(Exception):
    """An operation was called in the wrong session state."""


class ImportSession:
    def __init__(self, config: ImportConfig | None = None) -> None:
        self.config = config or ImportConfig()
        self.group_map = GroupCodeMap()
        self.source: str | None = None
        self._raw_rows: list[dict[str, Any]] | None = None
        self._outcome: ParseOutcome | None = None
        self._result: ReconciliationResult | None = None
        self._new_items: list[ParsedRow] = []
        self._last_commit: CommitResult | None = None
        self._failed: list[UpdateFailure] = []
        self._closed = False

    # --- state -------------------------------------------------------------

    @property
    def rows(self) -> list[ParsedRow]:
        return list(self._outcome.rows) if self._outcome else []

    @property
    def warnings(self) -> list[ImportWarning]:
        return list(self._outcome.warnings) if self._outcome else []

    @property
    def skipped(self) -> int:
        return self._outcome.skipped if self._outcome else 0

    @property
    def result(self) -> ReconciliationResult | None:
        return self._result

    @property
    def new_items(self) -> list[ParsedRow]:
        return list(self._new_items)

    @property
    def last_commit(self) -> CommitResult | None:
        return self._last_commit

    @property
    def failed_updates(self) -> list[UpdateFailure]:
        return list(self._failed)

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise SessionError("import session is closed")

    def _reset_downstream(self) -> None:
        self._result = None
        self._new_items = []
        self._last_commit = None
        self._failed = []

    # --- loading -----------------------------------------------------------

    def load_file(self, path: Path | str) -> ParseOutcome:
        """Read and parse a stock file.

        Raises StockFileError with the previous rows left in place.
        """
        self._check_open()
        path = Path(path)
        raw_rows = read_stock_file(path)
        outcome = self.load_rows(raw_rows, source=path.name)
        logger.info("loaded file=%s rows=%d skipped=%d", path.name, len(outcome.rows), outcome.skipped)
        return outcome

    def load_rows(self, raw_rows: Iterable[Mapping[str, Any]], source: str = "<rows>") -> ParseOutcome:
        self._check_open()
        raw = [dict(r) for r in raw_rows]
        outcome = parse_rows(raw, self.group_map, self.config)
        self._raw_rows = raw
        self._outcome = outcome
        self.source = source
        self._reset_downstream()
        return outcome

    def _reparse(self) -> None:
        if self._raw_rows is not None:
            self._outcome = parse_rows(self._raw_rows, self.group_map, self.config)
            self._reset_downstream()

    def load_group_map(self, text: str) -> int:
        """Replace the group code map with a pasted JSON array; return its size.

        Raises GroupMapError and keeps the current map on malformed input.
        Loaded rows are parsed again so their groups resolve through the new
        map; a previous ``process`` result is discarded.
        """
        self._check_open()
        count = self.group_map.load_json(text)
        logger.info("group map loaded entries=%d", count)
        self._reparse()
        return count

    def clear_group_map(self) -> None:
        self._check_open()
        self.group_map.clear()
        self._reparse()

    # --- review ------------------------------------------------------------

    def warnings_page(self, page: int = 1, page_size: int = 10) -> list[ImportWarning]:
        """1-based page of the collected warnings; empty past the last page."""
        if page < 1 or page_size < 1:
            raise ValueError("page and page_size must be >= 1")
        start = (page - 1) * page_size
        return self.warnings[start:start + page_size]

    def update_new_item(self, index: int, **changes: Any) -> ParsedRow:
        """Edit a pending new item before saving (e.g. fill a missing code)."""
        self._check_open()
        if self._result is None:
            raise SessionError("no pending new items: process the spreadsheet first")
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise SessionError(f"fields not editable: {', '.join(sorted(unknown))}")
        try:
            item = self._new_items[index]
        except IndexError:
            raise SessionError(f"no pending new item at index {index}") from None

        if "unidade" in changes and not changes["unidade"]:
            changes["unidade"] = DEFAULT_UNIT
        for text_field in ("codigo", "descricao"):
            if text_field in changes:
                changes[text_field] = str(changes[text_field] or "").strip()
        updated = dataclasses.replace(item, **changes)
        if "valor_unitario" not in changes and {"saldo", "valor_total"} & set(changes):
            updated = dataclasses.replace(
                updated,
                valor_unitario=derive_unit_value(updated.valor_total, updated.saldo, None),
            )
        self._new_items[index] = updated
        return updated

    # --- store -------------------------------------------------------------

    async def process(self, store: InventoryStore) -> ReconciliationResult:
        """Reconcile the loaded rows (dry run, nothing is written)."""
        self._check_open()
        if self._outcome is None:
            raise SessionError("no spreadsheet loaded")
        result = await reconcile(self._outcome.rows, store, self.config, self.group_map)
        self._reset_downstream()
        self._result = result
        self._new_items = list(result.new_items)
        return result

    async def save(self, store: InventoryStore, on_batch: BatchCallback | None = None) -> CommitResult:
        """Apply the prepared updates and insert the pending new items."""
        self._check_open()
        if self._result is None:
            raise SessionError("nothing to save: process the spreadsheet first")
        if self._last_commit is not None:
            raise SessionError("already saved: retry the failed updates or process again")

        updates = await commit_updates(
            store,
            self._result.prepared_updates,
            self.config.table,
            self.config.update_batch_size,
            on_batch,
        )
        inserts = await insert_new_items(store, self._new_items, self.config)

        self._last_commit = CommitResult(updates=updates, inserts=inserts)
        self._failed = list(updates.failures)
        # continuam pendentes: rejeitados, ou todos se o insert falhou
        self._new_items = list(self._new_items) if inserts.error is not None else list(inserts.rejected)
        return self._last_commit

    async def retry_failed(self, store: InventoryStore, on_batch: BatchCallback | None = None) -> UpdateOutcome:
        """Re-submit only the updates that failed in the last save or retry."""
        self._check_open()
        if self._last_commit is None:
            raise SessionError("nothing to retry: save first")
        outcome = await retry_failed_updates(
            store, self._failed, self.config.table, self.config.update_batch_size, on_batch
        )
        self._failed = list(outcome.failures)
        return outcome

    # --- teardown ----------------------------------------------------------

    def close(self) -> None:
        self._raw_rows = None
        self._outcome = None
        self._reset_downstream()
        self.group_map.clear()
        self.source = None
        self._closed = True

    def __enter__(self) -> ImportSession:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
