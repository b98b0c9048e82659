from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from estoque_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from estoque_import.db.postgres import PostgresInventoryStore, resolve_dsn
from estoque_import.db.store import StoreError
from estoque_import.excel.reader import StockFileError
from estoque_import.logging.error_log import ErrorLogBuffer
from estoque_import.logging.init import log_summary, setup_logging
from estoque_import.models.config_models import ImportConfig
from estoque_import.parsing.groups import GroupMapError
from estoque_import.services.progress import UpdateProgress
from estoque_import.services.session import ImportSession
from estoque_import.services.summary import render_commit_summary, render_process_summary

"""CLI entrypoint.

    estoque-import planilha.xlsx                 # dry run: show the diff
    estoque-import planilha.xlsx --commit        # apply updates, insert new items

Exit codes: 0 success, 1 fatal (config, file, group map, database connection),
2 partial failure (failed updates or new items not inserted).
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2

WARNINGS_PAGE_SIZE = 10


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="estoque-import",
        description="Import a stock spreadsheet (.xlsx/.xls/.csv) into the inventory table",
    )
    p.add_argument("file", type=Path, help="stock spreadsheet")
    p.add_argument("--config", type=Path, default=None, help=f"config YAML (default: {DEFAULT_CONFIG_PATH})")
    p.add_argument("--group-map", type=Path, default=None, help="JSON array of {codigo, grupo} objects")
    p.add_argument("--commit", action="store_true", help="apply updates and insert new items")
    p.add_argument("--retry-failed", action="store_true", help="after --commit, retry failed updates once")
    p.add_argument("--show-warnings", action="store_true", help="print every collected warning")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _resolve_config(path: Path | None) -> ImportConfig:
    if path is None and not DEFAULT_CONFIG_PATH.exists():
        return ImportConfig()
    return load_config(path or DEFAULT_CONFIG_PATH)


def _open_store(cfg: ImportConfig) -> Any:
    return PostgresInventoryStore(resolve_dsn(cfg.database), maxconn=max(cfg.update_batch_size, 1))


def _print_warnings(session: ImportSession, logger: logging.Logger) -> None:
    page = 1
    while True:
        items = session.warnings_page(page, WARNINGS_PAGE_SIZE)
        if not items:
            break
        for w in items:
            logger.warning(f"row={w.row_number} codigo={w.codigo!r} descricao={w.descricao!r} reason={w.reason}")
        page += 1


def _print_diff(session: ImportSession, logger: logging.Logger) -> None:
    result = session.result
    if result is None:
        return
    for m in result.prepared_updates:
        changes = " ".join(
            f"{k}={m.existing_snapshot.get(k)!r}->{v!r}" for k, v in m.payload.items()
        )
        logger.info(f"update {m.match_field}={m.match_value!r} {changes}")
    for item in result.new_items:
        logger.info(
            f"new row={item.row_number} codigo={item.codigo!r} descricao={item.descricao!r} "
            f"saldo={item.saldo} valor_total={item.valor_total}"
        )


async def _run(session: ImportSession, store: Any, args: argparse.Namespace, logger: logging.Logger) -> int:
    result = await session.process(store)
    _print_diff(session, logger)
    log_summary(
        render_process_summary(len(session.rows), session.skipped, len(session.warnings), result)[8:]
    )
    if not args.commit:
        logger.info("dry run: nothing written (use --commit to save)")
        return EXIT_SUCCESS_ALL

    with UpdateProgress(len(result.prepared_updates)) as progress:
        commit = await session.save(store, on_batch=progress.on_batch)

    source = session.source or str(args.file)
    errors = ErrorLogBuffer()
    errors.record_commit(source, commit, session.config.fields.code)

    if args.retry_failed and commit.failed_updates:
        logger.info(f"retrying failed updates count={len(commit.failed_updates)}")
        outcome = await session.retry_failed(store)
        logger.info(f"retry updated={outcome.updated} still_failed={len(outcome.failures)}")
        for failure in outcome.failures:
            errors.record_store_error(source, failure.match.match_field, failure.match.match_value, failure.error)

    log_path = errors.flush()
    if log_path is not None:
        logger.info(f"error log written: {log_path}")

    log_summary(render_commit_summary(commit)[8:])
    if session.failed_updates or commit.inserts.error is not None:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # argv=[] vem dos testes: só None lê sys.argv
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    logger.debug("debug mode enabled")

    _load_env_file(Path(".env"), override=True)
    try:
        cfg = _resolve_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    with ImportSession(cfg) as session:
        if args.group_map is not None:
            try:
                count = session.load_group_map(args.group_map.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, GroupMapError) as e:
                logger.error(f"group map: {e}")
                return EXIT_FATAL
            logger.info(f"group map entries={count}")

        try:
            session.load_file(args.file)
        except StockFileError as e:
            logger.error(f"file: {e}")
            return EXIT_FATAL

        if session.warnings:
            logger.warning(f"rows flagged for review={len(session.warnings)}")
            if args.show_warnings:
                _print_warnings(session, logger)

        try:
            store = _open_store(cfg)
        except (psycopg2.Error, StoreError) as e:
            logger.error(f"database: {e}")
            return EXIT_FATAL
        try:
            return asyncio.run(_run(session, store, args, logger))
        finally:
            close = getattr(store, "close", None)
            if close is not None:
                close()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
