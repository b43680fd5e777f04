from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import psycopg2
from dotenv import load_dotenv

from ..config.loader import DEFAULT_CONFIG_PATH, ConfigError, IngestConfig, default_config, load_config
from ..db.kv_store import InMemoryKeyValueStore, KeyValueStore, PostgresKeyValueStore, StoreError
from ..logging.init import enable_debug, log_summary, setup_logging
from ..models.caller_context import CallerContext, PermissionDeniedError, Role
from ..services.ingest import UPLOAD_KINDS, ingest_file
from ..services.progress import UploadProgressBar
from ..services.summary import render_summary_line

"""CLI entrypoint: ``python -m sales_ingest.cli <kind> <file> [--commit]``.

Without ``--commit`` the file is only validated (preview). Exit codes:
0 every row accepted (and uploaded with ``--commit``), 2 some rows rejected
or the upload stopped part-way, 1 fatal (config, permissions, unreadable
file, store unavailable).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _resolve_dsn(cfg: IngestConfig) -> str:
    """Connection string; environment (after ``.env``) wins over the config file."""
    db_cfg = cfg.database
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


def _connect_options(cfg: IngestConfig) -> str:
    """Server-side limit so a chunk write cannot outlive its upload timeout."""
    return f"-c statement_timeout={max(1, round(cfg.chunk_timeout * 1000))}"


@contextmanager
def _db_connection(cfg: IngestConfig) -> Iterator[psycopg2.extensions.cursor]:  # pragma: no cover (thin wrapper)
    conn = psycopg2.connect(_resolve_dsn(cfg), options=_connect_options(cfg))
    conn.autocommit = False
    try:
        cur = conn.cursor()
        try:
            yield cur
        finally:
            cur.close()
    finally:
        conn.close()


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load ``.env``; its values override the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Retail sales file ingestion (store sales, ecommerce, inventory)")
    p.add_argument("kind", choices=UPLOAD_KINDS, help="Kind of export being uploaded")
    p.add_argument("file", type=Path, help="CSV / XLSX / XLS file")
    p.add_argument("--commit", action="store_true", help="Upload accepted records (default: preview only)")
    p.add_argument("--config", type=Path, default=None, help=f"Config file (default: {DEFAULT_CONFIG_PATH})")
    p.add_argument("--user", default=os.getenv("SALES_INGEST_USER", "cli"), help="Caller user id")
    p.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=os.getenv("SALES_INGEST_ROLE", Role.UPLOADER.value),
        help="Caller role",
    )
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _load(config_path: Path | None) -> IngestConfig:
    # an explicit --config must exist; the default location is optional
    if config_path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return default_config()
        config_path = DEFAULT_CONFIG_PATH
    return load_config(config_path)


def _run(args: argparse.Namespace, cfg: IngestConfig, store: KeyValueStore, context: CallerContext) -> int:
    logger = setup_logging()
    if args.commit:
        with UploadProgressBar(f"Uploading {args.kind}") as bar:
            outcome = ingest_file(args.file, args.kind, cfg, store, context, commit=True, on_progress=bar)
    else:
        outcome = ingest_file(args.file, args.kind, cfg, store, context)

    if outcome.error_log_path is not None:
        logger.info(f"rejected rows written to {outcome.error_log_path}")
    log_summary(render_summary_line(outcome)[len("SUMMARY "):])

    if outcome.file_rejected:
        for message in outcome.result.errors:
            logger.error(message)
        return EXIT_FATAL
    if outcome.rejected or outcome.upload_failed:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # [] must not fall back to sys.argv (tests call main([...]))
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        enable_debug()

    try:
        cfg = _load(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if not args.file.is_file():
        logger.error(f"file not found: {args.file}")
        return EXIT_FATAL

    context = CallerContext(user_id=args.user, role=Role(args.role))
    logger.info(f"Processing {args.kind} file: {args.file}")

    try:
        if os.getenv("DISABLE_DB_CONNECT") == "1":
            logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
            return _run(args, cfg, InMemoryKeyValueStore(), context)
        try:
            with _db_connection(cfg) as cur:
                store = PostgresKeyValueStore(cur, table=cfg.kv_table)
                store.ensure_table()
                logger.info("mode=live")
                return _run(args, cfg, store, context)
        except psycopg2.OperationalError as db_e:
            if args.commit:
                logger.error(f"database unavailable: {db_e}")
                return EXIT_FATAL
            # previews do not need persisted data to validate rows
            logger.info(f"DB connection failed -> preview in mock mode: {db_e}")
            return _run(args, cfg, InMemoryKeyValueStore(), context)
    except PermissionDeniedError as e:
        logger.error(f"permission denied: {e}")
        return EXIT_FATAL
    except StoreError as e:
        logger.error(f"store: {e}")
        return EXIT_FATAL
    except OSError as e:
        logger.error(f"io: {e}")
        return EXIT_FATAL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
