"""
Command-line interface for ragsync.

Usage:
    ragsync status --sqlite-file ./memory.db
    ragsync migrate --pg-host localhost --pg-db rag_memory --pg-user rag --pg-pass secret
    ragsync rollback 2 --sqlite-file ./memory.db
    ragsync transfer --sqlite-file ./memory.db --pg-host localhost --pg-db rag_memory ...
    ragsync --json validate --from-env

Exit codes: 0 on success, 1 when the operation failed, 2 on usage or
configuration errors.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Sequence
from contextlib import AsyncExitStack
from typing import Any, TextIO

from ragsync.config import (
    BackendConfig,
    BackendKind,
    PostgreSQLConfig,
    SQLiteConfig,
    TLSConfig,
    load_config_from_env,
)
from ragsync.exceptions import ConfigurationError, RagSyncError
from ragsync.migrations import MigrationExecutor
from ragsync.pool import ConnectionPoolManager
from ragsync.storage import TransactionalAdapter, create_adapter
from ragsync.transfer import TransferOrchestrator, TransferResult

logger = logging.getLogger("ragsync.cli")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


class UsageError(Exception):
    """Raised for invalid combinations of command-line options."""


# =============================================================================
# Argument parsing
# =============================================================================


def _connection_options() -> argparse.ArgumentParser:
    parent = argparse.ArgumentParser(add_help=False)
    group = parent.add_argument_group("connection")
    group.add_argument(
        "--from-env",
        action="store_true",
        help="Read backend settings from DB_TYPE, SQLITE_*, PG_* environment variables",
    )
    group.add_argument("--sqlite-file", metavar="PATH", help="SQLite database file")
    group.add_argument("--pg-host", metavar="HOST", help="PostgreSQL host")
    group.add_argument("--pg-port", metavar="PORT", type=int, default=5432)
    group.add_argument("--pg-db", metavar="NAME", help="PostgreSQL database name")
    group.add_argument("--pg-user", metavar="USER", help="PostgreSQL username")
    group.add_argument(
        "--pg-pass",
        metavar="PASSWORD",
        default=os.environ.get("PG_PASSWORD"),
        help="PostgreSQL password (default: $PG_PASSWORD)",
    )
    group.add_argument("--pg-ssl", action="store_true", help="Connect to PostgreSQL over TLS")
    group.add_argument("--pg-ca", metavar="PATH", help="CA bundle for TLS verification")
    group.add_argument("--pg-cert", metavar="PATH", help="Client certificate for TLS")
    group.add_argument("--pg-key", metavar="PATH", help="Client key for TLS")
    group.add_argument(
        "--vector-dimensions",
        metavar="N",
        type=int,
        default=None,
        help="Embedding width (default 384)",
    )
    return parent


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ragsync",
        description="Schema migrations and data transfer between SQLite and PostgreSQL.",
    )
    parser.add_argument("--json", action="store_true", help="Emit machine-readable JSON")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING)",
    )

    connection = _connection_options()
    subparsers = parser.add_subparsers(dest="command", required=True)

    backend_help = "Backend to operate on (inferred from the connection options if omitted)"
    for name, help_text in (
        ("status", "Show applied and pending migrations"),
        ("migrate", "Apply pending migrations"),
    ):
        sub = subparsers.add_parser(name, parents=[connection], help=help_text)
        sub.add_argument("--backend", choices=[k.value for k in BackendKind], help=backend_help)

    rollback = subparsers.add_parser(
        "rollback", parents=[connection], help="Revert migrations above a version"
    )
    rollback.add_argument("version", type=int, help="Version to roll back to (0 for all)")
    rollback.add_argument("--backend", choices=[k.value for k in BackendKind], help=backend_help)

    transfer = subparsers.add_parser(
        "transfer", parents=[connection], help="Copy all data from SQLite to PostgreSQL"
    )
    transfer.add_argument(
        "--skip-migrations",
        action="store_true",
        help="Do not apply pending migrations to both sides before transferring",
    )

    subparsers.add_parser(
        "validate", parents=[connection], help="Compare SQLite and PostgreSQL record counts"
    )
    return parser


# =============================================================================
# Configuration resolution
# =============================================================================


def _sqlite_config(args: argparse.Namespace) -> SQLiteConfig:
    if args.from_env and not args.sqlite_file:
        env_config = load_config_from_env({**os.environ, "DB_TYPE": BackendKind.SQLITE.value})
        assert isinstance(env_config, SQLiteConfig)
        return env_config
    if not args.sqlite_file:
        raise UsageError("SQLite file path is required (--sqlite-file)")
    if args.vector_dimensions is not None:
        return SQLiteConfig(file_path=args.sqlite_file, vector_dimensions=args.vector_dimensions)
    return SQLiteConfig(file_path=args.sqlite_file)


def _postgresql_config(args: argparse.Namespace) -> PostgreSQLConfig:
    if args.from_env and not args.pg_host:
        env_config = load_config_from_env(
            {**os.environ, "DB_TYPE": BackendKind.POSTGRESQL.value}
        )
        assert isinstance(env_config, PostgreSQLConfig)
        return env_config

    missing = [
        flag
        for flag, value in (
            ("--pg-host", args.pg_host),
            ("--pg-db", args.pg_db),
            ("--pg-user", args.pg_user),
            ("--pg-pass", args.pg_pass),
        )
        if not value
    ]
    if missing:
        raise UsageError(f"PostgreSQL configuration requires: {', '.join(missing)}")

    tls = None
    if args.pg_ssl or args.pg_ca or args.pg_cert:
        tls = TLSConfig(ca_file=args.pg_ca, cert_file=args.pg_cert, key_file=args.pg_key)
    extra: dict[str, Any] = {}
    if args.vector_dimensions is not None:
        extra["vector_dimensions"] = args.vector_dimensions
    return PostgreSQLConfig(
        host=args.pg_host,
        port=args.pg_port,
        database=args.pg_db,
        username=args.pg_user,
        password=args.pg_pass,
        ssl=tls,
        **extra,
    )


def resolve_backend_config(args: argparse.Namespace) -> BackendConfig:
    """
    Pick the single backend for status, migrate and rollback.

    An explicit ``--backend`` wins. Otherwise PostgreSQL is chosen when
    ``--pg-host`` is given without ``--sqlite-file``, SQLite when
    ``--sqlite-file`` is given, and ``DB_TYPE`` when ``--from-env`` is set.
    """
    match args.backend:
        case BackendKind.SQLITE.value:
            return _sqlite_config(args)
        case BackendKind.POSTGRESQL.value:
            return _postgresql_config(args)

    if args.sqlite_file and args.pg_host:
        raise UsageError("Both --sqlite-file and --pg-host given; choose one with --backend")
    if args.pg_host:
        return _postgresql_config(args)
    if args.sqlite_file:
        return _sqlite_config(args)
    if args.from_env:
        return load_config_from_env()
    raise UsageError(
        "Specify SQLite (--sqlite-file) or PostgreSQL (--pg-host) settings, or --from-env"
    )


# =============================================================================
# Output
# =============================================================================


def _emit_json(out: TextIO, payload: Any) -> None:
    out.write(json.dumps(payload, indent=2, default=str))
    out.write("\n")


def _print_transfer_results(out: TextIO, results: Sequence[TransferResult]) -> None:
    out.write("Transfer results\n================\n")
    for result in results:
        marker = "ok  " if result.success else "FAIL"
        out.write(
            f"[{marker}] {result.operation_name:<14} {result.records_transferred:>8} records"
            f"  ({result.duration_ms:.0f} ms)\n"
        )
        for error in result.errors:
            out.write(f"         - {error}\n")
    succeeded = sum(1 for r in results if r.success)
    total_records = sum(r.records_transferred for r in results)
    out.write(f"\nSuccessful operations: {succeeded}/{len(results)}\n")
    out.write(f"Total records transferred: {total_records}\n")


# =============================================================================
# Commands
# =============================================================================


async def _open(
    stack: AsyncExitStack, config: BackendConfig, manager: ConnectionPoolManager
) -> TransactionalAdapter:
    adapter = create_adapter(config, pool_manager=manager)
    await adapter.initialize()
    stack.push_async_callback(adapter.close)
    return adapter


async def _cmd_status(args: argparse.Namespace, out: TextIO) -> int:
    config = resolve_backend_config(args)
    async with AsyncExitStack() as stack:
        manager = await stack.enter_async_context(ConnectionPoolManager())
        adapter = await _open(stack, config, manager)
        executor = MigrationExecutor(adapter)
        statuses = await executor.status()
        current = await executor.current_version()
        health = None
        if isinstance(config, PostgreSQLConfig):
            health = await manager.check_health(config.database)

    applied = [s for s in statuses if s.applied]
    if args.json:
        payload: dict[str, Any] = {
            "backend": config.kind.value,
            "database": config.describe(),
            "currentVersion": current,
            "migrations": [s.to_dict() for s in statuses],
        }
        if health is not None:
            payload["pool"] = health.to_dict()
        _emit_json(out, payload)
        return EXIT_OK

    out.write("Migration status\n================\n")
    out.write(f"Database:        {config.describe()}\n")
    out.write(f"Current version: {current}\n")
    out.write(f"Applied:         {len(applied)}\n")
    out.write(f"Pending:         {len(statuses) - len(applied)}\n\n")
    for status in statuses:
        marker = "x" if status.applied else " "
        when = f"  ({status.applied_at:%Y-%m-%d %H:%M:%S})" if status.applied_at else ""
        out.write(f"  [{marker}] v{status.version}: {status.description}{when}\n")
    if health is not None:
        latency = "n/a" if health.latency_ms is None else f"{health.latency_ms:.1f} ms"
        out.write(
            f"\nPool: {health.status.value} ({latency}, "
            f"{health.connections.active}/{health.connections.max_size} active)\n"
        )
        for error in health.errors:
            out.write(f"  - {error}\n")
    return EXIT_OK


async def _cmd_migrate(args: argparse.Namespace, out: TextIO) -> int:
    config = resolve_backend_config(args)
    async with AsyncExitStack() as stack:
        manager = await stack.enter_async_context(ConnectionPoolManager())
        adapter = await _open(stack, config, manager)
        executor = MigrationExecutor(adapter)
        result = await executor.apply()
        descriptions = {m.version: m.description for m in executor.registry}

    if args.json:
        _emit_json(out, result.to_dict())
        return EXIT_OK

    out.write(f"Applied {result.applied} migration(s); current version {result.current_version}\n")
    for version in result.applied_migrations:
        out.write(f"  + v{version}: {descriptions.get(version, '')}\n")
    return EXIT_OK


async def _cmd_rollback(args: argparse.Namespace, out: TextIO) -> int:
    if args.version < 0:
        raise UsageError(f"Rollback version must be >= 0, got {args.version}")
    config = resolve_backend_config(args)
    async with AsyncExitStack() as stack:
        manager = await stack.enter_async_context(ConnectionPoolManager())
        adapter = await _open(stack, config, manager)
        executor = MigrationExecutor(adapter)
        result = await executor.rollback(args.version)
        descriptions = {m.version: m.description for m in executor.registry}

    if args.json:
        _emit_json(out, result.to_dict())
        return EXIT_OK

    out.write(
        f"Rolled back {result.rolled_back} migration(s); "
        f"current version {result.current_version}\n"
    )
    for version in result.rolled_back_migrations:
        out.write(f"  - v{version}: {descriptions.get(version, '')}\n")
    return EXIT_OK


async def _cmd_transfer(args: argparse.Namespace, out: TextIO) -> int:
    source_config = _sqlite_config(args)
    target_config = _postgresql_config(args)
    async with AsyncExitStack() as stack:
        manager = await stack.enter_async_context(ConnectionPoolManager())
        source = await _open(stack, source_config, manager)
        target = await _open(stack, target_config, manager)
        if not args.skip_migrations:
            for adapter in (source, target):
                await MigrationExecutor(adapter).apply()

        def progress(done: int, total: int, result: TransferResult) -> None:
            logger.info(
                "[%d/%d] %s: %d records",
                done,
                total,
                result.operation_name,
                result.records_transferred,
            )

        results = await TransferOrchestrator().transfer(source, target, progress)

    if args.json:
        _emit_json(out, [r.to_dict() for r in results])
    else:
        _print_transfer_results(out, results)
    return EXIT_OK if all(r.success for r in results) else EXIT_FAILURE


async def _cmd_validate(args: argparse.Namespace, out: TextIO) -> int:
    source_config = _sqlite_config(args)
    target_config = _postgresql_config(args)
    async with AsyncExitStack() as stack:
        manager = await stack.enter_async_context(ConnectionPoolManager())
        source = await _open(stack, source_config, manager)
        target = await _open(stack, target_config, manager)
        report = await TransferOrchestrator().validate_consistency(source, target)

    if args.json:
        _emit_json(out, report.to_dict())
        return EXIT_OK if report.valid else EXIT_FAILURE

    out.write("Consistency check: " + ("passed" if report.valid else "FAILED") + "\n")
    for error in report.errors:
        out.write(f"  error: {error}\n")
    for warning in report.warnings:
        out.write(f"  warning: {warning}\n")
    if report.source_stats is not None and report.target_stats is not None:
        src, dst = report.source_stats, report.target_stats
        out.write("\nSource -> target\n")
        out.write(f"  Entities:      {src.entities.total} -> {dst.entities.total}\n")
        out.write(
            f"  Relationships: {src.relationships.total} -> {dst.relationships.total}\n"
        )
        out.write(f"  Documents:     {src.documents.total} -> {dst.documents.total}\n")
        out.write(f"  Chunks:        {src.chunks.total} -> {dst.chunks.total}\n")
    return EXIT_OK if report.valid else EXIT_FAILURE


COMMANDS = {
    "status": _cmd_status,
    "migrate": _cmd_migrate,
    "rollback": _cmd_rollback,
    "transfer": _cmd_transfer,
    "validate": _cmd_validate,
}


def main(argv: Sequence[str] | None = None, out: TextIO | None = None) -> int:
    """Entry point for the ``ragsync`` console script."""
    parser = build_parser()
    args = parser.parse_args(argv)
    out = out or sys.stdout

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return asyncio.run(COMMANDS[args.command](args, out))
    except (UsageError, ConfigurationError) as e:
        print(f"ragsync {args.command}: {e}", file=sys.stderr)
        return EXIT_USAGE
    except RagSyncError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"ragsync {args.command} failed: {e}", file=sys.stderr)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
