"""
Tests for MigrationExecutor against a real SQLite database.

Covers:
- Applying the standard catalog and idempotent re-application
- Rolling back to a target version and re-applying
- Non-reversible, failing, unknown and missing-procedure migrations
- Status reporting and tracing
"""

import pytest

from ragsync.config import BackendKind, SQLiteConfig
from ragsync.exceptions import (
    AdapterNotConnectedError,
    MigrationFailedError,
    MissingProcedureError,
    NonReversibleMigrationError,
    RollbackFailedError,
    UnknownMigrationError,
)
from ragsync.migrations import (
    BackendProcedure,
    Migration,
    MigrationExecutor,
    MigrationRegistry,
    sql_procedure,
)
from ragsync.storage import SQLiteStorageAdapter

pytestmark = pytest.mark.sqlite

NOTES_V1 = Migration(
    version=1,
    description="Create notes",
    common=BackendProcedure(
        apply=sql_procedure("CREATE TABLE notes (id TEXT PRIMARY KEY, body TEXT)"),
        revert=sql_procedure("DROP TABLE notes"),
    ),
)

TAGS_V2 = Migration(
    version=2,
    description="Create tags",
    common=BackendProcedure(
        apply=sql_procedure("CREATE TABLE tags (name TEXT PRIMARY KEY)"),
        revert=sql_procedure("DROP TABLE tags"),
    ),
)


async def _explode(tx, context):
    raise RuntimeError("disk on fire")


async def _tables(adapter: SQLiteStorageAdapter) -> set[str]:
    async with adapter.transaction() as tx:
        rows = await tx.fetch_all("SELECT name FROM sqlite_master WHERE type = 'table'")
    return {row["name"] for row in rows}


class TestApply:
    @pytest.mark.asyncio
    async def test_standard_catalog_applies_all_versions(self, sqlite_adapter):
        executor = MigrationExecutor(sqlite_adapter, enable_tracing=False)

        result = await executor.apply()

        assert result.applied == 4
        assert result.current_version == 4
        assert result.applied_migrations == (1, 2, 3, 4)
        tables = await _tables(sqlite_adapter)
        assert {"entities", "relationships", "documents", "schema_migrations"} <= tables
        assert "entities_fts" in tables

    @pytest.mark.asyncio
    async def test_second_apply_is_a_no_op(self, sqlite_adapter):
        executor = MigrationExecutor(sqlite_adapter, enable_tracing=False)
        await executor.apply()

        result = await executor.apply()

        assert result.applied == 0
        assert result.current_version == 4
        assert result.applied_migrations == ()

    @pytest.mark.asyncio
    async def test_pending_lists_unapplied_versions(self, sqlite_adapter):
        executor = MigrationExecutor(
            sqlite_adapter, registry=MigrationRegistry([NOTES_V1]), enable_tracing=False
        )
        await executor.apply()
        executor.registry.register(TAGS_V2)

        pending = await executor.pending()

        assert [m.version for m in pending] == [2]

    @pytest.mark.asyncio
    async def test_failure_keeps_earlier_migrations_and_rolls_back_its_own(self, sqlite_adapter):
        broken = Migration(
            version=2,
            description="Half-finished change",
            common=BackendProcedure(
                apply=_chain(sql_procedure("CREATE TABLE scratch (id INTEGER)"), _explode)
            ),
        )
        executor = MigrationExecutor(
            sqlite_adapter, registry=MigrationRegistry([NOTES_V1, broken]), enable_tracing=False
        )

        with pytest.raises(MigrationFailedError) as exc_info:
            await executor.apply()

        assert exc_info.value.version == 2
        assert "disk on fire" in str(exc_info.value)
        assert await executor.current_version() == 1
        tables = await _tables(sqlite_adapter)
        assert "notes" in tables
        assert "scratch" not in tables

    @pytest.mark.asyncio
    async def test_missing_procedure_fails_before_any_work(self, sqlite_adapter):
        postgres_only = Migration(
            version=2,
            description="PostgreSQL only",
            procedures={BackendKind.POSTGRESQL: BackendProcedure(apply=_explode)},
        )
        executor = MigrationExecutor(
            sqlite_adapter,
            registry=MigrationRegistry([NOTES_V1, postgres_only]),
            enable_tracing=False,
        )

        with pytest.raises(MissingProcedureError):
            await executor.apply()

        assert await executor.current_version() == 0
        assert "notes" not in await _tables(sqlite_adapter)

    @pytest.mark.asyncio
    async def test_not_connected_adapter(self, sqlite_config: SQLiteConfig):
        adapter = SQLiteStorageAdapter(sqlite_config, enable_tracing=False)
        executor = MigrationExecutor(adapter, enable_tracing=False)

        with pytest.raises(AdapterNotConnectedError):
            await executor.apply()

    @pytest.mark.asyncio
    async def test_apply_is_traced(self, sqlite_adapter, mock_tracer):
        executor = MigrationExecutor(
            sqlite_adapter, registry=MigrationRegistry([NOTES_V1, TAGS_V2]), tracer=mock_tracer
        )

        await executor.apply()

        assert mock_tracer.span_names.count("ragsync.migrations.apply") == 1
        assert mock_tracer.span_names.count("ragsync.migrations.apply_one") == 2


class TestRollback:
    @pytest.mark.asyncio
    async def test_two_step_scenario(self, sqlite_adapter):
        executor = MigrationExecutor(
            sqlite_adapter, registry=MigrationRegistry([NOTES_V1, TAGS_V2]), enable_tracing=False
        )

        applied = await executor.apply()
        assert (applied.applied, applied.current_version) == (2, 2)

        first = await executor.rollback(1)
        assert (first.rolled_back, first.current_version) == (1, 1)
        assert first.rolled_back_migrations == (2,)
        assert "tags" not in await _tables(sqlite_adapter)

        second = await executor.rollback(0)
        assert (second.rolled_back, second.current_version) == (1, 0)
        assert "notes" not in await _tables(sqlite_adapter)

    @pytest.mark.asyncio
    async def test_rollback_then_apply_restores_ledger(self, sqlite_adapter):
        executor = MigrationExecutor(sqlite_adapter, enable_tracing=False)
        await executor.apply()
        before = [(s.version, s.description, s.applied) for s in await executor.status()]

        result = await executor.rollback(2)
        assert result.rolled_back_migrations == (4, 3)
        assert await executor.current_version() == 2

        reapplied = await executor.apply()
        assert reapplied.applied_migrations == (3, 4)
        after = [(s.version, s.description, s.applied) for s in await executor.status()]
        assert after == before

    @pytest.mark.asyncio
    async def test_full_standard_rollback_keeps_ledger_table(self, sqlite_adapter):
        executor = MigrationExecutor(sqlite_adapter, enable_tracing=False)
        await executor.apply()

        result = await executor.rollback(0)

        assert result.rolled_back == 4
        assert result.current_version == 0
        tables = await _tables(sqlite_adapter)
        assert "schema_migrations" in tables
        assert "entities" not in tables

    @pytest.mark.asyncio
    async def test_target_at_or_above_current_is_a_no_op(self, sqlite_adapter):
        executor = MigrationExecutor(
            sqlite_adapter, registry=MigrationRegistry([NOTES_V1]), enable_tracing=False
        )
        await executor.apply()

        result = await executor.rollback(5)

        assert result.rolled_back == 0
        assert result.current_version == 1

    @pytest.mark.asyncio
    async def test_negative_target_rejected(self, sqlite_adapter):
        executor = MigrationExecutor(sqlite_adapter, enable_tracing=False)
        with pytest.raises(ValueError):
            await executor.rollback(-1)

    @pytest.mark.asyncio
    async def test_non_reversible_migration_leaves_ledger_untouched(self, sqlite_adapter):
        one_way = Migration(
            version=2,
            description="One-way change",
            common=BackendProcedure(apply=sql_procedure("CREATE TABLE archive (id INTEGER)")),
        )
        executor = MigrationExecutor(
            sqlite_adapter, registry=MigrationRegistry([NOTES_V1, one_way]), enable_tracing=False
        )
        await executor.apply()

        with pytest.raises(NonReversibleMigrationError) as exc_info:
            await executor.rollback(0)

        assert exc_info.value.version == 2
        assert await executor.current_version() == 2
        assert all(status.applied for status in await executor.status())
        assert {"notes", "archive"} <= await _tables(sqlite_adapter)

    @pytest.mark.asyncio
    async def test_unknown_ledger_version(self, sqlite_adapter):
        await MigrationExecutor(
            sqlite_adapter, registry=MigrationRegistry([NOTES_V1, TAGS_V2]), enable_tracing=False
        ).apply()
        executor = MigrationExecutor(
            sqlite_adapter, registry=MigrationRegistry([NOTES_V1]), enable_tracing=False
        )

        statuses = await executor.status()
        assert [(s.version, s.applied) for s in statuses] == [(1, True), (2, True)]
        assert statuses[1].description == "Create tags"

        with pytest.raises(UnknownMigrationError):
            await executor.rollback(0)
        assert await executor.current_version() == 2

    @pytest.mark.asyncio
    async def test_failing_revert_keeps_ledger_row(self, sqlite_adapter):
        bad_revert = Migration(
            version=2,
            description="Revert explodes",
            common=BackendProcedure(
                apply=sql_procedure("CREATE TABLE widgets (id INTEGER)"), revert=_explode
            ),
        )
        executor = MigrationExecutor(
            sqlite_adapter,
            registry=MigrationRegistry([NOTES_V1, bad_revert]),
            enable_tracing=False,
        )
        await executor.apply()

        with pytest.raises(RollbackFailedError) as exc_info:
            await executor.rollback(0)

        assert exc_info.value.version == 2
        assert await executor.current_version() == 2


class TestStatus:
    @pytest.mark.asyncio
    async def test_fresh_database_reports_everything_pending(self, sqlite_adapter):
        executor = MigrationExecutor(sqlite_adapter, enable_tracing=False)

        statuses = await executor.status()

        assert [s.version for s in statuses] == [1, 2, 3, 4]
        assert not any(s.applied for s in statuses)
        assert await executor.current_version() == 0

    @pytest.mark.asyncio
    async def test_applied_rows_carry_timestamps(self, sqlite_adapter):
        executor = MigrationExecutor(
            sqlite_adapter, registry=MigrationRegistry([NOTES_V1]), enable_tracing=False
        )
        await executor.apply()

        (status,) = await executor.status()

        assert status.applied
        assert status.applied_at is not None
        assert status.to_dict()["appliedAt"] == status.applied_at.isoformat()


def _chain(*procedures):
    async def run(tx, context):
        for procedure in procedures:
            await procedure(tx, context)

    return run
