"""
Tests for the ragsync command-line interface.

Commands that touch a database run against a temporary SQLite file.
"""

import io
import json
import shlex

import pytest

from ragsync import cli
from ragsync.cli import UsageError, build_parser, main, resolve_backend_config
from ragsync.config import PostgreSQLConfig, SQLiteConfig

pytestmark = pytest.mark.sqlite


def _parse(*argv: str):
    return build_parser().parse_args(list(argv))


def _run(*argv: str) -> tuple[int, str]:
    out = io.StringIO()
    code = main(list(argv), out=out)
    return code, out.getvalue()


@pytest.fixture
def db_file(tmp_path) -> str:
    return str(tmp_path / "cli.db")


class TestParser:
    def test_command_is_required(self):
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args([])
        assert exc_info.value.code == 2

    def test_rollback_takes_a_version(self):
        args = _parse("rollback", "2", "--sqlite-file", "x.db")
        assert args.command == "rollback"
        assert args.version == 2

    def test_transfer_options(self):
        args = _parse("--json", "transfer", "--sqlite-file", "x.db", "--skip-migrations")
        assert args.json
        assert args.skip_migrations
        assert args.pg_port == 5432

    def test_global_flags_precede_the_command(self):
        args = _parse("--json", "validate", "--from-env")
        assert args.command == "validate"
        assert args.json
        assert args.from_env

        with pytest.raises(SystemExit) as exc_info:
            _parse("validate", "--from-env", "--json")
        assert exc_info.value.code == 2

    def test_module_usage_examples_parse(self):
        examples = [
            line.strip()
            for line in cli.__doc__.splitlines()
            if line.strip().startswith("ragsync ") and "..." not in line
        ]
        assert examples
        for example in examples:
            _parse(*shlex.split(example)[1:])


class TestResolveBackendConfig:
    def test_sqlite_file(self):
        config = resolve_backend_config(_parse("status", "--sqlite-file", "x.db"))
        assert isinstance(config, SQLiteConfig)
        assert config.file_path == "x.db"

    def test_postgresql_flags(self):
        args = _parse(
            "migrate",
            "--pg-host",
            "db",
            "--pg-db",
            "kg",
            "--pg-user",
            "rag",
            "--pg-pass",
            "pw",
            "--pg-ssl",
            "--vector-dimensions",
            "768",
        )
        config = resolve_backend_config(args)
        assert isinstance(config, PostgreSQLConfig)
        assert config.database == "kg"
        assert config.vector_dimensions == 768
        assert config.ssl is not None

    def test_incomplete_postgresql_flags(self):
        args = _parse("migrate", "--pg-host", "db", "--pg-pass", "pw")
        with pytest.raises(UsageError) as exc_info:
            resolve_backend_config(args)
        assert "--pg-db, --pg-user" in str(exc_info.value)

    def test_ambiguous_backend(self):
        args = _parse("status", "--sqlite-file", "x.db", "--pg-host", "db")
        with pytest.raises(UsageError):
            resolve_backend_config(args)

    def test_explicit_backend_wins(self):
        args = _parse("status", "--backend", "sqlite", "--sqlite-file", "x.db", "--pg-host", "db")
        assert isinstance(resolve_backend_config(args), SQLiteConfig)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("DB_TYPE", "sqlite")
        monkeypatch.setenv("SQLITE_FILE_PATH", "/tmp/env.db")
        config = resolve_backend_config(_parse("status", "--from-env"))
        assert isinstance(config, SQLiteConfig)
        assert config.file_path == "/tmp/env.db"

    def test_nothing_given(self):
        with pytest.raises(UsageError):
            resolve_backend_config(_parse("status"))


class TestCommands:
    def test_usage_errors_exit_2(self, capsys):
        code, _ = _run("status")
        assert code == 2
        assert "ragsync status:" in capsys.readouterr().err

    def test_transfer_requires_both_sides(self, db_file):
        code, _ = _run("transfer", "--sqlite-file", db_file)
        assert code == 2

    def test_negative_rollback_version(self, db_file):
        code, _ = _run("rollback", "-1", "--sqlite-file", db_file)
        assert code == 2

    def test_status_on_fresh_database(self, db_file):
        code, output = _run("--json", "status", "--sqlite-file", db_file)

        assert code == 0
        payload = json.loads(output)
        assert payload["backend"] == "sqlite"
        assert payload["currentVersion"] == 0
        assert [m["applied"] for m in payload["migrations"]] == [False] * 4
        assert "pool" not in payload

    def test_migrate_then_rollback(self, db_file):
        code, output = _run("--json", "migrate", "--sqlite-file", db_file)
        assert code == 0
        assert json.loads(output) == {
            "applied": 4,
            "currentVersion": 4,
            "appliedMigrations": [1, 2, 3, 4],
        }

        code, output = _run("--json", "rollback", "2", "--sqlite-file", db_file)
        assert code == 0
        assert json.loads(output)["rolledBackMigrations"] == [4, 3]

        code, output = _run("status", "--sqlite-file", db_file)
        assert code == 0
        assert "Current version: 2" in output
        assert "[x] v1:" in output
        assert "[ ] v3:" in output

    def test_text_migrate_output(self, db_file):
        code, output = _run("migrate", "--sqlite-file", db_file)

        assert code == 0
        assert output.startswith("Applied 4 migration(s); current version 4")
        assert "  + v1: " in output
