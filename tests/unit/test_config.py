"""
Unit tests for backend configuration and environment loading.
"""

import pytest

from ragsync.config import (
    BackendKind,
    PoolConfig,
    PostgreSQLConfig,
    SQLiteConfig,
    TLSConfig,
    load_config_from_env,
)
from ragsync.exceptions import ConfigurationError


def _pg(**overrides):
    values = {
        "host": "db.internal",
        "port": 5432,
        "database": "rag_memory",
        "username": "rag",
        "password": "secret",
    }
    values.update(overrides)
    return PostgreSQLConfig(**values)


class TestSQLiteConfig:
    def test_defaults(self):
        config = SQLiteConfig(file_path="./memory.db")
        assert config.kind == BackendKind.SQLITE
        assert config.enable_wal is True
        assert config.vector_dimensions == 384
        assert config.describe() == "sqlite:./memory.db"

    def test_empty_path_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SQLiteConfig(file_path="")
        assert exc_info.value.field == "file_path"

    def test_non_positive_dimensions_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            SQLiteConfig(file_path="x.db", vector_dimensions=0)
        assert exc_info.value.field == "vector_dimensions"

    def test_kind_is_not_an_init_argument(self):
        with pytest.raises(TypeError):
            SQLiteConfig(file_path="x.db", kind=BackendKind.POSTGRESQL)  # type: ignore[call-arg]


class TestPostgreSQLConfig:
    def test_kind_and_description(self):
        config = _pg()
        assert config.kind == BackendKind.POSTGRESQL
        assert config.describe() == "postgresql://rag@db.internal:5432/rag_memory"

    def test_missing_required_fields_reported(self):
        with pytest.raises(ConfigurationError) as exc_info:
            _pg(host="", password="")
        assert "host" in str(exc_info.value)
        assert "password" in str(exc_info.value)
        assert exc_info.value.field == "host"

    @pytest.mark.parametrize("port", [0, 70000])
    def test_invalid_port(self, port):
        with pytest.raises(ConfigurationError):
            _pg(port=port)

    def test_invalid_vector_type(self):
        with pytest.raises(ConfigurationError) as exc_info:
            _pg(vector_type="sparsevec")
        assert exc_info.value.field == "vector_type"

    def test_url_uses_asyncpg_driver(self):
        url = _pg().url()
        assert url.drivername == "postgresql+asyncpg"
        assert url.host == "db.internal"
        assert url.database == "rag_memory"
        assert url.password == "secret"

    def test_connect_args_without_tls(self):
        args = _pg(query_timeout=12.0).connect_args()
        assert args["command_timeout"] == 12.0
        assert args["timeout"] == 5.0
        assert args["server_settings"] == {"application_name": "ragsync"}
        assert "ssl" not in args


class TestPoolConfig:
    def test_min_greater_than_max_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            PoolConfig(min_size=5, max_size=2)
        assert exc_info.value.field == "min_size"

    def test_zero_min_allowed(self):
        assert PoolConfig(min_size=0, max_size=1).min_size == 0

    def test_timeouts_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            PoolConfig(connect_timeout=0)


class TestTLSConfig:
    def test_key_without_cert_rejected(self):
        with pytest.raises(ConfigurationError):
            TLSConfig(key_file="client.key")


class TestLoadConfigFromEnv:
    def test_defaults_to_sqlite(self):
        config = load_config_from_env({})
        assert isinstance(config, SQLiteConfig)
        assert config.file_path == "./rag-memory.db"
        assert config.enable_wal is True

    def test_sqlite_settings(self):
        config = load_config_from_env(
            {
                "DB_TYPE": "sqlite",
                "SQLITE_FILE_PATH": "/data/kg.db",
                "SQLITE_ENABLE_WAL": "false",
                "VECTOR_DIMENSIONS": "768",
            }
        )
        assert isinstance(config, SQLiteConfig)
        assert config.file_path == "/data/kg.db"
        assert config.enable_wal is False
        assert config.vector_dimensions == 768

    def test_postgresql_settings_convert_milliseconds(self):
        config = load_config_from_env(
            {
                "DB_TYPE": "postgresql",
                "PG_HOST": "pg",
                "PG_PORT": "6543",
                "PG_DATABASE": "kg",
                "PG_USERNAME": "svc",
                "PG_PASSWORD": "pw",
                "PG_POOL_MIN": "1",
                "PG_POOL_MAX": "8",
                "PG_POOL_IDLE_TIMEOUT": "60000",
                "PG_POOL_CONNECTION_TIMEOUT": "2500",
                "QUERY_TIMEOUT": "15000",
            }
        )
        assert isinstance(config, PostgreSQLConfig)
        assert config.port == 6543
        assert config.pool == PoolConfig(
            min_size=1, max_size=8, idle_timeout=60.0, connect_timeout=2.5
        )
        assert config.query_timeout == 15.0
        assert config.ssl is None

    def test_postgresql_tls_from_env(self):
        config = load_config_from_env(
            {
                "DB_TYPE": "postgresql",
                "PG_HOST": "pg",
                "PG_DATABASE": "kg",
                "PG_USERNAME": "svc",
                "PG_PASSWORD": "pw",
                "PG_SSL": "true",
                "PG_SSL_CA": "/etc/ca.pem",
            }
        )
        assert isinstance(config, PostgreSQLConfig)
        assert config.ssl == TLSConfig(ca_file="/etc/ca.pem")

    def test_postgresql_missing_host(self):
        with pytest.raises(ConfigurationError):
            load_config_from_env({"DB_TYPE": "postgresql"})

    def test_invalid_db_type(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_env({"DB_TYPE": "mysql"})
        assert exc_info.value.field == "DB_TYPE"

    def test_non_integer_value(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config_from_env({"VECTOR_DIMENSIONS": "lots"})
        assert exc_info.value.field == "VECTOR_DIMENSIONS"
