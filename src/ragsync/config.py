"""
Backend configuration for ragsync.

A backend configuration is a tagged union: either a :class:`SQLiteConfig`
for the embedded single-writer store or a :class:`PostgreSQLConfig` for the
network server with the pgvector extension. The ``kind`` field is the tag;
code that needs to branch on the backend matches on the config type.

Configuration values are validated on construction so that mistakes surface
before any I/O is attempted.

Example:
    >>> from ragsync.config import SQLiteConfig, PostgreSQLConfig, PoolConfig
    >>>
    >>> source = SQLiteConfig(file_path="./memory.db")
    >>> target = PostgreSQLConfig(
    ...     host="localhost",
    ...     port=5432,
    ...     database="rag_memory",
    ...     username="rag_user",
    ...     password="secret",
    ...     pool=PoolConfig(min_size=2, max_size=10),
    ... )
"""

from __future__ import annotations

import os
import ssl
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal

from sqlalchemy.engine import URL

from ragsync.exceptions import ConfigurationError

DEFAULT_VECTOR_DIMENSIONS = 384

DEFAULT_SQLITE_PRAGMAS: dict[str, str | int] = {
    "cache_size": -64000,
    "temp_store": "memory",
    "synchronous": "normal",
    "mmap_size": 268435456,
}


class BackendKind(str, Enum):
    """Which storage engine a configuration or adapter targets."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


VectorType = Literal["vector", "halfvec"]


@dataclass(frozen=True)
class PoolConfig:
    """
    Connection pool sizing for the PostgreSQL backend.

    Attributes:
        min_size: Connections kept open in the pool
        max_size: Upper bound on concurrently checked-out connections
        idle_timeout: Seconds after which a pooled connection is recycled
        connect_timeout: Seconds to wait for a connection before failing
    """

    min_size: int = 2
    max_size: int = 20
    idle_timeout: float = 30.0
    connect_timeout: float = 5.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.min_size < 0:
            raise ConfigurationError(
                f"pool min_size must be >= 0, got {self.min_size}", field="min_size"
            )
        if self.max_size < 1:
            raise ConfigurationError(
                f"pool max_size must be >= 1, got {self.max_size}", field="max_size"
            )
        if self.min_size > self.max_size:
            raise ConfigurationError(
                f"pool min_size ({self.min_size}) must be <= max_size ({self.max_size})",
                field="min_size",
            )
        if self.idle_timeout <= 0:
            raise ConfigurationError(
                f"pool idle_timeout must be positive, got {self.idle_timeout}",
                field="idle_timeout",
            )
        if self.connect_timeout <= 0:
            raise ConfigurationError(
                f"pool connect_timeout must be positive, got {self.connect_timeout}",
                field="connect_timeout",
            )


@dataclass(frozen=True)
class TLSConfig:
    """
    TLS materials for the PostgreSQL connection.

    Attributes:
        ca_file: CA bundle used to verify the server certificate
        cert_file: Client certificate for mutual TLS
        key_file: Private key for the client certificate
        verify: Whether to verify the server certificate and hostname
    """

    ca_file: str | None = None
    cert_file: str | None = None
    key_file: str | None = None
    verify: bool = True

    def __post_init__(self) -> None:
        if self.key_file and not self.cert_file:
            raise ConfigurationError("TLS key_file requires cert_file", field="cert_file")

    def create_ssl_context(self) -> ssl.SSLContext:
        """Build an SSLContext suitable for asyncpg's ``ssl`` connect argument."""
        context = ssl.create_default_context(cafile=self.ca_file)
        if not self.verify:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        if self.cert_file:
            context.load_cert_chain(self.cert_file, self.key_file)
        return context


@dataclass(frozen=True)
class SQLiteConfig:
    """
    Configuration for the embedded SQLite backend.

    Attributes:
        file_path: Database file, or ':memory:'
        enable_wal: Enable write-ahead logging
        busy_timeout: Milliseconds to wait on a locked database
        pragmas: Extra PRAGMA settings applied on connect
        vector_dimensions: Embedding width stored by this backend
    """

    file_path: str
    enable_wal: bool = True
    busy_timeout: int = 5000
    pragmas: Mapping[str, str | int] = field(default_factory=lambda: dict(DEFAULT_SQLITE_PRAGMAS))
    vector_dimensions: int = DEFAULT_VECTOR_DIMENSIONS
    kind: Literal[BackendKind.SQLITE] = field(default=BackendKind.SQLITE, init=False)

    def __post_init__(self) -> None:
        if not self.file_path:
            raise ConfigurationError("SQLite file path is required", field="file_path")
        if self.busy_timeout < 0:
            raise ConfigurationError(
                f"busy_timeout must be >= 0, got {self.busy_timeout}", field="busy_timeout"
            )
        _check_dimensions(self.vector_dimensions)

    def describe(self) -> str:
        return f"sqlite:{self.file_path}"


@dataclass(frozen=True)
class PostgreSQLConfig:
    """
    Configuration for the PostgreSQL + pgvector backend.

    Attributes:
        host: Server host name
        port: Server port
        database: Database name
        username: Login role
        password: Login password
        ssl: TLS materials, or None for a plain connection
        pool: Pool sizing
        vector_dimensions: Embedding width of the vector columns
        vector_type: pgvector column type, 'vector' or 'halfvec'
        query_timeout: Statement timeout in seconds
        application_name: Reported to the server in pg_stat_activity
    """

    host: str
    port: int
    database: str
    username: str
    password: str
    ssl: TLSConfig | None = None
    pool: PoolConfig = field(default_factory=PoolConfig)
    vector_dimensions: int = DEFAULT_VECTOR_DIMENSIONS
    vector_type: VectorType = "vector"
    query_timeout: float = 30.0
    application_name: str = "ragsync"
    kind: Literal[BackendKind.POSTGRESQL] = field(default=BackendKind.POSTGRESQL, init=False)

    def __post_init__(self) -> None:
        missing = [
            name
            for name in ("host", "database", "username", "password")
            if not getattr(self, name)
        ]
        if missing:
            raise ConfigurationError(
                f"PostgreSQL configuration requires: {', '.join(missing)}",
                field=missing[0],
            )
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"Invalid PostgreSQL port: {self.port}", field="port")
        if self.vector_type not in ("vector", "halfvec"):
            raise ConfigurationError(
                f"vector_type must be 'vector' or 'halfvec', got {self.vector_type!r}",
                field="vector_type",
            )
        if self.query_timeout <= 0:
            raise ConfigurationError(
                f"query_timeout must be positive, got {self.query_timeout}",
                field="query_timeout",
            )
        _check_dimensions(self.vector_dimensions)

    def url(self) -> URL:
        """SQLAlchemy URL for the asyncpg driver."""
        return URL.create(
            "postgresql+asyncpg",
            username=self.username,
            password=self.password,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    def connect_args(self) -> dict[str, object]:
        """Driver-level connect arguments passed through to asyncpg."""
        args: dict[str, object] = {
            "timeout": self.pool.connect_timeout,
            "command_timeout": self.query_timeout,
            "server_settings": {"application_name": self.application_name},
        }
        if self.ssl is not None:
            args["ssl"] = self.ssl.create_ssl_context()
        return args

    def describe(self) -> str:
        return f"postgresql://{self.username}@{self.host}:{self.port}/{self.database}"


BackendConfig = SQLiteConfig | PostgreSQLConfig


def _check_dimensions(dimensions: int) -> None:
    if dimensions <= 0:
        raise ConfigurationError(
            f"vector_dimensions must be a positive number, got {dimensions}",
            field="vector_dimensions",
        )


# =============================================================================
# Environment loading
# =============================================================================


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}", field=name) from None


def _env_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def load_config_from_env(environ: Mapping[str, str] | None = None) -> BackendConfig:
    """
    Build a backend configuration from environment variables.

    ``DB_TYPE`` selects the backend (default ``sqlite``). Timeouts are read in
    milliseconds and converted to seconds.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        SQLiteConfig or PostgreSQLConfig

    Raises:
        ConfigurationError: If DB_TYPE is unknown or required values are missing
    """
    env = os.environ if environ is None else environ
    db_type = env.get("DB_TYPE", BackendKind.SQLITE.value).strip().lower()
    dimensions = _env_int(env, "VECTOR_DIMENSIONS", DEFAULT_VECTOR_DIMENSIONS)

    if db_type == BackendKind.SQLITE.value:
        return SQLiteConfig(
            file_path=env.get("SQLITE_FILE_PATH", "./rag-memory.db"),
            enable_wal=_env_bool(env, "SQLITE_ENABLE_WAL", True),
            vector_dimensions=dimensions,
        )

    if db_type == BackendKind.POSTGRESQL.value:
        tls: TLSConfig | None = None
        if _env_bool(env, "PG_SSL", False) or env.get("PG_SSL_CA"):
            tls = TLSConfig(
                ca_file=env.get("PG_SSL_CA") or None,
                cert_file=env.get("PG_SSL_CERT") or None,
                key_file=env.get("PG_SSL_KEY") or None,
                verify=_env_bool(env, "PG_SSL_VERIFY", True),
            )
        pool = PoolConfig(
            min_size=_env_int(env, "PG_POOL_MIN", 2),
            max_size=_env_int(env, "PG_POOL_MAX", 20),
            idle_timeout=_env_int(env, "PG_POOL_IDLE_TIMEOUT", 30000) / 1000,
            connect_timeout=_env_int(env, "PG_POOL_CONNECTION_TIMEOUT", 5000) / 1000,
        )
        return PostgreSQLConfig(
            host=env.get("PG_HOST", ""),
            port=_env_int(env, "PG_PORT", 5432),
            database=env.get("PG_DATABASE", ""),
            username=env.get("PG_USERNAME", ""),
            password=env.get("PG_PASSWORD", ""),
            ssl=tls,
            pool=pool,
            vector_dimensions=dimensions,
            query_timeout=_env_int(env, "QUERY_TIMEOUT", 30000) / 1000,
        )

    raise ConfigurationError(
        f"Invalid DB_TYPE: {db_type}. Must be 'sqlite' or 'postgresql'", field="DB_TYPE"
    )


__all__ = [
    "BackendKind",
    "BackendConfig",
    "PoolConfig",
    "TLSConfig",
    "SQLiteConfig",
    "PostgreSQLConfig",
    "VectorType",
    "DEFAULT_VECTOR_DIMENSIONS",
    "DEFAULT_SQLITE_PRAGMAS",
    "load_config_from_env",
]
