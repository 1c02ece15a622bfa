"""
Connection pool manager for the PostgreSQL backend.

Each named pool is a SQLAlchemy ``AsyncEngine`` over asyncpg. The manager
owns the engines: it probes them on creation, reports their health, hands
out connections with retry, and replaces an engine after its connections
break.

Recovery is debounced per pool. The first connection-related error schedules
one recovery task; further errors for the same pool are ignored until that
task has finished. The task waits ``recovery_delay`` seconds, disposes the old
engine, creates a new one from the stored configuration, then clears the
pending marker. Borrowers calling :meth:`ConnectionPoolManager.get_client`
while the engine is being replaced wait until it is ready again.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any

from sqlalchemy import event, text
from sqlalchemy.engine import ExceptionContext
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from ragsync.config import PostgreSQLConfig
from ragsync.exceptions import (
    ConnectionRetryError,
    PoolAlreadyExistsError,
    PoolCreationError,
    PoolNotFoundError,
)
from ragsync.observability import (
    ATTR_DB_SYSTEM,
    ATTR_HEALTH_STATUS,
    ATTR_POOL_ATTEMPT,
    ATTR_POOL_NAME,
    Tracer,
    create_tracer,
)
from ragsync.pool.health import HealthStatus, PoolHealth, PoolStats, classify_health
from ragsync.pool.retry import RetryConfig, calculate_backoff, is_connection_error

logger = logging.getLogger(__name__)

EngineFactory = Callable[[PostgreSQLConfig], AsyncEngine]

DEFAULT_RECOVERY_DELAY = 5.0

PROBE_STATEMENTS: tuple[str, ...] = (
    "SELECT 1",
    "CREATE EXTENSION IF NOT EXISTS vector",
    "SELECT '[1,2,3]'::vector",
)


def create_engine_for(config: PostgreSQLConfig) -> AsyncEngine:
    """
    Build an AsyncEngine whose pool honors the configured bounds.

    ``min_size`` connections are kept in the pool; up to ``max_size`` may be
    checked out at once; borrowers beyond that block for ``connect_timeout``
    seconds before failing.
    """
    pool = config.pool
    pool_size = pool.min_size if pool.min_size > 0 else pool.max_size
    return create_async_engine(
        config.url(),
        pool_size=pool_size,
        max_overflow=pool.max_size - pool_size,
        pool_timeout=pool.connect_timeout,
        pool_recycle=int(pool.idle_timeout),
        connect_args=config.connect_args(),
    )


class ConnectionPoolManager:
    """
    Registry of named PostgreSQL connection pools.

    Example:
        >>> manager = ConnectionPoolManager()
        >>> await manager.create_pool("primary", pg_config)
        >>> conn = await manager.get_client_with_retry("primary")
        >>> try:
        ...     await conn.execute(text("SELECT 1"))
        ... finally:
        ...     await conn.close()
        >>> await manager.close_all()
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        recovery_delay: float = DEFAULT_RECOVERY_DELAY,
        engine_factory: EngineFactory | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the manager.

        Args:
            retry_config: Backoff settings for get_client_with_retry
            recovery_delay: Seconds to wait before rebuilding a broken pool
            engine_factory: Builds an engine from a config (defaults to create_engine_for)
            tracer: Optional tracer (if not provided, one will be created)
            enable_tracing: Whether to enable OpenTelemetry tracing (default True)
        """
        if recovery_delay < 0:
            raise ValueError(f"recovery_delay must be >= 0, got {recovery_delay}.")
        self._retry_config = retry_config or RetryConfig()
        self._recovery_delay = recovery_delay
        self._engine_factory = engine_factory or create_engine_for
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled

        self._engines: dict[str, AsyncEngine] = {}
        self._configs: dict[str, PostgreSQLConfig] = {}
        self._ready: dict[str, asyncio.Event] = {}
        self._waiting: dict[str, int] = {}
        self._health_cache: dict[str, PoolHealth] = {}
        self._pending_recoveries: dict[str, asyncio.Task[None]] = {}

    async def __aenter__(self) -> ConnectionPoolManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close_all()

    # =========================================================================
    # Pool lifecycle
    # =========================================================================

    async def create_pool(self, name: str, config: PostgreSQLConfig) -> AsyncEngine:
        """
        Create, probe and register a pool.

        The probe runs ``SELECT 1``, ensures the vector extension exists and
        casts a literal to ``vector``. On failure the engine is disposed and
        nothing is registered.

        Raises:
            PoolAlreadyExistsError: If the name is taken
            PoolCreationError: If the probe fails
        """
        if name in self._engines:
            raise PoolAlreadyExistsError(name)

        with self._tracer.span(
            "ragsync.pool.create_pool",
            {ATTR_POOL_NAME: name, ATTR_DB_SYSTEM: "postgresql"},
        ):
            engine = await self._open_engine(name, config)

        self._engines[name] = engine
        self._configs[name] = config
        ready = asyncio.Event()
        ready.set()
        self._ready[name] = ready
        self._waiting[name] = 0
        logger.info(
            "Created pool %s for %s (min=%d, max=%d)",
            name,
            config.describe(),
            config.pool.min_size,
            config.pool.max_size,
        )
        return engine

    async def _open_engine(self, name: str, config: PostgreSQLConfig) -> AsyncEngine:
        engine = self._engine_factory(config)
        self._attach_listeners(name, engine)
        try:
            async with engine.connect() as conn:
                for statement in PROBE_STATEMENTS:
                    await conn.execute(text(statement))
                await conn.commit()
        except Exception as e:
            await engine.dispose()
            raise PoolCreationError(name, str(e)) from e
        return engine

    def _attach_listeners(self, name: str, engine: AsyncEngine) -> None:
        def on_handle_error(context: ExceptionContext) -> None:
            self.handle_pool_error(name, context.original_exception)

        def on_invalidate(dbapi_connection: Any, connection_record: Any, exception: Any) -> None:
            if exception is not None:
                self.handle_pool_error(name, exception)

        event.listen(engine.sync_engine, "handle_error", on_handle_error)
        event.listen(engine.sync_engine.pool, "invalidate", on_invalidate)

    def get_pool(self, name: str) -> AsyncEngine:
        """Return the engine registered under ``name``."""
        engine = self._engines.get(name)
        if engine is None:
            raise PoolNotFoundError(name)
        return engine

    def get_config(self, name: str) -> PostgreSQLConfig:
        config = self._configs.get(name)
        if config is None:
            raise PoolNotFoundError(name)
        return config

    def pool_names(self) -> list[str]:
        return list(self._engines)

    def has_pool(self, name: str) -> bool:
        return name in self._engines

    async def close_pool(self, name: str) -> None:
        """Cancel any pending recovery, dispose the engine and forget the pool."""
        if name not in self._engines:
            raise PoolNotFoundError(name)

        task = self._pending_recoveries.pop(name, None)
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        engine = self._engines.pop(name)
        self._configs.pop(name, None)
        self._waiting.pop(name, None)
        self._health_cache.pop(name, None)
        ready = self._ready.pop(name, None)
        if ready is not None:
            # release anyone still waiting; they will see PoolNotFoundError
            ready.set()

        try:
            await engine.dispose()
        except Exception as e:
            logger.error("Error disposing pool %s: %s", name, e)
        logger.info("Closed pool %s", name)

    async def close_all(self) -> None:
        for name in list(self._engines):
            await self.close_pool(name)

    # =========================================================================
    # Borrowing connections
    # =========================================================================

    async def get_client(self, name: str) -> AsyncConnection:
        """
        Check out a connection. The caller must close it.

        Waits while the pool is being recovered.

        Raises:
            PoolNotFoundError: If the pool is not registered
        """
        ready = self._ready.get(name)
        if ready is None:
            raise PoolNotFoundError(name)

        self._waiting[name] = self._waiting.get(name, 0) + 1
        try:
            await ready.wait()
            engine = self.get_pool(name)
            return await engine.connect()
        finally:
            if name in self._waiting:
                self._waiting[name] -= 1

    async def get_client_with_retry(
        self, name: str, max_retries: int | None = None
    ) -> AsyncConnection:
        """
        Check out a connection, retrying connection-related failures.

        Each retryable failure also schedules recovery for the pool. Other
        errors propagate immediately.

        Args:
            name: Pool name
            max_retries: Attempts to make (defaults to the retry config)

        Raises:
            PoolNotFoundError: If the pool is not registered
            ConnectionRetryError: If every attempt failed
        """
        config = self._retry_config
        if max_retries is not None:
            config = replace(config, max_retries=max_retries)

        last_error: BaseException | None = None
        for attempt in range(1, config.max_retries + 1):
            with self._tracer.span(
                "ragsync.pool.get_client",
                {ATTR_POOL_NAME: name, ATTR_POOL_ATTEMPT: attempt},
            ):
                try:
                    return await self.get_client(name)
                except PoolNotFoundError:
                    raise
                except Exception as e:
                    if not is_connection_error(e):
                        raise
                    last_error = e
                    self.handle_pool_error(name, e)

            if attempt < config.max_retries:
                delay = calculate_backoff(attempt, config)
                logger.warning(
                    "Connection attempt %d/%d for pool %s failed, retrying in %.1fs",
                    attempt,
                    config.max_retries,
                    name,
                    delay,
                    extra={
                        "pool": name,
                        "attempt": attempt,
                        "delay_seconds": delay,
                        "error": str(last_error),
                    },
                )
                await asyncio.sleep(delay)

        assert last_error is not None
        logger.error(
            "Giving up on pool %s after %d attempts: %s", name, config.max_retries, last_error
        )
        raise ConnectionRetryError(name, config.max_retries, last_error)

    # =========================================================================
    # Health and statistics
    # =========================================================================

    def get_pool_stats(self, name: str) -> PoolStats:
        engine = self.get_pool(name)
        pool = engine.pool
        active = pool.checkedout()
        idle = pool.checkedin()
        return PoolStats(
            total=active + idle,
            idle=idle,
            active=active,
            waiting=self._waiting.get(name, 0),
            max_size=self._configs[name].pool.max_size,
        )

    async def check_health(self, name: str) -> PoolHealth:
        """
        Probe a pool with ``SELECT 1`` and classify the result.

        Never raises: a missing pool or failed probe is reported as
        UNHEALTHY with the reason in ``errors``. The result is cached.
        """
        engine = self._engines.get(name)
        if engine is None:
            return PoolHealth(
                pool_name=name,
                status=HealthStatus.UNHEALTHY,
                latency_ms=None,
                connections=PoolStats(),
                errors=(f"Pool '{name}' not found",),
            )

        with self._tracer.span("ragsync.pool.check_health", {ATTR_POOL_NAME: name}) as span:
            errors: list[str] = []
            try:
                stats = self.get_pool_stats(name)
            except Exception as e:
                stats = PoolStats(max_size=self._configs[name].pool.max_size)
                errors.append(f"Pool statistics unavailable: {e}")

            latency_ms: float | None
            started = time.perf_counter()
            try:
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
                latency_ms = (time.perf_counter() - started) * 1000
            except Exception as e:
                latency_ms = None
                errors.append(f"Health check failed: {e}")

            status, reasons = classify_health(latency_ms, stats)
            health = PoolHealth(
                pool_name=name,
                status=status,
                latency_ms=latency_ms,
                connections=stats,
                errors=tuple(errors + reasons),
            )
            if span is not None:
                span.set_attribute(ATTR_HEALTH_STATUS, status.value)

        self._health_cache[name] = health
        return health

    async def check_all_health(self) -> dict[str, PoolHealth]:
        names = self.pool_names()
        results = await asyncio.gather(*(self.check_health(name) for name in names))
        return dict(zip(names, results, strict=True))

    def get_cached_health(self, name: str) -> PoolHealth | None:
        return self._health_cache.get(name)

    # =========================================================================
    # Error handling and recovery
    # =========================================================================

    def handle_pool_error(self, name: str, error: BaseException | None) -> bool:
        """
        Route a pool or connection error.

        Connection-related errors schedule recovery; anything else is left to
        the caller.

        Returns:
            True if the error was connection-related
        """
        if not is_connection_error(error):
            return False
        logger.warning("Connection error on pool %s: %s", name, error)
        self.schedule_recovery(name)
        return True

    def schedule_recovery(self, name: str) -> bool:
        """
        Schedule a debounced rebuild of a pool.

        Returns:
            True if a recovery task was started, False if one is already
            pending or the pool is unknown
        """
        if name in self._pending_recoveries:
            logger.debug("Recovery already pending for pool %s", name)
            return False
        if name not in self._configs:
            logger.warning("Cannot recover unknown pool %s", name)
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; cannot schedule recovery for pool %s", name)
            return False

        self._pending_recoveries[name] = loop.create_task(
            self._recover(name), name=f"pool-recovery-{name}"
        )
        logger.info("Scheduled recovery for pool %s in %.1fs", name, self._recovery_delay)
        return True

    def is_recovery_pending(self, name: str) -> bool:
        return name in self._pending_recoveries

    async def _recover(self, name: str) -> None:
        try:
            await asyncio.sleep(self._recovery_delay)
            ready = self._ready.get(name)
            config = self._configs.get(name)
            if ready is None or config is None:
                return
            ready.clear()

            old_engine = self._engines.get(name)
            if old_engine is not None:
                try:
                    await old_engine.dispose()
                except Exception as e:
                    logger.error("Error disposing broken pool %s: %s", name, e)

            try:
                self._engines[name] = await self._open_engine(name, config)
                self._health_cache.pop(name, None)
                logger.info("Recovered pool %s", name)
            except PoolCreationError as e:
                # the disposed engine reconnects lazily; keep it registered
                logger.error("Failed to recover pool %s: %s", name, e.reason)
        finally:
            ready = self._ready.get(name)
            if ready is not None:
                ready.set()
            if self._pending_recoveries.get(name) is asyncio.current_task():
                del self._pending_recoveries[name]


__all__ = [
    "ConnectionPoolManager",
    "EngineFactory",
    "create_engine_for",
    "DEFAULT_RECOVERY_DELAY",
    "PROBE_STATEMENTS",
]
