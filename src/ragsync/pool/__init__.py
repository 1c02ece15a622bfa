"""
PostgreSQL connection pooling with health checks and automatic recovery.

Example:
    >>> from ragsync.pool import ConnectionPoolManager, PoolHealthMonitor
    >>>
    >>> manager = ConnectionPoolManager()
    >>> await manager.create_pool("primary", pg_config)
    >>> monitor = PoolHealthMonitor(manager)
    >>> monitor.start(interval=30.0)
"""

from ragsync.pool.health import (
    HealthStatus,
    PoolHealth,
    PoolHealthMonitor,
    PoolStats,
    classify_health,
)
from ragsync.pool.manager import ConnectionPoolManager, create_engine_for
from ragsync.pool.retry import RetryConfig, calculate_backoff, is_connection_error

__all__ = [
    "ConnectionPoolManager",
    "create_engine_for",
    "HealthStatus",
    "PoolHealth",
    "PoolHealthMonitor",
    "PoolStats",
    "classify_health",
    "RetryConfig",
    "calculate_backoff",
    "is_connection_error",
]
