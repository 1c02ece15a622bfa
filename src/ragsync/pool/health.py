"""
Pool health classification and periodic monitoring.

A pool's health combines probe latency with pool pressure:

- latency below 1000 ms is healthy, below 5000 ms degraded, else unhealthy
- a failed probe is unhealthy, with the error text recorded
- utilization above 90% or any waiting borrower is at least degraded

The most severe finding wins.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ragsync.pool.manager import ConnectionPoolManager

logger = logging.getLogger(__name__)

HEALTHY_LATENCY_MS = 1000.0
DEGRADED_LATENCY_MS = 5000.0
HIGH_UTILIZATION = 0.9


class HealthStatus(Enum):
    """Health status levels, ordered from best to worst."""

    HEALTHY = "healthy"
    """Probe is fast and the pool has headroom."""

    DEGRADED = "degraded"
    """Operational but slow or under pressure."""

    UNHEALTHY = "unhealthy"
    """Probe failed or is too slow to be useful."""

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {
    HealthStatus.HEALTHY: 0,
    HealthStatus.DEGRADED: 1,
    HealthStatus.UNHEALTHY: 2,
}


def worst(*statuses: HealthStatus) -> HealthStatus:
    return max(statuses, key=lambda status: status.severity)


@dataclass(frozen=True)
class PoolStats:
    """
    Point-in-time connection counts for a pool.

    Attributes:
        total: Connections currently open (checked out plus idle)
        idle: Connections sitting in the pool
        active: Connections checked out by borrowers
        waiting: Borrowers blocked waiting for a connection
        max_size: Configured upper bound on connections
    """

    total: int = 0
    idle: int = 0
    active: int = 0
    waiting: int = 0
    max_size: int = 0

    @property
    def utilization(self) -> float:
        if self.total <= 0:
            return 0.0
        return (self.total - self.idle) / self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "idle": self.idle,
            "active": self.active,
            "waiting": self.waiting,
            "max": self.max_size,
            "utilization": round(self.utilization, 3),
        }


@dataclass(frozen=True)
class PoolHealth:
    """Result of one health probe against a named pool."""

    pool_name: str
    status: HealthStatus
    latency_ms: float | None
    connections: PoolStats
    last_check: datetime = field(default_factory=lambda: datetime.now(UTC))
    errors: tuple[str, ...] = ()

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            "pool": self.pool_name,
            "status": self.status.value,
            "latencyMs": self.latency_ms,
            "connections": self.connections.to_dict(),
            "lastCheck": self.last_check.isoformat(),
            "errors": list(self.errors),
        }


def classify_health(latency_ms: float | None, stats: PoolStats) -> tuple[HealthStatus, list[str]]:
    """
    Classify a pool from probe latency and connection counts.

    Args:
        latency_ms: Probe latency, or None if the probe failed
        stats: Connection counts at probe time

    Returns:
        Tuple of (status, reasons) where reasons explain any non-healthy finding
    """
    reasons: list[str] = []

    if latency_ms is None:
        status = HealthStatus.UNHEALTHY
    elif latency_ms < HEALTHY_LATENCY_MS:
        status = HealthStatus.HEALTHY
    elif latency_ms < DEGRADED_LATENCY_MS:
        status = HealthStatus.DEGRADED
        reasons.append(f"High latency: {latency_ms:.0f}ms")
    else:
        status = HealthStatus.UNHEALTHY
        reasons.append(f"Very high latency: {latency_ms:.0f}ms")

    if stats.utilization > HIGH_UTILIZATION:
        status = worst(status, HealthStatus.DEGRADED)
        reasons.append(f"High pool utilization: {stats.utilization:.0%}")

    if stats.waiting > 0:
        status = worst(status, HealthStatus.DEGRADED)
        reasons.append(f"{stats.waiting} clients waiting for connections")

    return status, reasons


class PoolHealthMonitor:
    """
    Periodically probes every pool and triggers recovery on repeated failure.

    A pool that reports UNHEALTHY on ``max_consecutive_failures`` checks in a
    row has recovery scheduled on the manager, and its counter resets.

    Example:
        >>> monitor = PoolHealthMonitor(manager, max_consecutive_failures=3)
        >>> monitor.start(interval=30.0)
        >>> ...
        >>> await monitor.stop()
    """

    def __init__(
        self,
        manager: ConnectionPoolManager,
        max_consecutive_failures: int = 3,
    ) -> None:
        if max_consecutive_failures < 1:
            raise ValueError(
                f"max_consecutive_failures must be >= 1, got {max_consecutive_failures}."
            )
        self._manager = manager
        self._max_consecutive_failures = max_consecutive_failures
        self._consecutive_failures: dict[str, int] = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def consecutive_failures(self, pool_name: str) -> int:
        return self._consecutive_failures.get(pool_name, 0)

    def start(self, interval: float = 30.0) -> None:
        """Start the background probe loop. Calling start twice is a no-op."""
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}.")
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(interval), name="pool-health-monitor")
        logger.info("Pool health monitor started (interval=%.1fs)", interval)

    async def stop(self) -> None:
        """Cancel the probe loop and wait for it to finish."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
        logger.info("Pool health monitor stopped")

    async def check_once(self) -> dict[str, PoolHealth]:
        """Probe every pool once and act on the results."""
        results = await self._manager.check_all_health()
        for name, health in results.items():
            if health.status == HealthStatus.HEALTHY:
                self._consecutive_failures.pop(name, None)
                continue

            if health.status == HealthStatus.DEGRADED:
                logger.warning(
                    "Pool %s is degraded: %s", name, "; ".join(health.errors) or "no details"
                )
                continue

            failures = self._consecutive_failures.get(name, 0) + 1
            self._consecutive_failures[name] = failures
            logger.error(
                "Pool %s is unhealthy (%d/%d): %s",
                name,
                failures,
                self._max_consecutive_failures,
                "; ".join(health.errors) or "no details",
            )
            if failures >= self._max_consecutive_failures:
                logger.warning(
                    "Pool %s failed %d consecutive health checks, scheduling recovery",
                    name,
                    failures,
                )
                self._consecutive_failures[name] = 0
                self._manager.schedule_recovery(name)
        return results

    async def _run(self, interval: float) -> None:
        while True:
            try:
                await self.check_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "Error in pool health monitor loop",
                    extra={"error": str(e)},
                )
            await asyncio.sleep(interval)


__all__ = [
    "HealthStatus",
    "PoolStats",
    "PoolHealth",
    "PoolHealthMonitor",
    "classify_health",
    "worst",
    "HEALTHY_LATENCY_MS",
    "DEGRADED_LATENCY_MS",
    "HIGH_UTILIZATION",
]
