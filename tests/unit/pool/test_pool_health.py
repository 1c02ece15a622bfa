"""
Unit tests for pool health classification and the health monitor.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ragsync.pool import (
    HealthStatus,
    PoolHealth,
    PoolHealthMonitor,
    PoolStats,
    classify_health,
)
from ragsync.pool.health import worst


def _health(name: str, status: HealthStatus) -> PoolHealth:
    return PoolHealth(pool_name=name, status=status, latency_ms=None, connections=PoolStats())


class TestClassifyHealth:
    @pytest.mark.parametrize(
        "latency,expected",
        [
            (0.5, HealthStatus.HEALTHY),
            (999.9, HealthStatus.HEALTHY),
            (1000.0, HealthStatus.DEGRADED),
            (4999.0, HealthStatus.DEGRADED),
            (5000.0, HealthStatus.UNHEALTHY),
            (None, HealthStatus.UNHEALTHY),
        ],
    )
    def test_latency_thresholds(self, latency, expected):
        status, _ = classify_health(latency, PoolStats(max_size=10))
        assert status == expected

    def test_latency_reasons(self):
        _, reasons = classify_health(1500.0, PoolStats(max_size=10))
        assert reasons == ["High latency: 1500ms"]
        _, reasons = classify_health(6000.0, PoolStats(max_size=10))
        assert reasons[0].startswith("Very high latency")

    def test_failed_probe_adds_no_reason(self):
        assert classify_health(None, PoolStats()) == (HealthStatus.UNHEALTHY, [])

    def test_high_utilization_degrades(self):
        status, reasons = classify_health(5.0, PoolStats(active=19, idle=0, total=19, max_size=20))
        assert status == HealthStatus.DEGRADED
        assert reasons == ["High pool utilization: 95%"]

    def test_fully_checked_out_pool_below_max_degrades(self):
        stats = PoolStats(total=1, idle=0, active=1, max_size=10)

        status, reasons = classify_health(5.0, stats)

        assert stats.utilization == 1.0
        assert status == HealthStatus.DEGRADED
        assert reasons == ["High pool utilization: 100%"]

    def test_mostly_idle_pool_is_healthy(self):
        stats = PoolStats(total=10, idle=9, active=1, max_size=10)
        assert classify_health(5.0, stats) == (HealthStatus.HEALTHY, [])

    def test_waiting_clients_degrade(self):
        status, reasons = classify_health(5.0, PoolStats(waiting=2, max_size=20))
        assert status == HealthStatus.DEGRADED
        assert reasons == ["2 clients waiting for connections"]

    def test_pressure_does_not_improve_unhealthy(self):
        status, _ = classify_health(None, PoolStats(waiting=1, max_size=1, active=1))
        assert status == HealthStatus.UNHEALTHY

    def test_worst(self):
        assert worst(HealthStatus.HEALTHY, HealthStatus.DEGRADED) == HealthStatus.DEGRADED
        assert worst(HealthStatus.UNHEALTHY, HealthStatus.HEALTHY) == HealthStatus.UNHEALTHY


class TestPoolStatsAndHealth:
    def test_utilization_without_connections(self):
        assert PoolStats().utilization == 0.0

    def test_to_dict(self):
        stats = PoolStats(total=3, idle=2, active=1, waiting=0, max_size=4)
        health = PoolHealth(
            pool_name="primary",
            status=HealthStatus.HEALTHY,
            latency_ms=1.5,
            connections=stats,
        )
        payload = health.to_dict()
        assert payload["pool"] == "primary"
        assert payload["status"] == "healthy"
        assert payload["latencyMs"] == 1.5
        assert payload["connections"] == {
            "total": 3,
            "idle": 2,
            "active": 1,
            "waiting": 0,
            "max": 4,
            "utilization": 0.333,
        }
        assert payload["errors"] == []
        assert health.is_healthy


class TestPoolHealthMonitor:
    @pytest.fixture
    def manager(self):
        manager = MagicMock()
        manager.check_all_health = AsyncMock()
        return manager

    def test_threshold_must_be_positive(self, manager):
        with pytest.raises(ValueError):
            PoolHealthMonitor(manager, max_consecutive_failures=0)

    @pytest.mark.asyncio
    async def test_recovery_after_consecutive_failures(self, manager):
        manager.check_all_health.return_value = {"p": _health("p", HealthStatus.UNHEALTHY)}
        monitor = PoolHealthMonitor(manager, max_consecutive_failures=3)

        await monitor.check_once()
        await monitor.check_once()
        assert monitor.consecutive_failures("p") == 2
        manager.schedule_recovery.assert_not_called()

        await monitor.check_once()
        manager.schedule_recovery.assert_called_once_with("p")
        assert monitor.consecutive_failures("p") == 0

    @pytest.mark.asyncio
    async def test_healthy_check_resets_counter(self, manager):
        monitor = PoolHealthMonitor(manager, max_consecutive_failures=2)
        manager.check_all_health.return_value = {"p": _health("p", HealthStatus.UNHEALTHY)}
        await monitor.check_once()
        manager.check_all_health.return_value = {"p": _health("p", HealthStatus.HEALTHY)}
        await monitor.check_once()
        manager.check_all_health.return_value = {"p": _health("p", HealthStatus.UNHEALTHY)}
        await monitor.check_once()

        assert monitor.consecutive_failures("p") == 1
        manager.schedule_recovery.assert_not_called()

    @pytest.mark.asyncio
    async def test_degraded_does_not_count(self, manager):
        manager.check_all_health.return_value = {"p": _health("p", HealthStatus.DEGRADED)}
        monitor = PoolHealthMonitor(manager, max_consecutive_failures=1)

        await monitor.check_once()

        assert monitor.consecutive_failures("p") == 0
        manager.schedule_recovery.assert_not_called()

    @pytest.mark.asyncio
    async def test_start_and_stop(self, manager):
        manager.check_all_health.return_value = {}
        monitor = PoolHealthMonitor(manager)

        monitor.start(interval=0.01)
        monitor.start(interval=0.01)
        await asyncio.sleep(0.05)
        assert monitor.is_running

        await monitor.stop()
        assert not monitor.is_running
        assert manager.check_all_health.await_count >= 1

    @pytest.mark.asyncio
    async def test_loop_survives_errors(self, manager):
        manager.check_all_health.side_effect = RuntimeError("boom")
        monitor = PoolHealthMonitor(manager)

        monitor.start(interval=0.01)
        await asyncio.sleep(0.05)

        assert monitor.is_running
        assert manager.check_all_health.await_count >= 2
        await monitor.stop()

    def test_invalid_interval(self, manager):
        with pytest.raises(ValueError):
            PoolHealthMonitor(manager).start(interval=0)
