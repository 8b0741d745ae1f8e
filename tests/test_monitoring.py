from __future__ import annotations

from types import SimpleNamespace

import psutil
import pytest

from mac_observer.config import PressureSettings
from mac_observer.monitoring import ResourceMonitor


class _FakeProcess:
    def __init__(self, rss_mb: float) -> None:
        self.rss_mb = rss_mb

    def memory_info(self) -> SimpleNamespace:
        return SimpleNamespace(rss=int(self.rss_mb * 1024 * 1024))


@pytest.fixture()
def host(monkeypatch: pytest.MonkeyPatch) -> SimpleNamespace:
    state = SimpleNamespace(cpu=10.0, memory=40.0)
    monkeypatch.setattr("mac_observer.monitoring.psutil.cpu_percent", lambda interval=None: state.cpu)
    monkeypatch.setattr(
        "mac_observer.monitoring.psutil.virtual_memory",
        lambda: SimpleNamespace(percent=state.memory),
    )
    return state


def test_snapshot_reports_process_and_host_usage(host: SimpleNamespace) -> None:
    monitor = ResourceMonitor(process=_FakeProcess(128.0))  # type: ignore[arg-type]

    snapshot = monitor.snapshot()

    assert snapshot.rss_mb == pytest.approx(128.0)
    assert snapshot.cpu_percent == 10.0
    assert snapshot.memory_percent == 40.0
    assert monitor.last_snapshot == snapshot


def test_no_pressure_within_limits(host: SimpleNamespace) -> None:
    monitor = ResourceMonitor(process=_FakeProcess(100.0))  # type: ignore[arg-type]

    assert monitor.is_under_resource_pressure() is False


def test_large_rss_is_pressure(host: SimpleNamespace) -> None:
    monitor = ResourceMonitor(process=_FakeProcess(600.0))  # type: ignore[arg-type]

    assert monitor.is_under_resource_pressure() is True


def test_busy_host_is_pressure(host: SimpleNamespace) -> None:
    monitor = ResourceMonitor(process=_FakeProcess(10.0), max_cpu_percent=80.0)  # type: ignore[arg-type]

    host.cpu = 95.0
    assert monitor.is_under_resource_pressure() is True
    host.cpu = 10.0
    host.memory = 97.0
    assert monitor.is_under_resource_pressure() is True


def test_psutil_failure_reports_no_pressure(host: SimpleNamespace) -> None:
    class _Gone:
        def memory_info(self) -> SimpleNamespace:
            raise psutil.NoSuchProcess(pid=1)

    monitor = ResourceMonitor(process=_Gone())  # type: ignore[arg-type]

    assert monitor.is_under_resource_pressure() is False
    assert monitor.last_snapshot is None


def test_from_settings_copies_thresholds(host: SimpleNamespace) -> None:
    monitor = ResourceMonitor.from_settings(
        PressureSettings(max_rss_mb=64.0, max_cpu_percent=50.0, max_memory_percent=70.0)
    )

    assert monitor.max_rss_mb == 64.0
    assert monitor.max_cpu_percent == 50.0
    assert monitor.max_memory_percent == 70.0
