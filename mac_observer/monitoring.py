from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime

import psutil

from mac_observer.config import PressureSettings
from mac_observer.models import ResourceSnapshot

logger = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


class ResourceMonitor:
    """Pressure oracle backed by psutil.

    The host counts as constrained when this process grows past
    ``max_rss_mb`` or when system-wide CPU or memory use crosses its limit.
    Sampling errors never report pressure.
    """

    def __init__(
        self,
        max_rss_mb: float = 500.0,
        max_cpu_percent: float = 90.0,
        max_memory_percent: float = 90.0,
        process: psutil.Process | None = None,
    ) -> None:
        self.max_rss_mb = max_rss_mb
        self.max_cpu_percent = max_cpu_percent
        self.max_memory_percent = max_memory_percent
        self._process = process or psutil.Process()
        self._lock = threading.Lock()
        self.last_snapshot: ResourceSnapshot | None = None
        # The first cpu_percent(None) call only primes the counters.
        try:
            psutil.cpu_percent(interval=None)
        except (psutil.Error, OSError) as exc:
            logger.debug("cpu counters unavailable: %s", exc)

    @classmethod
    def from_settings(cls, settings: PressureSettings) -> ResourceMonitor:
        return cls(
            max_rss_mb=settings.max_rss_mb,
            max_cpu_percent=settings.max_cpu_percent,
            max_memory_percent=settings.max_memory_percent,
        )

    def snapshot(self) -> ResourceSnapshot:
        with self._lock:
            rss = self._process.memory_info().rss
            snapshot = ResourceSnapshot(
                ts=datetime.now(UTC),
                rss_mb=rss / BYTES_PER_MB,
                cpu_percent=float(psutil.cpu_percent(interval=None)),
                memory_percent=float(psutil.virtual_memory().percent),
            )
            self.last_snapshot = snapshot
        return snapshot

    def is_under_resource_pressure(self) -> bool:
        try:
            snapshot = self.snapshot()
        except (psutil.Error, OSError) as exc:
            logger.debug("resource snapshot failed: %s", exc)
            return False

        reasons: list[str] = []
        if snapshot.rss_mb > self.max_rss_mb:
            reasons.append(f"rss {snapshot.rss_mb:.0f}MB")
        if snapshot.cpu_percent > self.max_cpu_percent:
            reasons.append(f"cpu {snapshot.cpu_percent:.0f}%")
        if snapshot.memory_percent > self.max_memory_percent:
            reasons.append(f"memory {snapshot.memory_percent:.0f}%")
        if reasons:
            logger.debug("resource pressure: %s", ", ".join(reasons))
        return bool(reasons)
