from __future__ import annotations

import logging
import threading
from typing import Protocol

logger = logging.getLogger(__name__)

DEFAULT_MAX_INTERVAL = 60.0
PRESSURE_FACTOR = 1.5
RECOVERY_FACTOR = 0.9


class PressureOracle(Protocol):
    def is_under_resource_pressure(self) -> bool:
        """Report whether the host is resource constrained right now."""


class SamplingController:
    """Adaptive sampling interval shared between the worker and observers.

    The worker thread is the only writer. Under pressure the interval grows
    by half, capped at ``max_interval``; without pressure it shrinks by a
    tenth per update until it reaches the base interval again.
    """

    def __init__(
        self,
        base_interval: float,
        max_interval: float = DEFAULT_MAX_INTERVAL,
        pressure: PressureOracle | None = None,
    ) -> None:
        if base_interval <= 0:
            raise ValueError("base_interval must be positive")
        self.base_interval = float(base_interval)
        self.max_interval = max(float(max_interval), self.base_interval)
        self._pressure = pressure
        self._interval = self.base_interval
        self._lock = threading.Lock()

    def current_interval(self) -> float:
        with self._lock:
            return self._interval

    def adjust(self, under_pressure: bool) -> float:
        with self._lock:
            previous = self._interval
            if under_pressure:
                updated = min(previous * PRESSURE_FACTOR, self.max_interval)
            else:
                updated = max(previous * RECOVERY_FACTOR, self.base_interval)
            self._interval = updated

        if updated > previous:
            logger.info("reducing sampling frequency under resource pressure: %.2fs -> %.2fs", previous, updated)
        elif updated < previous:
            logger.debug("restoring sampling frequency: %.2fs -> %.2fs", previous, updated)
        return updated

    def update(self) -> float:
        """Poll the pressure oracle once and apply the result."""
        if self._pressure is None:
            return self.current_interval()
        return self.adjust(self._pressure.is_under_resource_pressure())
