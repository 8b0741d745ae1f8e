from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable

from mac_observer.channel import EventReceiver, event_channel
from mac_observer.collectors import DiskCollector, LogCollector, MetricsCollector, ProcessSupervisor, RestartPolicy
from mac_observer.collectors.sampling import PressureOracle
from mac_observer.config import AppConfig
from mac_observer.errors import JoinError, SpawnError
from mac_observer.models import Event
from mac_observer.monitoring import ResourceMonitor

logger = logging.getLogger(__name__)

DRAIN_WAIT_SECONDS = 0.1

EventSink = Callable[[Event], None]


@dataclass
class _Source:
    collector: ProcessSupervisor
    receiver: EventReceiver[Any]


@dataclass(frozen=True)
class ProbeResult:
    name: str
    usable: bool
    detail: str = ""


class SystemObserver:
    """Runs every enabled collector and fans their events into one sink."""

    def __init__(
        self,
        config: AppConfig,
        pressure: PressureOracle | None = None,
        sink: EventSink | None = None,
    ) -> None:
        self.config = config
        if pressure is None and config.pressure.enabled:
            pressure = ResourceMonitor.from_settings(config.pressure)
        self.pressure = pressure
        self._sink = sink
        self._sources: dict[str, _Source] = {}
        self._started: list[str] = []
        self.counts: Counter[str] = Counter()
        self._build()

    def _restart_policy(self) -> RestartPolicy:
        settings = self.config.restart
        return RestartPolicy(
            initial_delay=settings.initial_delay_seconds,
            max_delay=settings.max_delay_seconds,
            max_consecutive_failures=settings.max_consecutive_failures,
            degraded_delay=settings.degraded_delay_seconds,
        )

    def _build(self) -> None:
        common: dict[str, Any] = {
            "pressure": self.pressure,
            "poll_interval": self.config.poll_interval,
        }
        if self.config.log.enabled:
            sender, receiver = event_channel()
            collector: ProcessSupervisor = LogCollector(
                self.config.log.predicate,
                sender,
                restart_policy=self._restart_policy(),
                **common,
            )
            self._sources["log"] = _Source(collector, receiver)
        if self.config.metrics.enabled:
            sender, receiver = event_channel()
            collector = MetricsCollector(
                sender,
                allow_fallback=self.config.metrics.allow_fallback,
                base_interval=self.config.metrics.interval_seconds,
                restart_policy=self._restart_policy(),
                **common,
            )
            self._sources["metrics"] = _Source(collector, receiver)
        if self.config.disk.enabled:
            sender, receiver = event_channel()
            collector = DiskCollector(
                sender,
                sample_count=self.config.disk.sample_count,
                enable_fs_usage=self.config.disk.enable_fs_usage,
                base_interval=self.config.disk.interval_seconds,
                restart_policy=self._restart_policy(),
                **common,
            )
            self._sources["disk"] = _Source(collector, receiver)

    @property
    def collectors(self) -> dict[str, ProcessSupervisor]:
        return {name: source.collector for name, source in self._sources.items()}

    @property
    def started(self) -> list[str]:
        return list(self._started)

    def probe(self) -> list[ProbeResult]:
        results: list[ProbeResult] = []
        for name, source in self._sources.items():
            try:
                source.collector.probe()
            except SpawnError as exc:
                results.append(ProbeResult(name, False, str(exc)))
            else:
                results.append(ProbeResult(name, True))
        return results

    def start(self) -> list[str]:
        for name, source in self._sources.items():
            if name in self._started:
                continue
            try:
                source.collector.start()
            except SpawnError as exc:
                logger.warning("%s collector unavailable: %s", name, exc)
                continue
            self._started.append(name)
        if not self._started:
            logger.error("no collector could be started")
        return self.started

    def drain(self) -> int:
        """Hand every queued event to the sink; return how many were taken."""
        taken = 0
        for source in self._sources.values():
            for event in source.receiver.drain():
                self.counts[event.source.value] += 1
                taken += 1
                if self._sink is not None:
                    self._sink(event)
        return taken

    def summary(self) -> dict[str, Any]:
        return {
            name: {
                "state": source.collector.state.value,
                "events": self.counts.get(name, 0),
                "parse_errors": source.collector.parse_errors,
                "restarts": source.collector.restarts,
                "interval": round(source.collector.sampling.current_interval(), 2),
            }
            for name, source in self._sources.items()
        }

    def run(self, stop_event: threading.Event, summary_interval: float = 60.0) -> None:
        self.start()
        try:
            last_summary = time.monotonic()
            while not stop_event.is_set():
                if self.drain() == 0:
                    stop_event.wait(timeout=DRAIN_WAIT_SECONDS)
                now = time.monotonic()
                if summary_interval > 0 and now - last_summary >= summary_interval:
                    logger.info("collector summary: %s", self.summary())
                    last_summary = now
        finally:
            self.stop()
            self.drain()
            logger.info("final collector summary: %s", self.summary())

    def stop(self) -> None:
        for name, source in self._sources.items():
            try:
                source.collector.stop()
            except JoinError:
                logger.exception("%s collector did not shut down cleanly", name)
        self._started.clear()
