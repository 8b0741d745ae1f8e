from __future__ import annotations

import logging
import math
import subprocess
from typing import Any

from mac_observer.channel import EventSender
from mac_observer.collectors.framing import split_lines
from mac_observer.collectors.restart import RestartPolicy
from mac_observer.collectors.supervisor import ProcessSupervisor, spawn_tool
from mac_observer.collectors.translators import parse_fs_usage_line, parse_iostat_line
from mac_observer.errors import JoinError, SpawnError
from mac_observer.models import DiskEvent

logger = logging.getLogger(__name__)

IOSTAT_BIN = "/usr/sbin/iostat"
FS_USAGE_BIN = "/usr/bin/fs_usage"
DEFAULT_SAMPLE_COUNT = 1_000_000
FS_USAGE_MAX_FAILURES = 3


def iostat_command(interval: float, sample_count: int = DEFAULT_SAMPLE_COUNT) -> list[str]:
    wait_seconds = max(1, math.ceil(interval))
    return [IOSTAT_BIN, "-d", "-c", str(sample_count), "-w", str(wait_seconds)]


def fs_usage_command() -> list[str]:
    return ["sudo", "-n", FS_USAGE_BIN, "-w", "-f", "filesystem"]


def _spawn_fs_usage(interval: float) -> subprocess.Popen[bytes]:
    del interval
    return spawn_tool(fs_usage_command())


class DiskCollector(ProcessSupervisor):
    """Disk throughput from ``iostat`` plus an optional ``fs_usage`` watcher.

    The watcher is a separate supervisor feeding the same channel. It needs
    passwordless sudo, so failing to start it only costs the per-path events.
    """

    def __init__(
        self,
        channel: EventSender[DiskEvent],
        *,
        sample_count: int = DEFAULT_SAMPLE_COUNT,
        enable_fs_usage: bool = False,
        **options: Any,
    ) -> None:
        if sample_count < 1:
            raise ValueError("sample_count must be >= 1")
        self.sample_count = sample_count
        super().__init__(
            "disk",
            self._spawn_iostat,
            split_lines,
            parse_iostat_line,
            channel,
            **options,
        )
        self.fs_usage: ProcessSupervisor | None = None
        if enable_fs_usage:
            self.fs_usage = ProcessSupervisor(
                "fs_usage",
                _spawn_fs_usage,
                split_lines,
                parse_fs_usage_line,
                channel,
                restart_policy=RestartPolicy(max_consecutive_failures=FS_USAGE_MAX_FAILURES),
                poll_interval=self._poll_interval,
                probe_grace=self._probe_grace,
            )

    def _spawn_iostat(self, interval: float) -> subprocess.Popen[bytes]:
        return spawn_tool(iostat_command(interval, self.sample_count))

    def start(self) -> None:
        super().start()
        if self.fs_usage is None or self.fs_usage.is_running():
            return
        try:
            self.fs_usage.start()
        except SpawnError as exc:
            logger.warning("fs_usage monitoring disabled: %s", exc)

    def stop(self) -> None:
        if self.fs_usage is not None:
            try:
                self.fs_usage.stop()
            except JoinError:
                logger.exception("fs_usage watcher did not shut down cleanly")
        super().stop()
