from __future__ import annotations

import subprocess
from typing import Any

from mac_observer.channel import EventSender
from mac_observer.collectors.framing import split_lines
from mac_observer.collectors.supervisor import ProcessSupervisor, spawn_tool
from mac_observer.collectors.translators import parse_log_line
from mac_observer.models import LogEvent

LOG_BIN = "/usr/bin/log"


def log_stream_command(predicate: str) -> list[str]:
    return [LOG_BIN, "stream", "--predicate", predicate, "--style", "ndjson"]


class LogCollector(ProcessSupervisor):
    """Streams the unified log through ``log stream`` as one event per line."""

    def __init__(self, predicate: str, channel: EventSender[LogEvent], **options: Any) -> None:
        self.predicate = predicate
        super().__init__(
            "log",
            self._spawn_log_stream,
            split_lines,
            parse_log_line,
            channel,
            **options,
        )

    def _spawn_log_stream(self, interval: float) -> subprocess.Popen[bytes]:
        # log stream pushes entries as they happen; the sampling interval does not apply.
        del interval
        return spawn_tool(log_stream_command(self.predicate))
