from __future__ import annotations

import logging
import math
import subprocess
from typing import Any

from mac_observer.channel import EventSender
from mac_observer.collectors.framing import split_lines, split_plist_documents
from mac_observer.collectors.supervisor import ProcessSupervisor, spawn_tool
from mac_observer.collectors.translators import parse_metrics_record
from mac_observer.errors import SpawnError
from mac_observer.models import MetricsEvent

logger = logging.getLogger(__name__)

POWERMETRICS_BIN = "/usr/bin/powermetrics"
SAMPLERS = "cpu_power,gpu_power,tasks"
SUDO_CHECK_TIMEOUT = 5.0

# Free page thresholds mirror the free-memory thresholds used for plist samples
# (4 KiB pages: 100k ~ 400 MB, 500k ~ 2 GB).
FALLBACK_SCRIPT = """
while true; do
    FREE_PAGES=$(vm_stat | awk '/Pages free:/ {{ gsub(/\\./, "", $3); print $3 }}')
    FREE_PAGES=${{FREE_PAGES:-0}}
    if [ "$FREE_PAGES" -lt 100000 ]; then
        PRESSURE="Critical"
    elif [ "$FREE_PAGES" -lt 500000 ]; then
        PRESSURE="Warning"
    else
        PRESSURE="Normal"
    fi
    printf '{{"timestamp": "%s", "cpu_power_mw": 0.0, "gpu_power_mw": null, "memory_pressure": "%s"}}\\n' \\
        "$(date -u +%Y-%m-%dT%H:%M:%SZ)" "$PRESSURE"
    sleep {interval}
done
"""


def powermetrics_command(interval: float) -> list[str]:
    sample_rate_ms = max(1, int(round(interval * 1000)))
    return [
        "sudo",
        "-n",
        POWERMETRICS_BIN,
        "--samplers",
        SAMPLERS,
        "--format",
        "plist",
        "--sample-rate",
        str(sample_rate_ms),
    ]


def fallback_command(interval: float) -> list[str]:
    return ["/bin/sh", "-c", FALLBACK_SCRIPT.format(interval=max(1, math.ceil(interval)))]


def powermetrics_available(timeout: float = SUDO_CHECK_TIMEOUT) -> bool:
    """True when powermetrics can run under passwordless sudo."""
    try:
        result = subprocess.run(
            ["sudo", "-n", POWERMETRICS_BIN, "--help"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("powermetrics sudo check failed: %s", exc)
        return False
    return result.returncode == 0


class MetricsCollector(ProcessSupervisor):
    """Samples CPU/GPU power through ``powermetrics`` plist output.

    Without passwordless sudo the collector either refuses to spawn or, when
    ``allow_fallback`` is set, runs a ``vm_stat`` loop that only reports
    memory pressure.
    """

    def __init__(
        self,
        channel: EventSender[MetricsEvent],
        *,
        allow_fallback: bool = True,
        **options: Any,
    ) -> None:
        self.allow_fallback = allow_fallback
        self.fallback_active = False
        super().__init__(
            "metrics",
            self._spawn_metrics,
            self._split,
            parse_metrics_record,
            channel,
            **options,
        )

    def _spawn_metrics(self, interval: float) -> subprocess.Popen[bytes]:
        if powermetrics_available():
            self.fallback_active = False
            return spawn_tool(powermetrics_command(interval))
        if not self.allow_fallback:
            raise SpawnError("powermetrics requires passwordless sudo (sudo -n powermetrics)")
        if not self.fallback_active:
            logger.warning("powermetrics unavailable without a password, falling back to vm_stat")
        self.fallback_active = True
        return spawn_tool(fallback_command(interval))

    def _split(self, data: bytes) -> tuple[list[bytes], bytes]:
        if self.fallback_active:
            return split_lines(data)
        return split_plist_documents(data)
