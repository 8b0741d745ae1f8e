from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Source(str, Enum):
    LOG = "log"
    METRICS = "metrics"
    DISK = "disk"


class MessageType(str, Enum):
    ERROR = "error"
    FAULT = "fault"
    INFO = "info"
    DEBUG = "debug"


class MemoryPressure(str, Enum):
    NORMAL = "Normal"
    WARNING = "Warning"
    CRITICAL = "Critical"


def _now() -> datetime:
    return datetime.now(UTC)


class LogEvent(BaseModel):
    """One entry from the unified log."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: datetime
    message_type: MessageType
    subsystem: str
    category: str
    process: str
    process_id: int = Field(ge=0)
    message: str

    @property
    def source(self) -> Source:
        return Source.LOG


class MetricsEvent(BaseModel):
    """Point-in-time power and memory sample."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: datetime = Field(default_factory=_now)
    cpu_power_mw: float
    cpu_usage_percent: float = Field(ge=0.0, le=100.0)
    gpu_power_mw: float | None = None
    gpu_usage_percent: float | None = Field(default=None, ge=0.0, le=100.0)
    memory_pressure: MemoryPressure = MemoryPressure.NORMAL
    memory_used_mb: float = 0.0
    energy_impact: float = 0.0

    @property
    def source(self) -> Source:
        return Source.METRICS


class DiskEvent(BaseModel):
    """Disk throughput sample for one device, or one filesystem operation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    timestamp: datetime = Field(default_factory=_now)
    read_kb_per_sec: float = Field(ge=0.0)
    write_kb_per_sec: float = Field(ge=0.0)
    read_ops_per_sec: float = Field(ge=0.0)
    write_ops_per_sec: float = Field(ge=0.0)
    disk_name: str = Field(min_length=1)
    filesystem_path: str | None = None

    @property
    def source(self) -> Source:
        return Source.DISK


Event = LogEvent | MetricsEvent | DiskEvent


class ResourceSnapshot(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    ts: datetime = Field(default_factory=_now)
    rss_mb: float
    cpu_percent: float
    memory_percent: float
