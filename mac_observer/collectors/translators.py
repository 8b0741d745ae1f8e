"""Per-source translation of framed records into events.

Every primary translator either returns an event or raises ``ParseError``;
callers drop the record and move on. ``parse_fs_usage_line`` is best-effort
and returns ``None`` for anything it does not recognize.
"""

from __future__ import annotations

import plistlib
from datetime import UTC, datetime
from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mac_observer.collectors.framing import PLIST_HEADER
from mac_observer.errors import ParseError
from mac_observer.models import DiskEvent, LogEvent, MemoryPressure, MessageType, MetricsEvent

LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f%z"

MESSAGE_TYPES = {
    "error": MessageType.ERROR,
    "fault": MessageType.FAULT,
    "info": MessageType.INFO,
    "default": MessageType.INFO,
    "debug": MessageType.DEBUG,
}

PRESSURE_LABELS = {
    "normal": MemoryPressure.NORMAL,
    "warning": MemoryPressure.WARNING,
    "critical": MemoryPressure.CRITICAL,
}

CRITICAL_FREE_MB = 500.0
WARNING_FREE_MB = 2000.0


def _decode(record: bytes) -> str:
    try:
        return record.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(f"record is not valid UTF-8: {exc}") from exc


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def _number(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return float(value)
    except OverflowError as exc:
        raise ParseError("number out of float range") from exc


class _RawLogEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    timestamp: str
    message_type: str = Field(alias="messageType")
    subsystem: str = ""
    category: str = ""
    process: str | None = None
    process_image_path: str = Field(default="", alias="processImagePath")
    process_id: int = Field(alias="processID")
    message: str | None = None
    event_message: str | None = Field(default=None, alias="eventMessage")


def parse_log_line(record: bytes) -> LogEvent:
    """Translate one ``log stream --style ndjson`` line."""
    try:
        raw = _RawLogEntry.model_validate_json(record)
    except ValidationError as exc:
        raise ParseError(f"invalid log record: {exc.error_count()} errors") from exc

    message_type = MESSAGE_TYPES.get(raw.message_type.lower())
    if message_type is None:
        raise ParseError(f"unknown message type: {raw.message_type!r}")

    try:
        timestamp = datetime.strptime(raw.timestamp, LOG_TIMESTAMP_FORMAT)
    except ValueError as exc:
        raise ParseError(f"unparseable timestamp {raw.timestamp!r}") from exc

    message = raw.message if raw.message is not None else raw.event_message
    if message is None:
        raise ParseError("log record has no message")
    process = raw.process if raw.process is not None else PurePosixPath(raw.process_image_path).name

    try:
        return LogEvent(
            timestamp=timestamp,
            message_type=message_type,
            subsystem=raw.subsystem,
            category=raw.category,
            process=process,
            process_id=raw.process_id,
            message=message,
        )
    except ValidationError as exc:
        raise ParseError(str(exc)) from exc


def _memory_pressure(memory: dict[str, Any]) -> MemoryPressure:
    label = memory.get("memory_pressure")
    if isinstance(label, str):
        return PRESSURE_LABELS.get(label.lower(), MemoryPressure.NORMAL)
    free_mb = _number(memory.get("free_memory_mb"))
    if free_mb is None:
        return MemoryPressure.NORMAL
    if free_mb < CRITICAL_FREE_MB:
        return MemoryPressure.CRITICAL
    if free_mb < WARNING_FREE_MB:
        return MemoryPressure.WARNING
    return MemoryPressure.NORMAL


def _memory_used_mb(memory: dict[str, Any]) -> float:
    used = _number(memory.get("used_memory_mb"))
    if used is not None:
        return used
    total = _number(memory.get("total_memory_mb"))
    free = _number(memory.get("free_memory_mb"))
    if total is not None and free is not None:
        return total - free
    return 0.0


def parse_metrics_plist(record: bytes) -> MetricsEvent:
    """Translate one ``powermetrics --format plist`` sample.

    Optional sections are estimated from what is present: CPU usage from CPU
    power, GPU usage from GPU power, memory pressure from free memory.
    """
    try:
        root = plistlib.loads(record.strip(b"\x00"), fmt=plistlib.FMT_XML)
    except Exception as exc:
        # Malformed elements surface as AttributeError or KeyError from plistlib, not just parse errors.
        raise ParseError(f"invalid plist document: {exc}") from exc
    if not isinstance(root, dict):
        raise ParseError("plist root is not a dictionary")

    processor = root.get("processor")
    if not isinstance(processor, dict):
        raise ParseError("missing processor section")
    cpu_power = _number(processor.get("cpu_power"))
    if cpu_power is None:
        raise ParseError("missing or invalid processor.cpu_power")
    cpu_usage = _number(processor.get("cpu_usage"))
    if cpu_usage is None:
        # Typical laptop CPU power of 0-5000mW maps onto 0-100% usage.
        cpu_usage = cpu_power / 50.0

    gpu_power: float | None = None
    gpu_usage: float | None = None
    gpu = root.get("gpu")
    if isinstance(gpu, dict):
        gpu_power = _number(gpu.get("gpu_power"))
        gpu_usage = _number(gpu.get("gpu_usage"))
        if gpu_usage is None and gpu_power is not None:
            gpu_usage = gpu_power / 100.0

    memory = root.get("memory")
    if isinstance(memory, dict):
        pressure = _memory_pressure(memory)
        used_mb = _memory_used_mb(memory)
    else:
        pressure = MemoryPressure.NORMAL
        used_mb = 0.0

    sampled_at = root.get("timestamp")
    extra: dict[str, Any] = {}
    if isinstance(sampled_at, datetime):
        extra["timestamp"] = sampled_at if sampled_at.tzinfo else sampled_at.replace(tzinfo=UTC)

    try:
        return MetricsEvent(
            cpu_power_mw=cpu_power,
            cpu_usage_percent=_clamp_percent(cpu_usage),
            gpu_power_mw=gpu_power,
            gpu_usage_percent=_clamp_percent(gpu_usage) if gpu_usage is not None else None,
            memory_pressure=pressure,
            memory_used_mb=used_mb,
            energy_impact=cpu_power + (gpu_power or 0.0),
            **extra,
        )
    except ValidationError as exc:
        raise ParseError(str(exc)) from exc


class _RawMetricsEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    timestamp: datetime | None = None
    cpu_power_mw: float
    cpu_usage_percent: float = 0.0
    gpu_power_mw: float | None = None
    gpu_usage_percent: float | None = None
    memory_pressure: str = ""
    memory_used_mb: float = 0.0
    energy_impact: float = 0.0


def parse_metrics_json(record: bytes) -> MetricsEvent:
    """Translate one JSON line from the ``vm_stat`` fallback source."""
    try:
        raw = _RawMetricsEntry.model_validate_json(record)
    except ValidationError as exc:
        raise ParseError(f"invalid metrics JSON: {exc.error_count()} errors") from exc

    if raw.memory_pressure:
        pressure = PRESSURE_LABELS.get(raw.memory_pressure.lower())
        if pressure is None:
            raise ParseError(f"unknown memory pressure: {raw.memory_pressure!r}")
    else:
        pressure = MemoryPressure.NORMAL

    energy = raw.energy_impact if raw.energy_impact > 0 else raw.cpu_power_mw + (raw.gpu_power_mw or 0.0)
    extra: dict[str, Any] = {}
    if raw.timestamp is not None:
        extra["timestamp"] = raw.timestamp
    try:
        return MetricsEvent(
            cpu_power_mw=raw.cpu_power_mw,
            cpu_usage_percent=_clamp_percent(raw.cpu_usage_percent),
            gpu_power_mw=raw.gpu_power_mw,
            gpu_usage_percent=raw.gpu_usage_percent,
            memory_pressure=pressure,
            memory_used_mb=raw.memory_used_mb,
            energy_impact=energy,
            **extra,
        )
    except ValidationError as exc:
        raise ParseError(str(exc)) from exc


def parse_metrics_record(record: bytes) -> MetricsEvent:
    if record.lstrip(b"\x00\r\n\t ").startswith(PLIST_HEADER[:5]):
        return parse_metrics_plist(record)
    return parse_metrics_json(record)


def parse_iostat_line(record: bytes) -> DiskEvent:
    """Translate one ``device KB/t tps MB/s-read MB/s-write`` row.

    iostat does not separate read and write operations, so the transfer rate
    is apportioned by the read/write byte ratio.
    """
    fields = _decode(record).split()
    if len(fields) < 5:
        raise ParseError(f"expected 5 columns, got {len(fields)}")
    device = fields[0]
    try:
        _kb_per_transfer, transfers, mb_read, mb_write = (float(value) for value in fields[1:5])
    except ValueError as exc:
        raise ParseError(f"non-numeric iostat column in {fields[1:5]}") from exc

    read_kb = mb_read * 1024.0
    write_kb = mb_write * 1024.0
    total_kb = read_kb + write_kb
    read_ratio = read_kb / total_kb if total_kb > 0 else 0.5

    try:
        return DiskEvent(
            read_kb_per_sec=read_kb,
            write_kb_per_sec=write_kb,
            read_ops_per_sec=transfers * read_ratio,
            write_ops_per_sec=transfers * (1.0 - read_ratio),
            disk_name=device,
        )
    except ValidationError as exc:
        raise ParseError(str(exc)) from exc


def parse_fs_usage_line(record: bytes) -> DiskEvent | None:
    """Best-effort read/write extraction from ``fs_usage`` output.

    fs_usage lines are noisy and their layout varies between releases; lines
    that do not mention a read or write are ignored rather than rejected.
    """
    tokens = record.decode("utf-8", errors="replace").split()
    if len(tokens) < 4:
        return None
    lowered = [token.lower() for token in tokens]
    is_read = "read" in lowered
    is_write = "write" in lowered
    if not is_read and not is_write:
        return None

    path = next((token for token in reversed(tokens) if token.startswith("/")), None)
    size_bytes = 0.0
    for token in reversed(tokens):
        try:
            size_bytes = float(token)
        except ValueError:
            continue
        if size_bytes >= 0:
            break
        size_bytes = 0.0

    kb = size_bytes / 1024.0
    if is_read and not is_write:
        rates = (kb, 0.0, 1.0, 0.0)
    elif is_write and not is_read:
        rates = (0.0, kb, 0.0, 1.0)
    else:
        rates = (kb / 2.0, kb / 2.0, 1.0, 1.0)

    try:
        return DiskEvent(
            read_kb_per_sec=rates[0],
            write_kb_per_sec=rates[1],
            read_ops_per_sec=rates[2],
            write_ops_per_sec=rates[3],
            disk_name="fs_usage",
            filesystem_path=path,
        )
    except ValidationError:
        return None
