from __future__ import annotations

import os
import stat
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError, ValidationInfo, field_validator

DEFAULT_DATA_DIR = Path.home() / ".mac_observer"
DEFAULT_CONFIG_PATH = DEFAULT_DATA_DIR / "config.toml"
DEFAULT_LOG_PREDICATE = "messageType == error OR messageType == fault"


class LogSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    enabled: bool = True
    predicate: str = DEFAULT_LOG_PREDICATE

    @field_validator("predicate")
    @classmethod
    def validate_predicate(cls, value: str) -> str:
        predicate = value.strip()
        if not predicate:
            raise ValueError("log predicate must not be empty")
        return predicate


class MetricsSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    enabled: bool = True
    interval_seconds: float = Field(default=1.0, gt=0, le=60)
    allow_fallback: bool = True


class DiskSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    enabled: bool = True
    interval_seconds: float = Field(default=1.0, gt=0, le=60)
    sample_count: int = Field(default=1_000_000, ge=1)
    enable_fs_usage: bool = False


class PressureSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    enabled: bool = True
    max_rss_mb: float = Field(default=500.0, gt=0)
    max_cpu_percent: float = Field(default=90.0, gt=0, le=100)
    max_memory_percent: float = Field(default=90.0, gt=0, le=100)


class RestartSettings(BaseModel):
    model_config = ConfigDict(extra="forbid", strict=True)

    initial_delay_seconds: float = Field(default=1.0, gt=0)
    max_delay_seconds: float = Field(default=60.0, gt=0)
    max_consecutive_failures: int = Field(default=5, ge=1, le=100)
    degraded_delay_seconds: float = Field(default=60.0, gt=0)

    @field_validator("max_delay_seconds")
    @classmethod
    def validate_max_delay(cls, value: float, info: ValidationInfo) -> float:
        initial = info.data.get("initial_delay_seconds")
        if initial is not None and value < initial:
            raise ValueError("max_delay_seconds must be >= initial_delay_seconds")
        return value


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    _data_dir: Path = PrivateAttr(default=DEFAULT_DATA_DIR)

    log: LogSettings = Field(default_factory=LogSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)
    disk: DiskSettings = Field(default_factory=DiskSettings)
    pressure: PressureSettings = Field(default_factory=PressureSettings)
    restart: RestartSettings = Field(default_factory=RestartSettings)
    poll_interval_ms: int = Field(default=50, ge=1, le=1000, strict=True)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"invalid boolean: {raw}")


_ENV_MAPPING: dict[str, tuple[str | None, str, str]] = {
    "MAC_OBSERVER_LOG_ENABLED": ("log", "enabled", "bool"),
    "MAC_OBSERVER_LOG_PREDICATE": ("log", "predicate", "str"),
    "MAC_OBSERVER_METRICS_ENABLED": ("metrics", "enabled", "bool"),
    "MAC_OBSERVER_METRICS_INTERVAL": ("metrics", "interval_seconds", "float"),
    "MAC_OBSERVER_METRICS_ALLOW_FALLBACK": ("metrics", "allow_fallback", "bool"),
    "MAC_OBSERVER_DISK_ENABLED": ("disk", "enabled", "bool"),
    "MAC_OBSERVER_DISK_INTERVAL": ("disk", "interval_seconds", "float"),
    "MAC_OBSERVER_DISK_SAMPLE_COUNT": ("disk", "sample_count", "int"),
    "MAC_OBSERVER_ENABLE_FS_USAGE": ("disk", "enable_fs_usage", "bool"),
    "MAC_OBSERVER_PRESSURE_ENABLED": ("pressure", "enabled", "bool"),
    "MAC_OBSERVER_MAX_RSS_MB": ("pressure", "max_rss_mb", "float"),
    "MAC_OBSERVER_MAX_CPU_PERCENT": ("pressure", "max_cpu_percent", "float"),
    "MAC_OBSERVER_MAX_MEMORY_PERCENT": ("pressure", "max_memory_percent", "float"),
    "MAC_OBSERVER_MAX_CONSECUTIVE_FAILURES": ("restart", "max_consecutive_failures", "int"),
    "MAC_OBSERVER_POLL_INTERVAL_MS": (None, "poll_interval_ms", "int"),
}


def _env_overrides() -> dict[str, Any]:
    out: dict[str, Any] = {}
    for env_name, (section, field_name, kind) in _ENV_MAPPING.items():
        raw = os.getenv(env_name)
        if raw is None:
            continue
        value: Any
        if kind == "int":
            value = int(raw)
        elif kind == "float":
            value = float(raw)
        elif kind == "bool":
            value = _parse_bool(raw)
        else:
            value = raw
        if section is None:
            out[field_name] = value
        else:
            out.setdefault(section, {})[field_name] = value
    return out


def _merge(parsed: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    merged = dict(parsed)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(value, dict) and isinstance(current, dict):
            merged[key] = {**current, **value}
        else:
            merged[key] = value
    return merged


def secure_path(path: Path, mode: int) -> None:
    path.chmod(mode)
    actual = stat.S_IMODE(path.stat().st_mode)
    if actual != mode:
        raise PermissionError(f"failed to enforce permissions {oct(mode)} on {path}")


def default_config_toml() -> str:
    return f"""poll_interval_ms = 50

[log]
enabled = true
predicate = "{DEFAULT_LOG_PREDICATE}"

[metrics]
enabled = true
interval_seconds = 1.0
allow_fallback = true

[disk]
enabled = true
interval_seconds = 1.0
sample_count = 1000000
enable_fs_usage = false

[pressure]
enabled = true
max_rss_mb = 500.0
max_cpu_percent = 90.0
max_memory_percent = 90.0

[restart]
initial_delay_seconds = 1.0
max_delay_seconds = 60.0
max_consecutive_failures = 5
degraded_delay_seconds = 60.0
"""


def ensure_app_paths(config_path: Path = DEFAULT_CONFIG_PATH) -> None:
    config_path = config_path.expanduser()
    data_dir = config_path.parent
    if data_dir.is_symlink():
        raise ValueError(f"refusing symlinked data directory: {data_dir}")
    data_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
    secure_path(data_dir, 0o700)

    if config_path.is_symlink():
        raise ValueError(f"refusing symlinked config file: {config_path}")
    if not config_path.exists():
        config_path.write_text(default_config_toml(), encoding="utf-8")
    secure_path(config_path, 0o600)


def load_config(config_path: Path | None = None) -> AppConfig:
    path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
    ensure_app_paths(path)
    path = path.resolve(strict=False)
    parsed: dict[str, Any]
    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ValueError(f"invalid TOML in {path}: {exc}") from exc
    try:
        merged = _merge(parsed, _env_overrides())
        config = AppConfig.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"invalid config at {path}: {exc}") from exc
    config._data_dir = path.parent
    return config
