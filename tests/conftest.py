from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Callable, Iterator

import pytest

from mac_observer.config import AppConfig

LOG_ENTRY = {
    "timestamp": "2024-05-01 12:30:45.123456+0000",
    "messageType": "Error",
    "subsystem": "com.apple.securityd",
    "category": "keychain",
    "processImagePath": "/usr/sbin/securityd",
    "processID": 101,
    "eventMessage": "keychain locked",
}


def python_emitter(payload: bytes) -> list[str]:
    """argv for a child that writes ``payload`` to stdout and then idles."""
    script = f"import sys, time\nsys.stdout.buffer.write({payload!r})\nsys.stdout.flush()\ntime.sleep(30)"
    return [sys.executable, "-u", "-c", script]


@pytest.fixture()
def log_stream_argv() -> Callable[[str], list[str]]:
    def _argv(predicate: str) -> list[str]:
        del predicate
        return python_emitter(json.dumps(LOG_ENTRY).encode() + b"\n")

    return _argv


@pytest.fixture()
def log_only_config() -> AppConfig:
    return AppConfig.model_validate(
        {
            "metrics": {"enabled": False},
            "disk": {"enabled": False},
            "pressure": {"enabled": False},
            "restart": {"initial_delay_seconds": 0.05, "max_delay_seconds": 0.1},
            "poll_interval_ms": 20,
        }
    )


@pytest.fixture()
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "observer" / "config.toml"


@pytest.fixture()
def restore_root_logging() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    try:
        yield
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)
