from __future__ import annotations

import signal
from pathlib import Path
from typing import Callable

import pytest

from mac_observer import main as cli
from mac_observer.collectors import logs

ALL_DISABLED = """[log]
enabled = false

[metrics]
enabled = false

[disk]
enabled = false
"""

LOG_ONLY = """[metrics]
enabled = false

[disk]
enabled = false

[pressure]
enabled = false
"""


@pytest.fixture(autouse=True)
def _isolate_logging(restore_root_logging: None) -> None:
    return None


def test_init_creates_default_config(config_path: Path) -> None:
    assert cli.main(["init", "--config", str(config_path)]) == 0

    assert config_path.exists()
    assert "[restart]" in config_path.read_text(encoding="utf-8")


def test_probe_fails_when_every_collector_is_disabled(config_path: Path) -> None:
    config_path.parent.mkdir(parents=True)
    config_path.write_text(ALL_DISABLED, encoding="utf-8")

    assert cli.main(["probe", "--config", str(config_path)]) == 1


def test_probe_succeeds_when_a_tool_is_usable(
    monkeypatch: pytest.MonkeyPatch,
    config_path: Path,
    log_stream_argv: Callable[[str], list[str]],
) -> None:
    monkeypatch.setattr(logs, "log_stream_command", log_stream_argv)
    config_path.parent.mkdir(parents=True)
    config_path.write_text(LOG_ONLY, encoding="utf-8")

    assert cli.main(["probe", "--config", str(config_path)]) == 0


def test_probe_fails_when_no_tool_is_usable(monkeypatch: pytest.MonkeyPatch, config_path: Path) -> None:
    monkeypatch.setattr(logs, "log_stream_command", lambda predicate: ["/nonexistent/log"])
    config_path.parent.mkdir(parents=True)
    config_path.write_text(LOG_ONLY, encoding="utf-8")

    assert cli.main(["probe", "--config", str(config_path)]) == 1


def test_run_registers_signal_handlers(monkeypatch: pytest.MonkeyPatch, config_path: Path) -> None:
    installed: dict[int, object] = {}
    calls: list[float] = []

    def _fake_run(self: object, stop_event: object, summary_interval: float = 60.0) -> None:
        calls.append(summary_interval)

    monkeypatch.setattr(cli.signal, "signal", lambda signum, handler: installed.__setitem__(signum, handler))
    monkeypatch.setattr(cli.SystemObserver, "run", _fake_run)
    config_path.parent.mkdir(parents=True)
    config_path.write_text(LOG_ONLY, encoding="utf-8")

    assert cli.main(["run", "--config", str(config_path), "--summary-interval", "5"]) == 0
    assert set(installed) == {signal.SIGINT, signal.SIGTERM}
    assert calls == [5.0]


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])
