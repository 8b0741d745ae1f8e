from __future__ import annotations

import argparse
import logging
import signal
import threading
from pathlib import Path
from typing import Any

from mac_observer.config import DEFAULT_CONFIG_PATH, AppConfig, load_config
from mac_observer.logging import configure_logging
from mac_observer.models import Event
from mac_observer.observer import SystemObserver

logger = logging.getLogger("mac_observer")


def _config_path(raw: str | None) -> Path:
    return Path(raw).expanduser() if raw else DEFAULT_CONFIG_PATH


def _load(config_path: str | None) -> AppConfig:
    return load_config(_config_path(config_path))


def _log_event(event: Event) -> None:
    logger.debug("%s event: %s", event.source.value, event.model_dump_json())


def cmd_init(args: argparse.Namespace) -> int:
    path = _config_path(args.config)
    config = _load(args.config)
    logger.info("initialized config at %s", path)
    logger.info("data directory %s", config.data_dir)
    return 0


def cmd_probe(args: argparse.Namespace) -> int:
    config = _load(args.config)
    observer = SystemObserver(config)
    results = observer.probe()
    if not results:
        logger.error("every collector is disabled in %s", _config_path(args.config))
        return 1
    for result in results:
        if result.usable:
            logger.info("%s: available", result.name)
        else:
            logger.warning("%s: unavailable (%s)", result.name, result.detail)
    return 0 if any(result.usable for result in results) else 1


def _register_signal_handlers(stop_event: threading.Event) -> None:
    def _handler(signum: int, frame: Any) -> None:
        del frame
        logger.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def cmd_run(args: argparse.Namespace) -> int:
    config = _load(args.config)
    observer = SystemObserver(config, sink=_log_event)
    stop_event = threading.Event()
    _register_signal_handlers(stop_event)
    observer.run(stop_event, summary_interval=float(args.summary_interval))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mac-observer")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--json-logs", action="store_true", default=None, help="emit JSON log lines")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="create the data dir and a default config.toml")
    init_parser.add_argument("--config", type=str, default=None, help="path to config.toml")
    init_parser.set_defaults(func=cmd_init)

    probe_parser = subparsers.add_parser("probe", help="check which collector tools can run")
    probe_parser.add_argument("--config", type=str, default=None, help="path to config.toml")
    probe_parser.set_defaults(func=cmd_probe)

    run_parser = subparsers.add_parser("run", help="run collectors until interrupted")
    run_parser.add_argument("--config", type=str, default=None, help="path to config.toml")
    run_parser.add_argument(
        "--summary-interval",
        type=float,
        default=60.0,
        help="seconds between per-source summaries (0 disables)",
    )
    run_parser.set_defaults(func=cmd_run)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(bool(args.verbose), args.json_logs)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
