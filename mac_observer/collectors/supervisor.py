"""Supervision of one long-running external tool.

``ProcessSupervisor`` owns a worker thread that repeatedly spawns the tool,
frames its stdout into records, translates them, and forwards the events in
stream order. Unrequested exits are retried through ``RestartPolicy``; the
sampling interval for each spawn comes from ``SamplingController``.

Two values are shared with other threads: the shutdown flag (set by
``stop()``, read by the worker) and the sampling interval (written by the
worker only). Everything else belongs to the worker thread.
"""

from __future__ import annotations

import enum
import logging
import os
import select
import subprocess
import threading
from typing import Any, Callable, Sequence

from mac_observer.channel import EventSender
from mac_observer.collectors.framing import Splitter, StreamFramer
from mac_observer.collectors.restart import RestartPolicy
from mac_observer.collectors.sampling import DEFAULT_MAX_INTERVAL, PressureOracle, SamplingController
from mac_observer.errors import ChannelClosed, CollectorIOError, JoinError, ParseError, SpawnError

logger = logging.getLogger(__name__)

READ_SIZE = 4096
DEFAULT_POLL_INTERVAL = 0.05
DEFAULT_PROBE_GRACE = 0.2
TERMINATE_GRACE = 1.0

SpawnFn = Callable[[float], subprocess.Popen[bytes]]
TranslateFn = Callable[[bytes], Any]


class CollectorState(str, enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    RESTARTING = "restarting"
    DEGRADED = "degraded"


class RunOutcome(enum.Enum):
    STOPPED = "stopped"
    FAILED = "failed"
    CHANNEL_CLOSED = "channel_closed"


def spawn_tool(argv: Sequence[str]) -> subprocess.Popen[bytes]:
    """Start ``argv`` with stdout piped; any launch failure becomes ``SpawnError``."""
    logger.debug("spawning %s", " ".join(argv))
    try:
        return subprocess.Popen(
            list(argv),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
        )
    except OSError as exc:
        raise SpawnError(f"{argv[0]}: {exc}") from exc


def reap_child(child: subprocess.Popen[bytes]) -> None:
    """Terminate (then kill) the child if still alive and always wait for it."""
    if child.poll() is None:
        child.terminate()
        try:
            child.wait(timeout=TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            logger.warning("pid %s ignored SIGTERM, killing", child.pid)
            child.kill()
            child.wait()
    if child.stdout is not None:
        child.stdout.close()


class ProcessSupervisor:
    def __init__(
        self,
        name: str,
        spawn: SpawnFn,
        splitter: Splitter,
        translate: TranslateFn,
        channel: EventSender[Any],
        *,
        base_interval: float = 1.0,
        max_interval: float = DEFAULT_MAX_INTERVAL,
        pressure: PressureOracle | None = None,
        restart_policy: RestartPolicy | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        probe_grace: float = DEFAULT_PROBE_GRACE,
    ) -> None:
        self.name = name
        self._spawn = spawn
        self._splitter = splitter
        self._translate = translate
        self._channel = channel
        self.sampling = SamplingController(base_interval, max_interval=max_interval, pressure=pressure)
        self.restart_policy = restart_policy or RestartPolicy()
        self._poll_interval = poll_interval
        self._probe_grace = probe_grace

        self._shutdown = threading.Event()
        self._lifecycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._state = CollectorState.STOPPED
        self._thread: threading.Thread | None = None
        self._worker_error: BaseException | None = None

        self.records_seen = 0
        self.events_forwarded = 0
        self.parse_errors = 0
        self.restarts = 0
        self.degraded_entries = 0

    @property
    def state(self) -> CollectorState:
        with self._state_lock:
            return self._state

    @property
    def restart_delay(self) -> float:
        return self.restart_policy.delay

    def _set_state(self, state: CollectorState) -> None:
        with self._state_lock:
            self._state = state

    def is_running(self) -> bool:
        return self.state is not CollectorState.STOPPED

    def probe(self) -> None:
        """Spawn the tool once and kill it; raise ``SpawnError`` if it is unusable."""
        child = self._spawn(self.sampling.current_interval())
        try:
            returncode: int | None = child.wait(timeout=self._probe_grace)
        except subprocess.TimeoutExpired:
            returncode = None
        finally:
            reap_child(child)
        if returncode not in (None, 0):
            raise SpawnError(f"{self.name} tool exited with status {returncode} during probe")

    def start(self) -> None:
        with self._lifecycle_lock:
            if self._thread is not None and self._thread.is_alive():
                logger.debug("%s collector already running", self.name)
                return
            self.probe()
            if self._worker_error is not None:
                logger.error(
                    "%s collector restarted after an unreported worker failure: %r",
                    self.name,
                    self._worker_error,
                )
            self._shutdown.clear()
            self._worker_error = None
            self.restart_policy.reset()
            self._set_state(CollectorState.RUNNING)
            thread = threading.Thread(target=self._run, name=f"{self.name}-collector", daemon=True)
            self._thread = thread
            thread.start()
        logger.info("%s collector started (interval %.2fs)", self.name, self.sampling.current_interval())

    def stop(self) -> None:
        with self._lifecycle_lock:
            self._shutdown.set()
            thread = self._thread
            if thread is not None:
                thread.join()
            self._thread = None
            self._set_state(CollectorState.STOPPED)
            error, self._worker_error = self._worker_error, None
        if error is not None:
            raise JoinError(f"{self.name} collector worker failed: {error!r}") from error
        if thread is not None:
            logger.info("%s collector stopped", self.name)

    def _run(self) -> None:
        try:
            self._supervise()
        except Exception as exc:
            logger.exception("%s collector worker crashed", self.name)
            self._worker_error = exc
        finally:
            self._set_state(CollectorState.STOPPED)
            logger.debug("%s collector worker finished", self.name)

    def _supervise(self) -> None:
        policy = self.restart_policy
        while not self._shutdown.is_set():
            interval = self.sampling.update()
            outcome = self._attempt(interval)

            if outcome is RunOutcome.CHANNEL_CLOSED:
                logger.info("%s receiver closed, ending collection", self.name)
                return
            if outcome is RunOutcome.STOPPED or self._shutdown.is_set():
                policy.record_success()
                return

            decision = policy.record_failure()
            self.restarts += 1
            if decision.degraded:
                self.degraded_entries += 1
                self._set_state(CollectorState.DEGRADED)
                logger.warning(
                    "%s failed %d times in a row, entering degraded mode; next attempt in %.0fs",
                    self.name,
                    decision.failures,
                    decision.delay,
                )
                if self._shutdown.wait(decision.delay):
                    return
                policy.reset()
            else:
                self._set_state(CollectorState.RESTARTING)
                logger.warning(
                    "restarting %s in %.1fs (failure %d/%d)",
                    self.name,
                    decision.delay,
                    decision.failures,
                    policy.max_consecutive_failures,
                )
                if self._shutdown.wait(decision.delay):
                    return
            self._set_state(CollectorState.RUNNING)

    def _attempt(self, interval: float) -> RunOutcome:
        try:
            child = self._spawn(interval)
        except SpawnError as exc:
            logger.error("failed to spawn %s tool: %s", self.name, exc)
            return RunOutcome.FAILED

        logger.info("%s tool running (pid %s, interval %.2fs)", self.name, child.pid, interval)
        try:
            return self._stream(child)
        except CollectorIOError as exc:
            logger.error("error reading %s output: %s", self.name, exc)
            return RunOutcome.FAILED
        finally:
            reap_child(child)

    def _stream(self, child: subprocess.Popen[bytes]) -> RunOutcome:
        if child.stdout is None:
            raise CollectorIOError("child has no stdout pipe")
        framer = StreamFramer(self._splitter)
        fd = child.stdout.fileno()

        while not self._shutdown.is_set():
            try:
                ready, _, _ = select.select([fd], [], [], self._poll_interval)
                if not ready:
                    continue
                chunk = os.read(fd, READ_SIZE)
            except OSError as exc:
                raise CollectorIOError(str(exc)) from exc

            if not chunk:
                try:
                    status: int | None = child.wait(timeout=self._poll_interval)
                except subprocess.TimeoutExpired:
                    status = None
                logger.warning("%s tool closed its output (exit status %s)", self.name, status)
                if framer.pending:
                    logger.debug("%s: discarding %d bytes of an unfinished record", self.name, framer.pending)
                return RunOutcome.FAILED

            for record in framer.feed(chunk):
                event = self._translate_record(record)
                if event is None:
                    continue
                try:
                    self._channel.send(event)
                except ChannelClosed:
                    return RunOutcome.CHANNEL_CLOSED
                self.events_forwarded += 1

        return RunOutcome.STOPPED

    def _translate_record(self, record: bytes) -> Any:
        self.records_seen += 1
        try:
            return self._translate(record)
        except ParseError as exc:
            self.parse_errors += 1
            logger.debug("%s: dropping malformed record (%s): %r", self.name, exc, record[:200])
            return None
