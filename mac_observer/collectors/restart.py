from __future__ import annotations

from dataclasses import dataclass

INITIAL_DELAY = 1.0
MAX_DELAY = 60.0
MAX_CONSECUTIVE_FAILURES = 5
DEGRADED_DELAY = 60.0


@dataclass(frozen=True)
class RestartDecision:
    delay: float
    degraded: bool
    failures: int


class RestartPolicy:
    """Exponential backoff with a periodic degraded-mode retry.

    Each consecutive failure waits twice as long as the previous one, up to
    ``max_delay``. The failure that reaches ``max_consecutive_failures``
    asks for one long ``degraded_delay`` sleep instead; the caller resets the
    policy afterwards so the source gets a fresh set of attempts.
    """

    def __init__(
        self,
        initial_delay: float = INITIAL_DELAY,
        max_delay: float = MAX_DELAY,
        max_consecutive_failures: int = MAX_CONSECUTIVE_FAILURES,
        degraded_delay: float = DEGRADED_DELAY,
    ) -> None:
        if max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be >= 1")
        self.initial_delay = initial_delay
        self.max_delay = max(max_delay, initial_delay)
        self.max_consecutive_failures = max_consecutive_failures
        self.degraded_delay = degraded_delay
        self.consecutive_failures = 0
        self.delay = initial_delay

    def record_failure(self) -> RestartDecision:
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.max_consecutive_failures:
            return RestartDecision(self.degraded_delay, True, self.consecutive_failures)
        decision = RestartDecision(self.delay, False, self.consecutive_failures)
        self.delay = min(self.delay * 2, self.max_delay)
        return decision

    def record_success(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.consecutive_failures = 0
        self.delay = self.initial_delay
