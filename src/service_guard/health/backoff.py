"""Failure bookkeeping and backoff arithmetic shared by probes and providers."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

# Exponent cap keeps base ** failures finite for long outages
_MAX_EXPONENT = 64


def backoff_delay(
    failures: int,
    base: float = 2.0,
    max_delay: float = 300.0,
    jitter: float = 0.0,
) -> float:
    """Exponential delay in seconds: ``min(base^failures, max_delay) * (1 + jitter)``.

    Zero failures means no delay.
    """
    if failures < 1:
        return 0.0
    return min(base ** min(failures, _MAX_EXPONENT), max_delay) * (1.0 + jitter)


@dataclass
class BackoffState:
    """Consecutive-failure counter plus the timestamps that gate retries.

    ``now`` values come from whatever monotonic clock the owner uses; the
    wall-clock ``last_failure_at`` exists only for reporting.
    """

    consecutive_failures: int = 0
    last_attempt: float | None = None
    last_failure: float | None = None
    last_failure_at: datetime | None = None
    jitter: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def record_success(self, now: float) -> None:
        with self._lock:
            self.consecutive_failures = 0
            self.jitter = 0.0
            self.last_attempt = now

    def record_failure(
        self, now: float, jitter: float = 0.0, at: datetime | None = None,
    ) -> int:
        """Count one failure and return the new consecutive total."""
        with self._lock:
            self.consecutive_failures += 1
            self.jitter = jitter
            self.last_attempt = now
            self.last_failure = now
            self.last_failure_at = at or datetime.now(timezone.utc)
            return self.consecutive_failures

    def reset(self) -> None:
        with self._lock:
            self.consecutive_failures = 0
            self.jitter = 0.0

    def cooldown_remaining(self, now: float, max_failures: int, cooldown: float) -> float:
        """Seconds left in cooldown, or 0.0 when the owner is eligible."""
        with self._lock:
            if self.consecutive_failures < max_failures or self.last_failure is None:
                return 0.0
            return max(0.0, cooldown - (now - self.last_failure))

    def in_cooldown(self, now: float, max_failures: int, cooldown: float) -> bool:
        return self.cooldown_remaining(now, max_failures, cooldown) > 0.0

    def cooldown_ends_at(self, cooldown: float) -> datetime | None:
        if self.last_failure_at is None:
            return None
        return self.last_failure_at + timedelta(seconds=cooldown)


@dataclass(frozen=True)
class BackoffPolicy:
    """Retry gate for health probes.

    Below ``max_failures`` the wait grows exponentially from the last
    attempt. From ``max_failures`` on the circuit is open and the wait is
    the flat ``cooldown`` measured from the last failure.
    """

    base: float = 2.0
    max_delay: float = 300.0
    jitter: float = 0.3
    max_failures: int = 3
    cooldown: float = 300.0

    def draw_jitter(self, rng: random.Random) -> float:
        """Uniform jitter fraction in ``[0, jitter)``."""
        return rng.random() * self.jitter

    def delay_for(self, state: BackoffState) -> float:
        failures = state.consecutive_failures
        if failures >= self.max_failures:
            return self.cooldown
        return backoff_delay(failures, self.base, self.max_delay, state.jitter)

    def wait_remaining(self, state: BackoffState, now: float) -> float:
        """Seconds until a new attempt may start; 0.0 means go ahead."""
        failures = state.consecutive_failures
        if failures < 1:
            return 0.0
        if failures >= self.max_failures:
            return state.cooldown_remaining(now, self.max_failures, self.cooldown)
        if state.last_attempt is None:
            return 0.0
        return max(0.0, self.delay_for(state) - (now - state.last_attempt))
