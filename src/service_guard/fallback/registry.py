"""Ordered provider list with per-provider failure and cooldown tracking."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from service_guard.config.schema import FallbackConfig
from service_guard.fallback.base import CapabilityProvider
from service_guard.health.backoff import BackoffState

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ProviderRecord:
    """One provider plus its breaker state."""

    provider: CapabilityProvider
    max_failures: int = 3
    cooldown_seconds: float = 300.0
    backoff: BackoffState = field(default_factory=BackoffState)

    @property
    def name(self) -> str:
        return self.provider.name

    @property
    def failure_count(self) -> int:
        return self.backoff.consecutive_failures

    def in_cooldown(self, now: float) -> bool:
        return self.backoff.in_cooldown(now, self.max_failures, self.cooldown_seconds)


class ProviderRegistry:
    """Providers in registration (preference) order. The order never changes."""

    def __init__(
        self,
        providers: Iterable[CapabilityProvider] = (),
        config: FallbackConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or FallbackConfig()
        self._clock = clock
        self._records: list[ProviderRecord] = []
        for provider in providers:
            self.register(provider)

    @property
    def records(self) -> list[ProviderRecord]:
        return list(self._records)

    @property
    def names(self) -> list[str]:
        return [r.name for r in self._records]

    def __len__(self) -> int:
        return len(self._records)

    def register(self, provider: CapabilityProvider) -> ProviderRecord:
        if self.get(provider.name) is not None:
            raise ValueError(f"Provider '{provider.name}' is already registered")
        record = ProviderRecord(
            provider=provider,
            max_failures=self._config.max_failures,
            cooldown_seconds=self._config.cooldown_seconds,
        )
        self._records.append(record)
        logger.debug("Registered provider %s (position %d)", provider.name, len(self._records))
        return record

    def get(self, name: str) -> ProviderRecord | None:
        for record in self._records:
            if record.name == name:
                return record
        return None

    def eligible(self) -> list[ProviderRecord]:
        """Fresh list of providers not currently in cooldown, in order."""
        now = self._clock()
        return [r for r in self._records if not r.in_cooldown(now)]

    def record_success(self, record: ProviderRecord) -> None:
        had_failures = record.failure_count > 0
        record.backoff.record_success(self._clock())
        if had_failures:
            logger.info("Provider %s recovered; failure count reset", record.name)

    def record_failure(self, record: ProviderRecord, reason: str = "") -> int:
        failures = record.backoff.record_failure(self._clock())
        logger.warning(
            "Provider %s failed (failure #%d): %s", record.name, failures, reason or "no output",
        )
        if failures == record.max_failures:
            logger.warning(
                "Provider %s entering cooldown for %.0fs after %d consecutive failures",
                record.name, record.cooldown_seconds, failures,
            )
        return failures

    def reset(self, name: str) -> bool:
        record = self.get(name)
        if record is None:
            return False
        record.backoff.reset()
        logger.info("Reset failure count for provider %s", name)
        return True

    def status(self) -> dict[str, dict[str, Any]]:
        """Per-provider diagnostics for the status API."""
        now = self._clock()
        result: dict[str, dict[str, Any]] = {}
        for record in self._records:
            in_cooldown = record.in_cooldown(now)
            ends = record.backoff.cooldown_ends_at(record.cooldown_seconds) if in_cooldown else None
            last_failure = record.backoff.last_failure_at
            result[record.name] = {
                "available": not in_cooldown,
                "failure_count": record.failure_count,
                "in_cooldown": in_cooldown,
                "cooldown_ends": ends.isoformat() if ends else None,
                "last_failure": last_failure.isoformat() if last_failure else None,
            }
        return result
