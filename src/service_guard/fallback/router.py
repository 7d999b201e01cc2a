"""Ordered failover across interchangeable capability providers.

Providers are tried in registration order, skipping those in cooldown. A
provider succeeds only by producing non-empty output without raising; any
other outcome is recorded as one failure and the next provider is tried.
Exhausting every provider is a normal outcome reported in ``RouteResult``,
never an exception.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator

from service_guard.config.schema import FallbackConfig
from service_guard.fallback.base import (
    CapabilityProvider,
    CapabilityRequest,
    RouteOutcome,
    RouteResult,
)
from service_guard.fallback.registry import ProviderRecord, ProviderRegistry

logger = logging.getLogger(__name__)


class FallbackRouter:
    """Executes capability requests with automatic failover."""

    def __init__(
        self, registry: ProviderRegistry, config: FallbackConfig | None = None,
    ) -> None:
        self._registry = registry
        self._config = config or FallbackConfig()
        self._closed = False

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def closed(self) -> bool:
        return self._closed

    async def execute(self, request: CapabilityRequest) -> RouteResult:
        """Return the first provider's non-empty result."""
        self._ensure_open()
        if request.is_empty:
            logger.warning("Ignoring empty capability request")
            return RouteResult(outcome=RouteOutcome.EMPTY_REQUEST)

        candidates = self._registry.eligible()
        if not candidates:
            logger.error("No providers available: all %d are in cooldown", len(self._registry))
            return RouteResult(outcome=RouteOutcome.NO_PROVIDERS_AVAILABLE)

        attempts: list[str] = []
        for record in candidates:
            attempts.append(record.name)
            try:
                data = await asyncio.wait_for(
                    record.provider.generate(request),
                    timeout=self._config.attempt_timeout_seconds,
                )
            except asyncio.CancelledError:
                self._registry.record_failure(record, "cancelled")
                raise
            except Exception as e:
                self._registry.record_failure(record, self._describe(e))
                continue

            if not data:
                self._registry.record_failure(record, "empty result")
                continue

            self._registry.record_success(record)
            if len(attempts) > 1:
                logger.info(
                    "Request served by fallback provider %s after %d attempts",
                    record.name, len(attempts),
                )
            return RouteResult(
                data=data, provider=record.name, outcome=RouteOutcome.SUCCESS, attempts=attempts,
            )

        logger.error("All %d eligible providers failed: %s", len(attempts), ", ".join(attempts))
        return RouteResult(outcome=RouteOutcome.EXHAUSTED, attempts=attempts)

    async def stream_execute(self, request: CapabilityRequest) -> AsyncIterator[bytes]:
        """Yield the chunks of the first provider that streams any output.

        Each provider's stream is drained before anything is yielded, so
        output from a provider that fails midway never reaches the caller.
        """
        self._ensure_open()
        if request.is_empty:
            logger.warning("Ignoring empty capability stream request")
            return

        candidates = self._registry.eligible()
        if not candidates:
            logger.error("No providers available for streaming: all %d are in cooldown",
                         len(self._registry))
            return

        for record in candidates:
            try:
                chunks = await asyncio.wait_for(
                    self._drain(record.provider, request),
                    timeout=self._config.attempt_timeout_seconds,
                )
            except asyncio.CancelledError:
                self._registry.record_failure(record, "cancelled")
                raise
            except Exception as e:
                self._registry.record_failure(record, self._describe(e))
                continue

            if not chunks:
                self._registry.record_failure(record, "empty stream")
                continue

            self._registry.record_success(record)
            logger.debug("Streaming %d chunks from provider %s", len(chunks), record.name)
            for chunk in chunks:
                yield chunk
            return

        logger.error("All %d eligible providers failed to stream", len(candidates))

    async def check_providers(self) -> dict[str, bool]:
        """Ask every provider whether it is reachable; errors count as unhealthy."""
        records = self._registry.records
        results = await asyncio.gather(
            *(self._check(r) for r in records), return_exceptions=True,
        )
        return {
            record.name: result is True
            for record, result in zip(records, results)
        }

    def get_provider_status(self) -> dict[str, dict[str, Any]]:
        return self._registry.status()

    async def close(self) -> None:
        """Close every provider once. Individual failures are logged only."""
        if self._closed:
            return
        self._closed = True
        for record in self._registry.records:
            try:
                await record.provider.close()
            except Exception:
                logger.exception("Error closing provider %s", record.name)
        logger.info("Fallback router closed (%d providers)", len(self._registry))

    # ── Internals ────────────────────────────────────────────

    def _ensure_open(self) -> None:
        if self._closed:
            raise RuntimeError("FallbackRouter is closed")

    @staticmethod
    async def _drain(provider: CapabilityProvider, request: CapabilityRequest) -> list[bytes]:
        return [chunk async for chunk in provider.stream(request) if chunk]

    @staticmethod
    async def _check(record: ProviderRecord) -> bool:
        try:
            return bool(await record.provider.is_healthy())
        except Exception as e:
            logger.debug("Health check for provider %s raised: %s", record.name, e)
            return False

    def _describe(self, error: Exception) -> str:
        if isinstance(error, asyncio.TimeoutError):
            return f"timed out after {self._config.attempt_timeout_seconds:.0f}s"
        return f"{type(error).__name__}: {error}"
