"""Per-service health probing with exponential backoff.

One ``check_health`` call performs at most one request against the
service's probe target and classifies the outcome:

- 2xx (or a provider reporting healthy): ONLINE below the fast latency
  threshold, DEGRADED at or above it; the failure counter resets.
- non-2xx: ERROR with an ``HTTP-<code>-001`` error code.
- timeout / transport failure / provider reporting unhealthy: OFFLINE.
- anything else: ERROR.

While a service is backing off the probe answers OFFLINE immediately
without touching the network.
"""

from __future__ import annotations

import asyncio
import logging
import math
import platform
import random
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from service_guard.config.schema import ProbeConfig
from service_guard.health.backoff import BackoffPolicy
from service_guard.health.errors import ErrorCode, FailureKind, http_error_code
from service_guard.health.models import (
    ProbeTarget,
    ServiceEndpoint,
    ServiceState,
    ServiceStatus,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass
class _ProbeResponse:
    healthy: bool
    status_code: int | None = None
    reason: str = ""


class HealthProbe:
    """Performs health checks for a static set of registered services."""

    def __init__(
        self,
        config: ProbeConfig | None = None,
        client: httpx.AsyncClient | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or ProbeConfig()
        self._client = client or httpx.AsyncClient(timeout=self._config.timeout_seconds)
        self._owns_client = client is None
        self._policy = BackoffPolicy(
            base=self._config.backoff_base,
            max_delay=self._config.max_backoff_seconds,
            jitter=self._config.jitter,
            max_failures=self._config.max_consecutive_failures,
            cooldown=self._config.cooldown_seconds,
        )
        self._clock = clock
        self._rng = rng or random.Random()
        self._platform = platform.system() or "Unknown"
        self._endpoints: dict[str, ServiceEndpoint] = {}

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    # ── Registry ─────────────────────────────────────────────

    def register_service(
        self, name: str, target: ProbeTarget, display_name: str | None = None,
    ) -> None:
        """Register (or replace) a service endpoint for health checking."""
        if name in self._endpoints:
            logger.info("Re-registering service '%s'", name)
        self._endpoints[name] = ServiceEndpoint(
            name=name,
            display_name=display_name or name,
            target=target,
        )

    def is_registered(self, name: str) -> bool:
        return name in self._endpoints

    def registered_services(self) -> list[str]:
        return list(self._endpoints)

    def display_name(self, name: str) -> str:
        endpoint = self._endpoints.get(name)
        return endpoint.display_name if endpoint else name

    def get_endpoint(self, name: str) -> ServiceEndpoint | None:
        return self._endpoints.get(name)

    def failure_count(self, name: str) -> int:
        endpoint = self._endpoints.get(name)
        return endpoint.consecutive_failures if endpoint else 0

    def reset_failures(self, name: str) -> bool:
        """Zero the failure counter, clearing any pending backoff.

        Returns False if the service is not registered.
        """
        endpoint = self._endpoints.get(name)
        if endpoint is None:
            logger.warning("Cannot reset failures for unregistered service '%s'", name)
            return False
        endpoint.backoff.reset()
        logger.info("Reset consecutive failures for service '%s'", name)
        return True

    # ── Probing ──────────────────────────────────────────────

    async def check_health(
        self, name: str, *, stop_event: asyncio.Event | None = None,
    ) -> ServiceStatus:
        """Probe one service and return its classified status.

        A cancellation arriving after ``stop_event`` is set abandons the
        attempt without counting a failure; any other cancellation counts.
        """
        endpoint = self._endpoints.get(name)
        if endpoint is None:
            logger.warning("Health check requested for unregistered service '%s'", name)
            return ServiceStatus(
                service_name=name,
                state=ServiceState.ERROR,
                error_message="Service not registered for health checking",
                metrics={
                    "error_code": ErrorCode.NOT_REGISTERED.value,
                    "response_time_ms": 0,
                },
                failure=FailureKind.NOT_REGISTERED,
            )

        wait = self._policy.wait_remaining(endpoint.backoff, self._clock())
        if wait > 0:
            failures = endpoint.consecutive_failures
            logger.debug(
                "Skipping probe for %s: backing off after %d failures (%.1fs left)",
                name, failures, wait,
            )
            return ServiceStatus(
                service_name=name,
                state=ServiceState.OFFLINE,
                error_message=f"Backing off due to consecutive failures (attempt {failures})",
                metrics={
                    "error_code": ErrorCode.BACKOFF.value,
                    "response_time_ms": 0,
                    "consecutive_failures": failures,
                    "next_check_in_seconds": math.ceil(wait),
                },
                failure=FailureKind.BACKOFF,
            )

        logger.debug(
            "Checking health for %s at %s (platform: %s)",
            name, endpoint.target_label, self._platform,
        )
        started = self._clock()
        try:
            response = await asyncio.wait_for(
                self._request(endpoint), timeout=self._config.timeout_seconds,
            )
        except asyncio.CancelledError:
            if stop_event is not None and stop_event.is_set():
                logger.debug("Health check for %s abandoned: monitoring stopped", name)
                raise
            failures = self._record_failure(endpoint)
            logger.warning(
                "Health check for %s cancelled (failure #%d)", name, failures,
            )
            raise
        except (asyncio.TimeoutError, httpx.TimeoutException):
            status = self._failure_status(
                endpoint, started, ServiceState.OFFLINE, "Request timeout",
                ErrorCode.TIMEOUT.value, FailureKind.TIMEOUT,
            )
            logger.warning(
                "Health check timeout for %s after %dms at %s",
                name, status.response_time_ms, endpoint.target_label,
            )
            return status
        except httpx.TransportError as e:
            status = self._failure_status(
                endpoint, started, ServiceState.OFFLINE, f"Connection error: {e}",
                ErrorCode.CONNECTION.value, FailureKind.CONNECTION_FAILURE,
            )
            logger.error(
                "Health check connection error for %s at %s (failure #%d): %s",
                name, endpoint.target_label, endpoint.consecutive_failures, e,
            )
            return status
        except Exception as e:
            status = self._failure_status(
                endpoint, started, ServiceState.ERROR, f"Unexpected error: {e}",
                ErrorCode.UNKNOWN.value, FailureKind.UNEXPECTED_FAILURE,
            )
            logger.error(
                "Unexpected error during health check for %s at %s",
                name, endpoint.target_label, exc_info=True,
            )
            return status

        if response.healthy:
            return self._success_status(endpoint, started, response)

        if response.status_code is not None:
            status = self._failure_status(
                endpoint, started, ServiceState.ERROR,
                f"HTTP {response.status_code}: {response.reason}",
                http_error_code(response.status_code), FailureKind.PROTOCOL_FAILURE,
                status_code=response.status_code,
            )
            logger.warning(
                "Health check failed for %s: HTTP %d at %s (failure #%d)",
                name, response.status_code, endpoint.target_label,
                endpoint.consecutive_failures,
            )
            return status

        status = self._failure_status(
            endpoint, started, ServiceState.OFFLINE,
            f"{endpoint.display_name} is not responding",
            ErrorCode.UNHEALTHY.value, FailureKind.UNHEALTHY,
        )
        logger.warning(
            "Health check failed for %s: target reports unhealthy (failure #%d)",
            name, endpoint.consecutive_failures,
        )
        return status

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ── Internals ────────────────────────────────────────────

    async def _request(self, endpoint: ServiceEndpoint) -> _ProbeResponse:
        if isinstance(endpoint.target, str):
            resp = await self._client.get(endpoint.target)
            return _ProbeResponse(
                healthy=resp.is_success,
                status_code=resp.status_code,
                reason=resp.reason_phrase,
            )
        healthy = await endpoint.target.is_healthy()
        return _ProbeResponse(healthy=bool(healthy))

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._clock() - started) * 1000))

    def _record_failure(self, endpoint: ServiceEndpoint) -> int:
        failures = endpoint.backoff.record_failure(
            self._clock(), jitter=self._policy.draw_jitter(self._rng),
        )
        endpoint.last_checked_at = utcnow()
        if failures == self._policy.max_failures:
            logger.warning(
                "Service %s reached %d consecutive failures; probes paused for %.0fs",
                endpoint.name, failures, self._policy.cooldown,
            )
        return failures

    def _base_metrics(self, endpoint: ServiceEndpoint, latency_ms: int) -> dict[str, Any]:
        return {
            "response_time_ms": latency_ms,
            "consecutive_failures": endpoint.consecutive_failures,
            "platform": self._platform,
            "endpoint": endpoint.target_label,
        }

    def _success_status(
        self, endpoint: ServiceEndpoint, started: float, response: _ProbeResponse,
    ) -> ServiceStatus:
        latency_ms = self._elapsed_ms(started)
        endpoint.backoff.record_success(self._clock())
        endpoint.last_checked_at = utcnow()
        endpoint.last_response_time_ms = latency_ms

        if latency_ms < self._config.fast_latency_ms:
            state = ServiceState.ONLINE
        else:
            state = ServiceState.DEGRADED

        metrics = self._base_metrics(endpoint, latency_ms)
        if response.status_code is not None:
            metrics["status_code"] = response.status_code

        logger.debug(
            "Health check successful for %s: %dms (%s)",
            endpoint.name, latency_ms, state.value,
        )
        return ServiceStatus(
            service_name=endpoint.name,
            state=state,
            last_heartbeat=endpoint.last_checked_at,
            metrics=metrics,
        )

    def _failure_status(
        self,
        endpoint: ServiceEndpoint,
        started: float,
        state: ServiceState,
        message: str,
        error_code: str,
        kind: FailureKind,
        status_code: int | None = None,
    ) -> ServiceStatus:
        latency_ms = self._elapsed_ms(started)
        self._record_failure(endpoint)
        metrics = self._base_metrics(endpoint, latency_ms)
        metrics["error_code"] = error_code
        if status_code is not None:
            metrics["status_code"] = status_code
        return ServiceStatus(
            service_name=endpoint.name,
            state=state,
            error_message=message,
            metrics=metrics,
            failure=kind,
        )
