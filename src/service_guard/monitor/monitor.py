"""Per-service polling loops with change detection.

Each monitored service gets one asyncio task that probes it every
``interval_seconds``. A status is stored and published only when it differs
from the last stored one (``ServiceStatus`` equality). All reads and writes of
the status map and the session table go through one ``asyncio.Lock``; probes
themselves run outside it so a slow service does not hold up the others.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from service_guard.health.models import ServiceStatus, utcnow
from service_guard.health.probe import HealthProbe
from service_guard.logging.context import service_context
from service_guard.monitor.bus import StatusBus

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class MonitoringSession:
    """Polling handle for one service."""

    service_name: str
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)
    started_at: datetime = field(default_factory=utcnow)
    task: asyncio.Task | None = None
    tick_count: int = 0


class StatusMonitor:
    """Owns the polling sessions and the last known status of every service."""

    def __init__(
        self,
        probe: HealthProbe,
        bus: StatusBus | None = None,
        interval_seconds: float = 5.0,
    ) -> None:
        self._probe = probe
        self._bus = bus or StatusBus()
        self._interval = interval_seconds
        self._lock = asyncio.Lock()
        self._sessions: dict[str, MonitoringSession] = {}
        self._statuses: dict[str, ServiceStatus] = {}

    @property
    def bus(self) -> StatusBus:
        return self._bus

    @property
    def probe(self) -> HealthProbe:
        return self._probe

    @property
    def monitored_services(self) -> list[str]:
        return list(self._sessions)

    def is_monitoring(self, name: str) -> bool:
        return name in self._sessions

    # ── Session lifecycle ────────────────────────────────────

    async def start_monitoring(self, name: str) -> bool:
        """Probe immediately, publish the result, then poll on the interval.

        Returns False if the service is unknown or already monitored.
        """
        if not self._probe.is_registered(name):
            logger.warning("Cannot monitor unregistered service '%s'", name)
            return False

        async with self._lock:
            if name in self._sessions:
                logger.warning("Service '%s' is already being monitored", name)
                return False
            session = MonitoringSession(service_name=name)
            self._sessions[name] = session

        started = False
        try:
            status = await self._probe.check_health(name)
            async with self._lock:
                if self._sessions.get(name) is not session:
                    logger.info("Monitoring of %s stopped before the first probe finished", name)
                    return False
                self._store(status)
                session.task = asyncio.create_task(
                    self._run(session), name=f"monitor:{name}",
                )
                started = True
        finally:
            # Cancelled during the first probe; no await, so nothing interleaves
            if not started and self._sessions.get(name) is session:
                del self._sessions[name]

        logger.info(
            "Started monitoring %s (interval: %.1fs, initial state: %s)",
            name, self._interval, status.state.value,
        )
        await self._bus.broadcast(status)
        return True

    async def stop_monitoring(self, name: str) -> bool:
        """Cancel the polling task and forget the service's last status."""
        async with self._lock:
            session = self._sessions.get(name)
            if session is None:
                logger.debug("Service '%s' is not being monitored", name)
                return False
            session.stop_event.set()
            if session.task is not None:
                if not session.task.done():
                    session.task.cancel()
                try:
                    await session.task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.exception("Monitoring task for %s ended with an error", name)
            del self._sessions[name]
            self._statuses.pop(name, None)

        logger.info("Stopped monitoring %s after %d ticks", name, session.tick_count)
        return True

    async def start_all(self) -> dict[str, bool]:
        """Start every registered service concurrently; failures stay independent."""
        names = self._probe.registered_services()
        results = await asyncio.gather(
            *(self.start_monitoring(n) for n in names), return_exceptions=True,
        )
        return self._collect("start", names, results)

    async def stop_all(self) -> dict[str, bool]:
        names = list(self._sessions)
        results = await asyncio.gather(
            *(self.stop_monitoring(n) for n in names), return_exceptions=True,
        )
        return self._collect("stop", names, results)

    async def close(self) -> None:
        await self.stop_all()

    # ── Queries & commands ───────────────────────────────────

    async def get_status(self, name: str) -> ServiceStatus | None:
        async with self._lock:
            return self._statuses.get(name)

    async def get_all_statuses(self) -> list[ServiceStatus]:
        async with self._lock:
            return list(self._statuses.values())

    async def reset_failures(self, name: str) -> ServiceStatus | None:
        """Clear a service's backoff and probe it right away.

        Returns the fresh status, or None if the service is not registered.
        """
        if not self._probe.reset_failures(name):
            return None
        status = await self._probe.check_health(name)
        async with self._lock:
            changed = name in self._sessions and self._store(status)
        if changed:
            await self._bus.broadcast(status)
        return status

    async def apply_remote_status(self, status: ServiceStatus) -> bool:
        """Adopt a status reported by another instance. Never re-broadcast."""
        async with self._lock:
            changed = self._store(status)
        if changed:
            logger.debug(
                "Applied remote status for %s: %s", status.service_name, status.state.value,
            )
        return changed

    # ── Internals ────────────────────────────────────────────

    def _store(self, status: ServiceStatus) -> bool:
        """Store and publish locally if changed. Caller holds the lock."""
        if self._statuses.get(status.service_name) == status:
            return False
        self._statuses[status.service_name] = status
        self._bus.publish(status)
        return True

    async def _run(self, session: MonitoringSession) -> None:
        stop_event = session.stop_event
        with service_context(session.service_name, interval=self._interval):
            while not stop_event.is_set():
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self._interval)
                    break
                except asyncio.TimeoutError:
                    pass
                try:
                    await self._tick(session)
                except Exception:
                    logger.exception("Monitoring tick failed for %s", session.service_name)

    async def _tick(self, session: MonitoringSession) -> None:
        name = session.service_name
        session.tick_count += 1
        status = await self._probe.check_health(name, stop_event=session.stop_event)

        async with self._lock:
            if session.stop_event.is_set() or self._sessions.get(name) is not session:
                logger.debug("Discarding probe result for stopped session of %s", name)
                return
            previous = self._statuses.get(name)
            changed = self._store(status)

        if not changed:
            return
        if previous is None or previous.state != status.state:
            logger.info(
                "Service %s changed state: %s -> %s",
                name, previous.state.value if previous else "unknown", status.state.value,
            )
        await self._bus.broadcast(status)

    @staticmethod
    def _collect(action: str, names: list[str], results: list) -> dict[str, bool]:
        outcome: dict[str, bool] = {}
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                logger.error("Failed to %s monitoring for %s: %s", action, name, result)
                outcome[name] = False
            else:
                outcome[name] = result
        return outcome
