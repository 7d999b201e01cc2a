"""Local publish/subscribe fan-out for service status changes.

Local delivery never blocks the publisher: each subscriber owns a bounded
queue and the oldest queued status is dropped when it overflows. The remote
channel (MQTT in production) is optional and strictly best-effort.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Union

from service_guard.health.models import ServiceStatus

logger = logging.getLogger(__name__)

StatusCallback = Callable[[ServiceStatus], Union[None, Awaitable[None]]]

_CLOSED: Any = object()


class RemoteStatusChannel(ABC):
    """Outbound half of the cross-process status broadcast."""

    @abstractmethod
    async def send(self, status: ServiceStatus) -> None:
        """Send one status to other instances. May raise on transport errors."""


class StatusSubscription:
    """Async iterator over the statuses published after subscribing."""

    def __init__(self, service_name: str | None = None, maxsize: int = 100) -> None:
        self.service_name = service_name
        self.dropped = 0
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, status: ServiceStatus) -> bool:
        return self.service_name is None or self.service_name == status.service_name

    def deliver(self, status: ServiceStatus) -> bool:
        """Queue a status without blocking. Returns False once closed."""
        if self._closed:
            return False
        self._put(status)
        return True

    async def get(self) -> ServiceStatus | None:
        """Next status, or None once the subscription is closed and drained."""
        if self._closed and self._queue.empty():
            return None
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._put(_CLOSED)

    def _put(self, item: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            logger.debug(
                "Subscriber queue full (service=%s), dropped oldest status",
                self.service_name or "*",
            )
        self._queue.put_nowait(item)

    def __aiter__(self) -> StatusSubscription:
        return self

    async def __anext__(self) -> ServiceStatus:
        status = await self.get()
        if status is None:
            raise StopAsyncIteration
        return status


class StatusBus:
    """Fans status changes out to local subscribers and an optional remote channel."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscriptions: list[StatusSubscription] = []
        self._pumps: set[asyncio.Task] = set()
        self._remote: RemoteStatusChannel | None = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @property
    def has_remote(self) -> bool:
        return self._remote is not None

    def subscribe(
        self, service_name: str | None = None, maxsize: int | None = None,
    ) -> StatusSubscription:
        """Subscribe to one service's changes, or to all when ``service_name`` is None."""
        sub = StatusSubscription(service_name, maxsize or self._queue_size)
        self._subscriptions.append(sub)
        return sub

    def unsubscribe(self, sub: StatusSubscription) -> None:
        sub.close()
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)

    def add_listener(
        self, callback: StatusCallback, service_name: str | None = None,
    ) -> StatusSubscription:
        """Feed statuses to a sync or async callback from a background task.

        Close the returned subscription to detach the listener.
        """
        sub = self.subscribe(service_name)
        task = asyncio.create_task(self._pump(sub, callback))
        self._pumps.add(task)
        task.add_done_callback(self._pumps.discard)
        return sub

    def publish(self, status: ServiceStatus) -> int:
        """Deliver to every matching local subscriber. Returns the delivery count."""
        delivered = 0
        for sub in list(self._subscriptions):
            if sub.closed:
                self._subscriptions.remove(sub)
                continue
            if sub.matches(status) and sub.deliver(status):
                delivered += 1
        return delivered

    def attach_remote(self, channel: RemoteStatusChannel | None) -> None:
        self._remote = channel

    async def broadcast(self, status: ServiceStatus) -> bool:
        """Forward a status to the remote channel. Failures are logged, never raised."""
        if self._remote is None:
            return False
        try:
            await self._remote.send(status)
        except Exception as e:
            logger.warning("Remote broadcast failed for %s: %s", status.service_name, e)
            return False
        return True

    async def close(self) -> None:
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions.clear()
        if self._pumps:
            await asyncio.gather(*self._pumps, return_exceptions=True)

    async def _pump(self, sub: StatusSubscription, callback: StatusCallback) -> None:
        async for status in sub:
            try:
                result = callback(status)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Status listener error for %s", status.service_name)
