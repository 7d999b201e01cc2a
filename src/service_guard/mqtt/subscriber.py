"""MQTT subscriber for service statuses broadcast by other instances."""

from __future__ import annotations

import json
import logging
from typing import Awaitable, Callable

from service_guard.health.models import ServiceStatus
from service_guard.mqtt.topics import build_topics, service_name_from_topic

logger = logging.getLogger(__name__)

ApplyFn = Callable[[ServiceStatus], Awaitable[bool]]


class StatusSubscriber:
    """Decodes remote status messages and hands them to the monitor."""

    def __init__(
        self,
        apply_fn: ApplyFn,
        topic_prefix: str = "service_guard",
        instance_id: str = "",
    ) -> None:
        self._apply = apply_fn
        self._prefix = topic_prefix
        self._instance_id = instance_id
        self.applied = 0

    @property
    def topic(self) -> str:
        """Wildcard topic covering every service's status."""
        return build_topics(self._prefix)["service_status_all"]

    async def handle_message(self, topic: str, payload: str) -> None:
        """Apply one inbound status; malformed or self-originated messages are dropped."""
        name = service_name_from_topic(self._prefix, topic)
        if name is None:
            logger.debug("Unhandled MQTT message: %s", topic)
            return

        try:
            data = json.loads(payload)
            origin = data.get("origin", "")
            status = ServiceStatus.from_dict(data["status"])
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("Invalid status message on %s: %s", topic, e)
            return

        if origin and origin == self._instance_id:
            return
        if status.service_name != name:
            logger.warning(
                "Status for %s received on topic for %s, ignoring", status.service_name, name,
            )
            return

        if await self._apply(status):
            self.applied += 1
            logger.debug("Remote status from %s: %s -> %s", origin or "unknown", name, status.state.value)
