"""MQTT status publisher."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Coroutine

from service_guard.health.models import ServiceStatus
from service_guard.monitor.bus import RemoteStatusChannel
from service_guard.mqtt.topics import build_topics, service_status_topic

logger = logging.getLogger(__name__)

# Type for async publish function: (topic, payload, retain) -> None
PublishFn = Callable[[str, str, bool], Coroutine[Any, Any, None]]


def encode_status(status: ServiceStatus, origin: str) -> str:
    return json.dumps({"origin": origin, "status": status.to_dict()})


class MQTTStatusChannel(RemoteStatusChannel):
    """Broadcasts service status changes to other instances over MQTT."""

    def __init__(
        self,
        publish_fn: PublishFn,
        topic_prefix: str = "service_guard",
        instance_id: str = "",
    ) -> None:
        self._publish = publish_fn
        self._prefix = topic_prefix
        self._topics = build_topics(topic_prefix)
        self._instance_id = instance_id

    @property
    def instance_id(self) -> str:
        return self._instance_id

    async def send(self, status: ServiceStatus) -> None:
        topic = service_status_topic(self._prefix, status.service_name)
        await self._publish(topic, encode_status(status, self._instance_id), True)
        logger.debug("Broadcast %s status: %s", status.service_name, status.state.value)

    async def publish_status(self, online: bool = True) -> None:
        """Publish instance online/offline status."""
        await self._publish(self._topics["status"], "online" if online else "offline", True)
