"""Async MQTT client wrapper using aiomqtt."""

from __future__ import annotations

import logging
from typing import Any, Callable, Coroutine

import aiomqtt

from service_guard.config.schema import MQTTConfig

logger = logging.getLogger(__name__)

# Type alias for message callback: (topic, payload) -> None
MessageCallback = Callable[[str, str], Coroutine[Any, Any, None]]


class MQTTClient:
    """Async MQTT client wrapping aiomqtt.

    The underlying connection is opened once in :meth:`connect` and shared by
    publishing and the listener. Subscriptions may use MQTT wildcards.
    """

    def __init__(
        self,
        config: MQTTConfig,
        client_id: str = "",
        will: tuple[str, str] | None = None,
    ) -> None:
        self._config = config
        self._client_id = client_id
        self._will = will
        self._client: aiomqtt.Client | None = None
        self._connected = False
        self._subscriptions: dict[str, MessageCallback] = {}

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def topics(self) -> list[str]:
        return list(self._subscriptions)

    async def connect(self) -> None:
        """Connect to the MQTT broker. Failures leave the client disconnected."""
        will = None
        if self._will is not None:
            will = aiomqtt.Will(topic=self._will[0], payload=self._will[1], retain=True)
        client = aiomqtt.Client(
            hostname=self._config.broker_host,
            port=self._config.broker_port,
            username=self._config.username or None,
            password=self._config.password or None,
            identifier=self._client_id or None,
            will=will,
        )
        logger.info(
            "MQTT connecting to %s:%d",
            self._config.broker_host, self._config.broker_port,
        )
        try:
            await client.__aenter__()
        except Exception as e:
            logger.error("MQTT connect failed: %s", e)
            self._connected = False
            return
        self._client = client
        self._connected = True

    async def disconnect(self) -> None:
        """Disconnect from the broker."""
        client, self._client = self._client, None
        self._connected = False
        if client is None:
            return
        try:
            await client.__aexit__(None, None, None)
        except Exception as e:
            logger.debug("MQTT disconnect error: %s", e)

    async def publish(self, topic: str, payload: str, retain: bool = False) -> None:
        """Publish a message to a topic."""
        if not self._connected or self._client is None:
            return

        try:
            await self._client.publish(topic, payload, retain=retain)
        except Exception as e:
            logger.error("MQTT publish failed for %s: %s", topic, e)

    def subscribe(self, topic: str, callback: MessageCallback) -> None:
        """Register a subscription callback for a topic filter."""
        self._subscriptions[topic] = callback

    async def listen(self) -> None:
        """Dispatch incoming messages to subscription callbacks until disconnected."""
        if not self._connected or self._client is None or not self._subscriptions:
            return

        try:
            for topic in self._subscriptions:
                await self._client.subscribe(topic)

            async for message in self._client.messages:
                topic = str(message.topic)
                payload = message.payload.decode() if isinstance(message.payload, bytes) else str(message.payload)

                for topic_filter, callback in self._subscriptions.items():
                    if not message.topic.matches(topic_filter):
                        continue
                    try:
                        await callback(topic, payload)
                    except Exception:
                        logger.exception("MQTT callback error for %s", topic)
        except aiomqtt.MqttError as e:
            logger.error("MQTT listener error: %s", e)
            self._connected = False
