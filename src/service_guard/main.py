"""Service Guard application entry point and lifecycle orchestrator.

Startup sequence:
  config → logging → health probe (register services) → status bus →
  MQTT broadcast → status monitor → capability providers → fallback router →
  status API
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys
import uuid
from pathlib import Path

from service_guard import __version__
from service_guard.config.manager import ConfigManager
from service_guard.config.schema import AppConfig
from service_guard.fallback.base import CapabilityProvider
from service_guard.fallback.registry import ProviderRegistry
from service_guard.fallback.router import FallbackRouter
from service_guard.health.probe import HealthProbe
from service_guard.logging.structured import setup_logging
from service_guard.monitor.bus import StatusBus
from service_guard.monitor.monitor import StatusMonitor

logger = logging.getLogger(__name__)


class Application:
    """Main application lifecycle manager.

    Wires all modules together and manages startup/shutdown ordering.
    """

    def __init__(self, config: AppConfig, config_manager: ConfigManager | None = None) -> None:
        self.config = config
        self.config_manager = config_manager
        self.instance_id = config.mqtt.instance_id or uuid.uuid4().hex[:12]
        self._running = False
        self._tasks: list[asyncio.Task] = []

        # References held for cleanup
        self.probe: HealthProbe | None = None
        self.bus: StatusBus | None = None
        self.monitor: StatusMonitor | None = None
        self.router: FallbackRouter | None = None
        self._mqtt_client = None
        self._mqtt_channel = None
        self._server = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self, serve: bool = True) -> None:
        """Start all components in dependency order.

        With ``serve`` the call blocks in the status API server until stopped.
        """
        logger.info("Starting Service Guard v%s (instance %s)", __version__, self.instance_id)
        self._running = True

        # ── 1. Health probe ───────────────────────────────────
        self.probe = HealthProbe(self.config.probe)
        for service in self.config.services:
            if not service.enabled:
                continue
            self.probe.register_service(
                service.name, service.url, service.display_name or None,
            )
        logger.info("Registered %d services", len(self.probe.registered_services()))

        # ── 2. Status bus + monitor ───────────────────────────
        self.bus = StatusBus(queue_size=self.config.monitor.subscriber_queue_size)
        self.monitor = StatusMonitor(
            self.probe, self.bus, interval_seconds=self.config.monitor.interval_seconds,
        )

        # ── 3. MQTT ───────────────────────────────────────────
        if self.config.mqtt.enabled:
            await self._setup_mqtt()

        # ── 4. Providers + router ─────────────────────────────
        registry = ProviderRegistry(self._create_providers(), self.config.fallback)
        self.router = FallbackRouter(registry, self.config.fallback)
        logger.info("Fallback order: %s", " → ".join(registry.names) or "(none)")

        # ── 5. Monitoring ─────────────────────────────────────
        if self.config.monitor.auto_start:
            results = await self.monitor.start_all()
            logger.info(
                "Monitoring %d/%d services", sum(results.values()), len(results),
            )

        if self._mqtt_client is not None and self._mqtt_client.is_connected:
            self._tasks.append(asyncio.create_task(
                self._mqtt_client.listen(), name="mqtt_listener",
            ))
            await self._mqtt_channel.publish_status(online=True)

        # ── 6. Status API ─────────────────────────────────────
        if serve and self.config.dashboard.enabled:
            await self._serve_dashboard()

    async def stop(self) -> None:
        """Gracefully stop all components in reverse order."""
        if not self._running:
            return

        logger.info("Shutting down Service Guard")
        self._running = False

        # Tell uvicorn to exit its serve() loop.
        if self._server is not None:
            self._server.should_exit = True

        if self.monitor is not None:
            await self.monitor.close()

        # Cancel background tasks
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        # Publish offline status
        if self._mqtt_client is not None:
            if self._mqtt_channel is not None:
                await self._mqtt_channel.publish_status(online=False)
            await self._mqtt_client.disconnect()

        if self.router is not None:
            await self.router.close()
        if self.bus is not None:
            await self.bus.close()
        if self.probe is not None:
            await self.probe.close()

        self._server = None
        logger.info("Shutdown complete")

    # ── Setup helpers ─────────────────────────────────────────

    def _create_providers(self) -> list[CapabilityProvider]:
        """Create capability providers in configured preference order."""
        from service_guard.fallback.providers.http import HttpCapabilityProvider
        from service_guard.fallback.providers.static import StaticCapabilityProvider

        providers: list[CapabilityProvider] = []
        for provider_cfg in self.config.providers:
            if not provider_cfg.enabled:
                continue
            if provider_cfg.type == "http":
                providers.append(HttpCapabilityProvider(provider_cfg))
            elif provider_cfg.type == "static":
                providers.append(StaticCapabilityProvider(provider_cfg))
            else:
                logger.warning(
                    "Unknown provider type '%s' for %s, skipping",
                    provider_cfg.type, provider_cfg.name,
                )
                continue
            logger.info("Provider %s: %s", provider_cfg.name, provider_cfg.type)
        return providers

    async def _setup_mqtt(self) -> None:
        """Set up MQTT client, status channel, and remote status subscriber."""
        from service_guard.mqtt.client import MQTTClient
        from service_guard.mqtt.publisher import MQTTStatusChannel
        from service_guard.mqtt.subscriber import StatusSubscriber
        from service_guard.mqtt.topics import build_topics

        topics = build_topics(self.config.mqtt.topic_prefix)
        client = MQTTClient(
            self.config.mqtt,
            client_id=f"service-guard-{self.instance_id}",
            will=(topics["status"], "offline"),
        )
        await client.connect()
        self._mqtt_client = client

        if not client.is_connected:
            logger.warning("MQTT not connected, remote broadcast disabled")
            return

        self._mqtt_channel = MQTTStatusChannel(
            publish_fn=client.publish,
            topic_prefix=self.config.mqtt.topic_prefix,
            instance_id=self.instance_id,
        )
        self.bus.attach_remote(self._mqtt_channel)

        subscriber = StatusSubscriber(
            self.monitor.apply_remote_status,
            topic_prefix=self.config.mqtt.topic_prefix,
            instance_id=self.instance_id,
        )
        client.subscribe(subscriber.topic, subscriber.handle_message)

    async def _serve_dashboard(self) -> None:
        import uvicorn

        from service_guard.dashboard.app import create_app

        app = create_app(self.config, self.monitor, self.router)
        app.state.application = self

        uvi_config = uvicorn.Config(
            app,
            host=self.config.dashboard.host,
            port=self.config.dashboard.port,
            log_level="warning",
        )
        server = uvicorn.Server(uvi_config)
        # Keep process signal handling in main() so Ctrl+C behaviour is predictable.
        server.install_signal_handlers = lambda: None
        self._server = server

        logger.info(
            "Status API available at http://%s:%d",
            self.config.dashboard.host,
            self.config.dashboard.port,
        )

        # Server.serve() blocks until shutdown
        await server.serve()


def main() -> None:
    """Entry point for the application."""
    defaults_path = Path("config.defaults.yaml")
    user_path = Path("config.yaml")

    config_manager = ConfigManager(defaults_path, user_path)
    config = config_manager.load()

    setup_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        log_file=config.logging.file,
    )

    app = Application(config, config_manager)
    stop_requested = False
    signal_count = 0
    stop_event: asyncio.Event | None = None

    async def _run() -> None:
        nonlocal stop_event
        stop_event = asyncio.Event()
        try:
            await app.start()
            if not config.dashboard.enabled:
                await stop_event.wait()
        finally:
            if app.is_running:
                with contextlib.suppress(Exception):
                    await app.stop()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _request_stop() -> None:
        nonlocal stop_requested, signal_count
        signal_count += 1
        if signal_count >= 2:
            os._exit(130)
        if stop_requested or loop.is_closed():
            return
        stop_requested = True
        if stop_event is not None:
            loop.call_soon_threadsafe(stop_event.set)
        loop.call_soon_threadsafe(lambda: asyncio.create_task(app.stop()))

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop)
    else:
        signal.signal(signal.SIGINT, lambda *_: _request_stop())
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, lambda *_: _request_stop())

    try:
        loop.run_until_complete(_run())
    except KeyboardInterrupt:
        _request_stop()
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
    finally:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            with contextlib.suppress(Exception):
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()
