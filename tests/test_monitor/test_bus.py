"""Tests for StatusBus local fan-out and remote broadcast."""

from __future__ import annotations

import asyncio

import pytest

from conftest import make_status
from service_guard.health.models import ServiceState
from service_guard.monitor.bus import RemoteStatusChannel, StatusBus


class RecordingChannel(RemoteStatusChannel):
    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    async def send(self, status) -> None:
        if self.fail:
            raise ConnectionError("broker unreachable")
        self.sent.append(status)


class TestSubscriptions:
    async def test_subscriber_receives_published_status(self) -> None:
        bus = StatusBus()
        sub = bus.subscribe()
        status = make_status("llm-engine")
        assert bus.publish(status) == 1
        assert await asyncio.wait_for(sub.get(), 1) is status

    async def test_service_filter(self) -> None:
        bus = StatusBus()
        llm = bus.subscribe("llm-engine")
        everything = bus.subscribe()
        bus.publish(make_status("vision-api"))
        bus.publish(make_status("llm-engine"))
        assert llm.pending() == 1
        assert everything.pending() == 2
        assert (await llm.get()).service_name == "llm-engine"

    async def test_overflow_drops_oldest(self) -> None:
        bus = StatusBus()
        sub = bus.subscribe(maxsize=2)
        for ms in (1, 2, 3):
            bus.publish(make_status(response_time_ms=ms))
        assert sub.dropped == 1
        assert (await sub.get()).response_time_ms == 2
        assert (await sub.get()).response_time_ms == 3

    async def test_close_ends_iteration_after_draining(self) -> None:
        bus = StatusBus()
        sub = bus.subscribe()
        bus.publish(make_status(response_time_ms=1))
        bus.publish(make_status(response_time_ms=2))
        sub.close()
        received = [s.response_time_ms async for s in sub]
        assert received == [1, 2]
        assert await sub.get() is None

    async def test_closed_subscription_pruned(self) -> None:
        bus = StatusBus()
        sub = bus.subscribe()
        sub.close()
        assert bus.publish(make_status()) == 0
        assert bus.subscriber_count == 0

    async def test_unsubscribe(self) -> None:
        bus = StatusBus()
        sub = bus.subscribe()
        bus.unsubscribe(sub)
        assert sub.closed
        assert bus.subscriber_count == 0


class TestListeners:
    async def test_sync_and_async_callbacks(self) -> None:
        bus = StatusBus()
        seen_sync = []
        seen_async = []

        async def on_status(status) -> None:
            seen_async.append(status.service_name)

        bus.add_listener(lambda s: seen_sync.append(s.service_name))
        bus.add_listener(on_status, service_name="b")
        bus.publish(make_status("a"))
        bus.publish(make_status("b"))
        await bus.close()
        assert seen_sync == ["a", "b"]
        assert seen_async == ["b"]

    async def test_callback_error_does_not_stop_listener(self) -> None:
        bus = StatusBus()
        seen = []

        def flaky(status) -> None:
            if status.state == ServiceState.ERROR:
                raise RuntimeError("listener bug")
            seen.append(status.state)

        bus.add_listener(flaky)
        bus.publish(make_status(state=ServiceState.ERROR))
        bus.publish(make_status(state=ServiceState.ONLINE))
        await bus.close()
        assert seen == [ServiceState.ONLINE]


class TestBroadcast:
    async def test_without_remote(self) -> None:
        bus = StatusBus()
        assert not bus.has_remote
        assert await bus.broadcast(make_status()) is False

    async def test_with_remote(self) -> None:
        bus = StatusBus()
        channel = RecordingChannel()
        bus.attach_remote(channel)
        status = make_status()
        assert await bus.broadcast(status) is True
        assert channel.sent == [status]

    async def test_remote_failure_is_swallowed(self, caplog: pytest.LogCaptureFixture) -> None:
        bus = StatusBus()
        bus.attach_remote(RecordingChannel(fail=True))
        assert await bus.broadcast(make_status("llm-engine")) is False
        assert "Remote broadcast failed for llm-engine" in caplog.text
