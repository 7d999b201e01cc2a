"""Shared test fixtures for Service Guard."""

from __future__ import annotations

import random
from pathlib import Path
from typing import AsyncIterator

import pytest

from service_guard.config.manager import ConfigManager
from service_guard.config.schema import AppConfig, ProbeConfig
from service_guard.fallback.base import CapabilityProvider, CapabilityRequest
from service_guard.health.models import ServiceState, ServiceStatus


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProvider(CapabilityProvider):
    """Scriptable capability provider that records every call."""

    def __init__(
        self,
        name: str,
        result: bytes = b"",
        chunks: list[bytes] | None = None,
        error: Exception | None = None,
        stream_error_after: int | None = None,
        healthy: bool = True,
        close_error: Exception | None = None,
    ) -> None:
        self.name = name
        self.result = result
        self.chunks = chunks if chunks is not None else []
        self.error = error
        self.stream_error_after = stream_error_after
        self.healthy = healthy
        self.close_error = close_error
        self.generate_calls = 0
        self.stream_calls = 0
        self.close_calls = 0

    async def generate(self, request: CapabilityRequest) -> bytes:
        self.generate_calls += 1
        if self.error is not None:
            raise self.error
        return self.result

    async def stream(self, request: CapabilityRequest) -> AsyncIterator[bytes]:
        self.stream_calls += 1
        for i, chunk in enumerate(self.chunks):
            if self.stream_error_after is not None and i >= self.stream_error_after:
                raise RuntimeError(f"{self.name} broke mid-stream")
            yield chunk
        if self.error is not None:
            raise self.error

    async def is_healthy(self) -> bool:
        if isinstance(self.healthy, Exception):
            raise self.healthy
        return self.healthy

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error is not None:
            raise self.close_error


class FakeCheckable:
    """Probe target exposing only ``is_healthy``."""

    def __init__(self, name: str = "checkable", healthy: bool = True) -> None:
        self.name = name
        self.healthy = healthy
        self.calls = 0

    async def is_healthy(self) -> bool:
        self.calls += 1
        return self.healthy


def make_status(
    name: str = "svc",
    state: ServiceState = ServiceState.ONLINE,
    error: str | None = None,
    response_time_ms: int = 10,
    **metrics,
) -> ServiceStatus:
    return ServiceStatus(
        service_name=name,
        state=state,
        error_message=error,
        metrics={"response_time_ms": response_time_ms, **metrics},
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def probe_config() -> ProbeConfig:
    """Probe settings with jitter disabled so backoff waits are exact."""
    return ProbeConfig(jitter=0.0)


@pytest.fixture
def config() -> AppConfig:
    """Provide a default test configuration."""
    return AppConfig()


@pytest.fixture
def config_manager(tmp_path: Path) -> ConfigManager:
    """Provide a config manager with test paths."""
    defaults = tmp_path / "config.defaults.yaml"
    defaults.write_text(
        "services:\n"
        "  - name: llm-engine\n"
        "    url: http://llm.test/health\n"
        "mqtt:\n"
        "  enabled: false\n"
    )
    user = tmp_path / "config.yaml"
    mgr = ConfigManager(defaults_path=defaults, user_path=user)
    mgr.load()
    return mgr
