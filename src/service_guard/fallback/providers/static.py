"""Last-resort provider that always returns a fixed payload."""

from __future__ import annotations

from typing import AsyncIterator

from service_guard.config.schema import ProviderConfig
from service_guard.fallback.base import CapabilityProvider, CapabilityRequest


class StaticCapabilityProvider(CapabilityProvider):
    """Returns the configured payload; an empty payload makes it always fail."""

    def __init__(self, config: ProviderConfig) -> None:
        self.name = config.name
        self._payload = config.payload.encode("utf-8")
        self._chunk_size = config.chunk_size

    async def generate(self, request: CapabilityRequest) -> bytes:
        return self._payload

    async def stream(self, request: CapabilityRequest) -> AsyncIterator[bytes]:
        for start in range(0, len(self._payload), self._chunk_size):
            yield self._payload[start:start + self._chunk_size]

    async def is_healthy(self) -> bool:
        return bool(self._payload)
