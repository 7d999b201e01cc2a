"""Generic HTTP capability provider.

POSTs the request as JSON and treats the response body as the result.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

import httpx

from service_guard.config.schema import ProviderConfig
from service_guard.fallback.base import CapabilityProvider, CapabilityRequest
from service_guard.health.errors import ProviderError

logger = logging.getLogger(__name__)


class HttpCapabilityProvider(CapabilityProvider):
    """Capability served by a remote HTTP endpoint."""

    def __init__(self, config: ProviderConfig, client: httpx.AsyncClient | None = None) -> None:
        self.name = config.name
        self._config = config
        headers = {"Authorization": f"Bearer {config.api_key}"} if config.api_key else None
        self._client = client or httpx.AsyncClient(timeout=30.0, headers=headers)
        self._owns_client = client is None

    async def generate(self, request: CapabilityRequest) -> bytes:
        resp = await self._client.post(self._config.url, json=request.to_payload())
        if not resp.is_success:
            raise ProviderError(self.name, f"HTTP {resp.status_code}")
        logger.debug("%s generated %d bytes", self.name, len(resp.content))
        return resp.content

    async def stream(self, request: CapabilityRequest) -> AsyncIterator[bytes]:
        async with self._client.stream(
            "POST", self._config.url, json=request.to_payload(),
        ) as resp:
            if not resp.is_success:
                raise ProviderError(self.name, f"HTTP {resp.status_code}")
            async for chunk in resp.aiter_bytes(self._config.chunk_size):
                yield chunk

    async def is_healthy(self) -> bool:
        url = self._config.health_url or self._config.url
        try:
            resp = await self._client.get(url)
            return resp.is_success
        except Exception:
            return False

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
