"""Capability provider contract and router result types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator


@dataclass(frozen=True)
class CapabilityRequest:
    """One logical capability request, e.g. text to synthesise."""

    text: str
    voice_id: str | None = None
    options: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.text or not self.text.strip()

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"text": self.text, **self.options}
        if self.voice_id:
            payload["voice_id"] = self.voice_id
        return payload


class CapabilityProvider(ABC):
    """Abstract base for interchangeable capability providers."""

    name: str = "provider"

    @abstractmethod
    async def generate(self, request: CapabilityRequest) -> bytes:
        """Produce the full result. Empty bytes count as a failure."""
        ...

    @abstractmethod
    def stream(self, request: CapabilityRequest) -> AsyncIterator[bytes]:
        """Produce the result as a sequence of chunks."""
        ...

    @abstractmethod
    async def is_healthy(self) -> bool:
        """Check if the provider is reachable."""
        ...

    async def close(self) -> None:
        """Release any held resources."""


class RouteOutcome(str, Enum):
    SUCCESS = "success"
    EXHAUSTED = "exhausted"
    NO_PROVIDERS_AVAILABLE = "no_providers_available"
    EMPTY_REQUEST = "empty_request"


@dataclass
class RouteResult:
    """Outcome of :meth:`FallbackRouter.execute`. Falsy unless it carries data."""

    data: bytes = b""
    provider: str | None = None
    outcome: RouteOutcome = RouteOutcome.EXHAUSTED
    attempts: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.outcome == RouteOutcome.SUCCESS

    def __bool__(self) -> bool:
        return self.ok and bool(self.data)
