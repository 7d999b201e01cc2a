"""Service health data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Protocol, Union, runtime_checkable

from service_guard.health.backoff import BackoffState
from service_guard.health.errors import FailureKind


class ServiceState(str, Enum):
    """Observed state of a monitored service."""

    ONLINE = "online"
    DEGRADED = "degraded"
    OFFLINE = "offline"
    ERROR = "error"


@runtime_checkable
class HealthCheckable(Protocol):
    """Anything that can report its own health, e.g. a capability provider."""

    async def is_healthy(self) -> bool: ...


ProbeTarget = Union[str, HealthCheckable]


@dataclass(frozen=True, eq=False)
class ServiceStatus:
    """Immutable snapshot produced by one probe.

    Two statuses compare equal when name, state, error message and the
    ``response_time_ms`` metric match; heartbeat and the remaining metrics
    are ignored so the monitor can suppress value-identical updates.
    """

    service_name: str
    state: ServiceState
    error_message: str | None = None
    last_heartbeat: datetime | None = None
    metrics: Mapping[str, Any] = field(default_factory=dict)
    failure: FailureKind | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "metrics", MappingProxyType(dict(self.metrics)))

    @property
    def is_healthy(self) -> bool:
        return self.state in (ServiceState.ONLINE, ServiceState.DEGRADED)

    @property
    def response_time_ms(self) -> int | None:
        return self.metrics.get("response_time_ms")

    @property
    def dedupe_key(self) -> tuple[str, ServiceState, str | None, Any]:
        return (self.service_name, self.state, self.error_message, self.response_time_ms)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ServiceStatus):
            return NotImplemented
        return self.dedupe_key == other.dedupe_key

    def __hash__(self) -> int:
        return hash(self.dedupe_key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "service_name": self.service_name,
            "state": self.state.value,
            "error_message": self.error_message,
            "last_heartbeat": self.last_heartbeat.isoformat() if self.last_heartbeat else None,
            "metrics": dict(self.metrics),
            "failure": self.failure.value if self.failure else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ServiceStatus:
        """Rebuild a status from :meth:`to_dict` output.

        Raises:
            KeyError / ValueError: if the payload is missing fields or holds
                an unknown state.
        """
        heartbeat = data.get("last_heartbeat")
        failure = data.get("failure")
        return cls(
            service_name=str(data["service_name"]),
            state=ServiceState(data["state"]),
            error_message=data.get("error_message"),
            last_heartbeat=datetime.fromisoformat(heartbeat) if heartbeat else None,
            metrics=dict(data.get("metrics") or {}),
            failure=FailureKind(failure) if failure else None,
        )


@dataclass
class ServiceEndpoint:
    """Registered service identity plus the bookkeeping HealthProbe owns."""

    name: str
    display_name: str
    target: ProbeTarget
    last_checked_at: datetime | None = None
    last_response_time_ms: int | None = None
    backoff: BackoffState = field(default_factory=BackoffState)

    @property
    def consecutive_failures(self) -> int:
        return self.backoff.consecutive_failures

    @property
    def last_check(self) -> float | None:
        return self.backoff.last_attempt

    @property
    def target_label(self) -> str:
        if isinstance(self.target, str):
            return self.target
        return getattr(self.target, "name", type(self.target).__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
