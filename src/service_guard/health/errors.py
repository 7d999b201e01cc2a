"""Failure taxonomy and diagnostic error codes."""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Classified reason a probe or provider attempt did not succeed."""

    NOT_REGISTERED = "not_registered"
    BACKOFF = "backoff"
    TIMEOUT = "timeout"
    CONNECTION_FAILURE = "connection_failure"
    PROTOCOL_FAILURE = "protocol_failure"
    UNHEALTHY = "unhealthy"
    UNEXPECTED_FAILURE = "unexpected_failure"
    NO_PROVIDERS_AVAILABLE = "no_providers_available"


class ErrorCode(str, Enum):
    """Diagnostic codes reported in ``ServiceStatus.metrics["error_code"]``."""

    NOT_REGISTERED = "SRV-NOT-REG-001"
    BACKOFF = "SRV-BACKOFF-001"
    TIMEOUT = "SRV-TIMEOUT-001"
    CONNECTION = "SRV-CONN-001"
    UNHEALTHY = "SRV-UNHEALTHY-001"
    UNKNOWN = "SRV-UNKNOWN-001"


def http_error_code(status_code: int) -> str:
    """Error code for a non-success HTTP response."""
    return f"HTTP-{status_code}-001"


class ProviderError(Exception):
    """Raised by a capability provider when it cannot serve a request."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")
