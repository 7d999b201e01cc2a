"""MQTT topic constants."""

from __future__ import annotations


def build_topics(prefix: str = "service_guard") -> dict[str, str]:
    """Build all MQTT topic strings from a configurable prefix."""
    return {
        "status": f"{prefix}/status",
        "service_status_all": f"{prefix}/services/+/status",
    }


def service_status_topic(prefix: str, service_name: str) -> str:
    """Build the status topic for one monitored service."""
    return f"{prefix}/services/{service_name}/status"


def service_name_from_topic(prefix: str, topic: str) -> str | None:
    """Inverse of :func:`service_status_topic`; None for unrelated topics."""
    head = f"{prefix}/services/"
    tail = "/status"
    if not topic.startswith(head) or not topic.endswith(tail):
        return None
    name = topic[len(head):-len(tail)]
    return name or None
