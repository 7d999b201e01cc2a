"""Pydantic configuration models for all system settings."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class ServiceConfig(BaseModel):
    name: str
    url: str
    display_name: str = ""
    enabled: bool = True


class ProbeConfig(BaseModel):
    timeout_seconds: float = Field(10.0, gt=0)
    fast_latency_ms: int = Field(100, ge=0)  # below = Online, at/above = Degraded
    backoff_base: float = Field(2.0, gt=1.0)
    max_backoff_seconds: float = Field(300.0, gt=0)
    jitter: float = Field(0.3, ge=0.0, lt=1.0)  # upper bound of uniform jitter fraction
    max_consecutive_failures: int = Field(3, ge=1)
    cooldown_seconds: float = Field(300.0, gt=0)


class MonitorConfig(BaseModel):
    interval_seconds: float = Field(5.0, gt=0)
    auto_start: bool = True
    subscriber_queue_size: int = Field(100, ge=1)


class FallbackConfig(BaseModel):
    max_failures: int = Field(3, ge=1)
    cooldown_seconds: float = Field(300.0, gt=0)
    attempt_timeout_seconds: float = Field(30.0, gt=0)


class ProviderConfig(BaseModel):
    name: str
    type: str = "http"  # "http" or "static"
    url: str = ""
    health_url: str = ""
    api_key: str = ""
    payload: str = ""  # static provider only, UTF-8 encoded on use
    chunk_size: int = Field(4096, ge=1)
    enabled: bool = True


class MQTTConfig(BaseModel):
    enabled: bool = True
    broker_host: str = "localhost"
    broker_port: int = 1883
    username: str = ""
    password: str = ""
    topic_prefix: str = "service_guard"
    instance_id: str = ""  # empty = generated at startup


class DashboardConfig(BaseModel):
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = 8080
    sse_keepalive_seconds: int = 15


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "json"
    file: str = ""


class AppConfig(BaseModel):
    """Root configuration model containing all system settings."""

    services: list[ServiceConfig] = Field(default_factory=list)
    probe: ProbeConfig = ProbeConfig()
    monitor: MonitorConfig = MonitorConfig()
    fallback: FallbackConfig = FallbackConfig()
    providers: list[ProviderConfig] = Field(default_factory=list)
    mqtt: MQTTConfig = MQTTConfig()
    dashboard: DashboardConfig = DashboardConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("services")
    @classmethod
    def _unique_service_names(cls, value: list[ServiceConfig]) -> list[ServiceConfig]:
        names = [s.name for s in value]
        if len(names) != len(set(names)):
            raise ValueError("service names must be unique")
        return value

    @field_validator("providers")
    @classmethod
    def _unique_provider_names(cls, value: list[ProviderConfig]) -> list[ProviderConfig]:
        names = [p.name for p in value]
        if len(names) != len(set(names)):
            raise ValueError("provider names must be unique")
        return value
