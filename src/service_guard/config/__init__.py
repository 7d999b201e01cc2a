"""Configuration management for Service Guard."""

from service_guard.config.schema import AppConfig
from service_guard.config.manager import ConfigManager

__all__ = ["AppConfig", "ConfigManager"]
