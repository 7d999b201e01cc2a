"""Configuration loading, saving, and validation."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from service_guard.config.schema import AppConfig

logger = logging.getLogger(__name__)


class ConfigManager:
    """Loads the service-guard configuration and keeps operator edits apart.

    ``config.defaults.yaml`` ships the monitored services, the ordered
    capability providers and the probe, fallback, MQTT and dashboard
    settings. ``config.yaml`` holds only what an operator overrides; it is
    deep-merged on top and the result is validated as an ``AppConfig``,
    which rejects duplicate service or provider names.
    """

    def __init__(
        self,
        defaults_path: Path | None = None,
        user_path: Path | None = None,
    ) -> None:
        self._defaults_path = defaults_path or Path("config.defaults.yaml")
        self._user_path = user_path or Path("config.yaml")
        self._config: AppConfig | None = None
        self._raw: dict[str, Any] = {}

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            raise RuntimeError("Config not loaded. Call load() first.")
        return self._config

    def load(self) -> AppConfig:
        """Load configuration from defaults + user overrides."""
        defaults = self._load_yaml(self._defaults_path)
        overrides = self._load_yaml(self._user_path) if self._user_path.exists() else {}
        merged = self._deep_merge(defaults, overrides)
        self._raw = merged
        self._config = AppConfig.model_validate(merged)
        enabled = [s.name for s in self._config.services if s.enabled]
        providers = [p.name for p in self._config.providers if p.enabled]
        logger.info(
            "Configuration loaded from %s (overrides: %s): services=%s providers=%s mqtt=%s",
            self._defaults_path, self._user_path if overrides else "none",
            ",".join(enabled) or "-", ",".join(providers) or "-",
            "on" if self._config.mqtt.enabled else "off",
        )
        return self._config

    def get_raw(self) -> dict[str, Any]:
        return dict(self._raw)

    def to_json(self) -> str:
        return self.config.model_dump_json(indent=2)

    def save_user_config(self, updates: dict[str, Any]) -> AppConfig:
        """Apply updates to user config file and reload."""
        current = self._load_yaml(self._user_path) if self._user_path.exists() else {}
        merged = self._deep_merge(current, updates)
        with open(self._user_path, "w") as f:
            yaml.dump(merged, f, default_flow_style=False, sort_keys=False)
        return self.load()

    @staticmethod
    def _load_yaml(path: Path) -> dict[str, Any]:
        if not path.exists():
            return {}
        with open(path) as f:
            data = yaml.safe_load(f)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        """Recursively merge override into base, returning a new dict.

        Lists are replaced wholesale, so a user file listing ``services``
        supersedes the default service list rather than appending to it.
        """
        result = dict(base)
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = ConfigManager._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
