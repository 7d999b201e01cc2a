"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from service_guard.config.manager import ConfigManager
from service_guard.config.schema import AppConfig, ProbeConfig


class TestAppConfig:
    def test_default_config_is_valid(self) -> None:
        config = AppConfig()
        assert config.probe.timeout_seconds == 10
        assert config.probe.fast_latency_ms == 100
        assert config.probe.max_consecutive_failures == 3
        assert config.probe.cooldown_seconds == 300
        assert config.monitor.interval_seconds == 5
        assert config.fallback.max_failures == 3
        assert config.services == []

    def test_custom_values(self) -> None:
        config = AppConfig(
            services=[{"name": "llm-engine", "url": "http://llm/health"}],
            fallback={"max_failures": 5, "cooldown_seconds": 60},
        )
        assert config.services[0].name == "llm-engine"
        assert config.services[0].enabled is True
        assert config.fallback.max_failures == 5

    def test_duplicate_service_names_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(services=[
                {"name": "a", "url": "http://a"},
                {"name": "a", "url": "http://b"},
            ])

    def test_duplicate_provider_names_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AppConfig(providers=[{"name": "p"}, {"name": "p", "type": "static"}])

    def test_jitter_must_be_below_one(self) -> None:
        with pytest.raises(ValidationError):
            ProbeConfig(jitter=1.0)

    def test_thresholds_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ProbeConfig(max_consecutive_failures=0)
        with pytest.raises(ValidationError):
            ProbeConfig(timeout_seconds=0)


class TestConfigManager:
    def test_load_defaults_only(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("probe:\n  cooldown_seconds: 120\n")
        mgr = ConfigManager(defaults_path=defaults_file, user_path=tmp_path / "user.yaml")
        config = mgr.load()
        assert config.probe.cooldown_seconds == 120

    def test_load_logs_enabled_services_and_providers(self, tmp_path: Path, caplog) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text(
            "services:\n"
            "  - name: llm-engine\n"
            "    url: http://llm.test/health\n"
            "  - name: vision-api\n"
            "    url: http://vision.test/health\n"
            "    enabled: false\n"
            "providers:\n"
            "  - name: beep\n"
            "    type: static\n"
            "mqtt:\n"
            "  enabled: false\n"
        )
        mgr = ConfigManager(defaults_path=defaults_file, user_path=tmp_path / "user.yaml")
        with caplog.at_level("INFO", logger="service_guard.config.manager"):
            mgr.load()
        message = caplog.records[-1].getMessage()
        assert "services=llm-engine " in message
        assert "providers=beep" in message
        assert "overrides: none" in message
        assert "mqtt=off" in message

    def test_user_overrides(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text("probe:\n  cooldown_seconds: 120\n  timeout_seconds: 4\n")
        user_file = tmp_path / "user.yaml"
        user_file.write_text("probe:\n  cooldown_seconds: 30\n")
        mgr = ConfigManager(defaults_path=defaults_file, user_path=user_file)
        config = mgr.load()
        assert config.probe.cooldown_seconds == 30
        assert config.probe.timeout_seconds == 4

    def test_user_service_list_replaces_defaults(self, tmp_path: Path) -> None:
        defaults_file = tmp_path / "defaults.yaml"
        defaults_file.write_text(
            "services:\n  - name: a\n    url: http://a\n  - name: b\n    url: http://b\n"
        )
        user_file = tmp_path / "user.yaml"
        user_file.write_text("services:\n  - name: c\n    url: http://c\n")
        config = ConfigManager(defaults_file, user_file).load()
        assert [s.name for s in config.services] == ["c"]

    def test_deep_merge(self) -> None:
        base = {"a": {"b": 1, "c": 2}, "d": 3}
        override = {"a": {"b": 10}, "e": 5}
        result = ConfigManager._deep_merge(base, override)
        assert result == {"a": {"b": 10, "c": 2}, "d": 3, "e": 5}

    def test_save_user_config(self, config_manager: ConfigManager) -> None:
        config = config_manager.save_user_config({"monitor": {"interval_seconds": 2}})
        assert config.monitor.interval_seconds == 2
        assert config.services[0].name == "llm-engine"
        assert config_manager.get_raw()["monitor"]["interval_seconds"] == 2

    def test_to_json(self, config_manager: ConfigManager) -> None:
        json_str = config_manager.to_json()
        assert '"llm-engine"' in json_str
        assert '"fast_latency_ms"' in json_str

    def test_config_before_load_raises(self, tmp_path: Path) -> None:
        mgr = ConfigManager(tmp_path / "d.yaml", tmp_path / "u.yaml")
        with pytest.raises(RuntimeError):
            _ = mgr.config

    def test_shipped_defaults_are_valid(self) -> None:
        defaults = Path(__file__).parent.parent / "config.defaults.yaml"
        config = ConfigManager(defaults, defaults.parent / "missing.yaml").load()
        assert {s.name for s in config.services} == {"llm-engine", "vision-api", "signalr-hub"}
