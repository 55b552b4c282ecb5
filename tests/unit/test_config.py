"""Unit tests for config module."""
import os
from unittest.mock import patch

import pytest


class TestCoreApiConfig:
    """Tests for CoreApiConfig."""

    def test_from_env(self):
        """Test values are read from the environment."""
        from config import CoreApiConfig

        config = CoreApiConfig.from_env()

        assert config.base_url == "http://core.test:8891"
        assert config.timeout_seconds == 5.0
        assert config.validate() == []

    def test_defaults(self):
        """Test defaults point at a local Core."""
        from config import CoreApiConfig

        with patch.dict(os.environ, {}, clear=True):
            config = CoreApiConfig.from_env()

        assert config.base_url == "http://localhost:8891"
        assert config.timeout_seconds == 10.0

    def test_invalid_values(self):
        """Test scheme and timeout are validated."""
        from config import CoreApiConfig

        errors = CoreApiConfig(base_url="core:8891", timeout_seconds=0).validate()

        assert "AETHER_CORE_URL must start with http:// or https://" in errors
        assert "AETHER_CORE_TIMEOUT must be positive" in errors


class TestRunnerConfig:
    """Tests for RunnerConfig."""

    def test_from_env(self):
        """Test runner settings are read from the environment."""
        from config import RunnerConfig

        with patch.dict(os.environ, {
            "AETHER_RESTARTABLE_SERVICES": "aether-core, aether-dmx ,",
            "AETHER_DEFAULT_WAIT_SECONDS": "2.5",
        }):
            config = RunnerConfig.from_env()

        assert config.restartable_services == ["aether-core", "aether-dmx"]
        assert config.default_wait_seconds == 2.5
        assert config.playbooks_file is None
        assert config.service_restart_timeout_seconds == 30

    def test_missing_playbooks_file(self, tmp_path):
        """Test a playbooks file that does not exist is reported."""
        from config import RunnerConfig

        config = RunnerConfig(
            default_wait_seconds=-1,
            playbooks_file=str(tmp_path / "missing.yaml"),
            restartable_services=[],
            service_restart_timeout_seconds=0,
        )

        errors = config.validate()

        assert len(errors) == 3
        assert any("AETHER_PLAYBOOKS_FILE not found" in e for e in errors)


class TestConfig:
    """Tests for the combined Config."""

    def test_strict_requires_restartable_services(self):
        """Test strict validation needs an allow-list."""
        import config as config_module

        with patch.dict(os.environ, {"AETHER_RESTARTABLE_SERVICES": ""}):
            config = config_module.Config.from_env()

        assert config.validate() == []
        assert config.validate(strict=True) == ["AETHER_RESTARTABLE_SERVICES is required"]

    def test_validate_or_exit(self):
        """Test invalid configuration exits."""
        import config as config_module

        with patch.dict(os.environ, {"PORT": "70000"}):
            config = config_module.Config.from_env()

        with pytest.raises(SystemExit):
            config.validate_or_exit()

    def test_get_config_cached_and_reloaded(self):
        """Test the global config is cached until reloaded."""
        import config as config_module

        first = config_module.get_config()
        assert config_module.get_config() is first

        with patch.dict(os.environ, {"PORT": "9000"}):
            reloaded = config_module.reload_config()

        assert reloaded is not first
        assert reloaded.app.port == 9000

    def test_log_config(self, caplog):
        """Test the summary is logged."""
        import logging

        import config as config_module

        with caplog.at_level(logging.INFO, logger="config"):
            config_module.get_config().log_config()

        assert "AETHER Core: http://core.test:8891" in caplog.text
        assert "Restartable services: aether-core" in caplog.text
