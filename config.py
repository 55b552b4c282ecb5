"""
Configuration management for AETHER playbooks.

This module provides centralized configuration with environment variable
validation and sensible defaults.
"""
import os
import sys
import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


def _split_list(raw: str) -> list:
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class CoreApiConfig:
    """AETHER Core API configuration."""
    base_url: str
    timeout_seconds: float

    @classmethod
    def from_env(cls) -> "CoreApiConfig":
        """Create configuration from environment variables."""
        return cls(
            base_url=os.environ.get("AETHER_CORE_URL", "http://localhost:8891").rstrip("/"),
            timeout_seconds=float(os.environ.get("AETHER_CORE_TIMEOUT", "10")),
        )

    def validate(self) -> list:
        """Validate configuration. Returns list of error messages."""
        errors = []
        if not self.base_url:
            errors.append("AETHER_CORE_URL is required")
        elif not self.base_url.startswith(("http://", "https://")):
            errors.append("AETHER_CORE_URL must start with http:// or https://")
        if self.timeout_seconds <= 0:
            errors.append("AETHER_CORE_TIMEOUT must be positive")
        return errors


@dataclass
class RunnerConfig:
    """Playbook runner configuration."""
    default_wait_seconds: float
    playbooks_file: Optional[str]
    restartable_services: list
    service_restart_timeout_seconds: int

    @classmethod
    def from_env(cls) -> "RunnerConfig":
        """Create configuration from environment variables."""
        return cls(
            default_wait_seconds=float(os.environ.get("AETHER_DEFAULT_WAIT_SECONDS", "5")),
            playbooks_file=os.environ.get("AETHER_PLAYBOOKS_FILE") or None,
            restartable_services=_split_list(
                os.environ.get("AETHER_RESTARTABLE_SERVICES", "aether-core")
            ),
            service_restart_timeout_seconds=int(
                os.environ.get("AETHER_SERVICE_RESTART_TIMEOUT", "30")
            ),
        )

    def validate(self) -> list:
        """Validate configuration. Returns list of error messages."""
        errors = []
        if self.default_wait_seconds < 0:
            errors.append("AETHER_DEFAULT_WAIT_SECONDS must not be negative")
        if self.playbooks_file and not os.path.isfile(self.playbooks_file):
            errors.append(f"AETHER_PLAYBOOKS_FILE not found: {self.playbooks_file}")
        if self.service_restart_timeout_seconds < 1:
            errors.append("AETHER_SERVICE_RESTART_TIMEOUT must be at least 1")
        return errors


@dataclass
class AppConfig:
    """Application configuration."""
    port: int
    debug: bool
    timezone: str

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create configuration from environment variables."""
        return cls(
            port=int(os.environ.get("PORT", "8892")),
            debug=os.environ.get("DEBUG", "").lower() in ("1", "true", "yes"),
            timezone=os.environ.get("AETHER_TIMEZONE", "UTC"),
        )

    def validate(self) -> list:
        """Validate configuration. Returns list of error messages."""
        errors = []
        if self.port < 1 or self.port > 65535:
            errors.append(f"PORT must be between 1 and 65535, got {self.port}")
        return errors


@dataclass
class Config:
    """Complete application configuration."""
    core: CoreApiConfig = field(default_factory=CoreApiConfig.from_env)
    runner: RunnerConfig = field(default_factory=RunnerConfig.from_env)
    app: AppConfig = field(default_factory=AppConfig.from_env)

    @classmethod
    def from_env(cls) -> "Config":
        """Create complete configuration from environment variables."""
        return cls(
            core=CoreApiConfig.from_env(),
            runner=RunnerConfig.from_env(),
            app=AppConfig.from_env(),
        )

    def validate(self, strict: bool = False) -> list:
        """
        Validate all configuration.

        Args:
            strict: If True, also require the restart allow-list to be set.

        Returns:
            List of error messages.
        """
        errors = []
        errors.extend(self.core.validate())
        errors.extend(self.runner.validate())
        errors.extend(self.app.validate())

        if strict and not self.runner.restartable_services:
            errors.append("AETHER_RESTARTABLE_SERVICES is required")

        return errors

    def validate_or_exit(self, strict: bool = False):
        """
        Validate configuration and exit if invalid.

        Args:
            strict: If True, require all optional settings to be configured.
        """
        errors = self.validate(strict=strict)
        if errors:
            logger.critical("Configuration validation failed:")
            for error in errors:
                logger.critical(f"  - {error}")
            sys.exit(1)

    def log_config(self):
        """Log configuration."""
        logger.info("Configuration loaded:")
        logger.info(f"  AETHER Core: {self.core.base_url} (timeout {self.core.timeout_seconds}s)")
        logger.info(f"  Playbooks file: {self.runner.playbooks_file or 'built-in'}")
        logger.info(f"  Restartable services: {', '.join(self.runner.restartable_services) or 'none'}")
        logger.info(f"  App Port: {self.app.port}")
        logger.info(f"  Timezone: {self.app.timezone}")


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reload_config() -> Config:
    """Reload configuration from environment."""
    global _config
    _config = Config.from_env()
    return _config
