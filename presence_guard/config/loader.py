"""
Configuration loader for YAML-based application configuration.

This module provides utilities to load and validate configuration from YAML
files. All configuration is validated using Pydantic models to ensure type
safety and catch configuration errors early.

Configuration files expected:
    - config/thresholds.yaml: Alert level thresholds and cache lifetime
    - config/engine.yaml: Engine component settings

Environment variables override:
    - REDIS_URL: Redis connection URL
    - LOG_LEVEL: Application log level
    - NOTIFY_WEBHOOK_URL: Webhook used by the platform notifier

Example:
    >>> from presence_guard.config.loader import load_config
    >>> config = load_config("config")
    >>> config.thresholds.defaults.danger_duration
    datetime.timedelta(days=2)
"""

import os
from pathlib import Path
from typing import Any, Dict, Union

import yaml
from pydantic import ValidationError

from presence_guard.config.models import (
    AppConfig,
    DispatcherSettings,
    HeartbeatSettings,
    LoggingConfig,
    LogLevel,
    NotifierConfig,
    QuietHoursConfig,
    RedisConnectionConfig,
    RedisStorageConfig,
    SchedulerSettings,
    ThresholdConfig,
    ThresholdSettings,
    ValidatorSettings,
)
from presence_guard.exceptions import ConfigLoadError
from presence_guard.models.presence import AlertLevel


class ConfigLoader:
    """
    Loads and validates application configuration from YAML files.

    Expects the following directory structure:
        config/
        ├── thresholds.yaml  - Alert level thresholds
        └── engine.yaml      - Heartbeat, validator, scheduler, dispatcher,
                               notifier, storage and logging settings

    Example:
        >>> loader = ConfigLoader("config")
        >>> config = loader.load()
        >>> config.scheduler.tick_interval_seconds
        300
    """

    def __init__(self, config_dir: Union[Path, str] = "config"):
        """
        Initialize config loader.

        Args:
            config_dir: Path to configuration directory (default: 'config').

        Raises:
            ConfigLoadError: If config directory does not exist.
        """
        self.config_dir = Path(config_dir)
        if not self.config_dir.exists():
            raise ConfigLoadError(
                f"Configuration directory not found: {self.config_dir}",
                file_path=self.config_dir,
            )
        if not self.config_dir.is_dir():
            raise ConfigLoadError(
                f"Configuration path is not a directory: {self.config_dir}",
                file_path=self.config_dir,
            )

    def _load_yaml(self, filename: str) -> Dict[str, Any]:
        """
        Load a YAML file from the config directory.

        Args:
            filename: Name of YAML file (e.g., 'engine.yaml').

        Returns:
            Dict containing parsed YAML content.

        Raises:
            ConfigLoadError: If file not found, empty, or invalid YAML.
        """
        file_path = self.config_dir / filename
        if not file_path.exists():
            raise ConfigLoadError(
                f"Configuration file not found: {file_path}",
                file_path=file_path,
            )

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigLoadError(
                f"Invalid YAML syntax in {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e
        except OSError as e:
            raise ConfigLoadError(
                f"Error reading {file_path}: {e}",
                file_path=file_path,
                cause=e,
            ) from e

        if data is None:
            raise ConfigLoadError(
                f"Configuration file is empty: {file_path}",
                file_path=file_path,
            )
        if not isinstance(data, dict):
            raise ConfigLoadError(
                f"Configuration file must contain a mapping: {file_path}",
                file_path=file_path,
            )
        return data

    def _load_thresholds(self) -> ThresholdSettings:
        """
        Load threshold settings from thresholds.yaml.

        Returns:
            ThresholdSettings object.

        Raises:
            ConfigLoadError: If the thresholds are missing or out of order.
        """
        data = self._load_yaml("thresholds.yaml")

        try:
            defaults = ThresholdConfig.from_hours(
                warning=float(data.get("warning_hours", 24)),
                danger=float(data.get("danger_hours", 48)),
                emergency=float(data.get("emergency_hours", 72)),
            )
            return ThresholdSettings(
                defaults=defaults,
                cache_seconds=data.get("cache_seconds", 300),
            )
        except (ValidationError, TypeError, ValueError, OverflowError) as e:
            raise ConfigLoadError(
                f"Invalid threshold configuration: {e}",
                file_path=self.config_dir / "thresholds.yaml",
                cause=e,
            ) from e

    def _load_engine(self) -> Dict[str, Any]:
        """
        Load component settings from engine.yaml.

        Returns:
            Dict of section name to validated settings object.

        Raises:
            ConfigLoadError: If validation fails.
        """
        data = self._load_yaml("engine.yaml")

        try:
            # Parse dispatcher, including per-level overrides and quiet hours
            dispatcher_data = dict(data.get("dispatcher", {}))
            quiet_data = dispatcher_data.pop("quiet_hours", {})
            raw_levels = dispatcher_data.pop("level_cooldown_seconds", {})
            level_cooldowns = {
                AlertLevel(level): seconds for level, seconds in raw_levels.items()
            }
            dispatcher = DispatcherSettings(
                **dispatcher_data,
                level_cooldown_seconds=level_cooldowns,
                quiet_hours=QuietHoursConfig(**quiet_data),
            )

            # Parse notifier, webhook may come from the environment
            notifier_data = dict(data.get("notifier", {}))
            webhook_url = os.getenv("NOTIFY_WEBHOOK_URL")
            if webhook_url:
                notifier_data["webhook_url"] = webhook_url

            # Parse logging
            logging_data = data.get("logging", {})
            logging_config = LoggingConfig(
                format=logging_data.get("format", "json"),
                level=logging_data.get("level", "INFO"),
            )

            return {
                "heartbeat": HeartbeatSettings(**data.get("heartbeat", {})),
                "validator": ValidatorSettings(**data.get("validator", {})),
                "scheduler": SchedulerSettings(**data.get("scheduler", {})),
                "dispatcher": dispatcher,
                "notifier": NotifierConfig(**notifier_data),
                "storage": RedisStorageConfig(**data.get("storage", {})),
                "logging": logging_config,
            }

        except ValidationError as e:
            raise ConfigLoadError(
                f"Invalid engine configuration: {e}",
                file_path=self.config_dir / "engine.yaml",
                cause=e,
            ) from e
        except (TypeError, ValueError) as e:
            raise ConfigLoadError(
                f"Malformed section in engine configuration: {e}",
                file_path=self.config_dir / "engine.yaml",
                cause=e,
            ) from e

    def _load_redis_connection(self) -> RedisConnectionConfig:
        """
        Load Redis connection configuration from environment.

        Environment variables:
            - REDIS_URL: Redis connection URL (default: redis://localhost:6379)

        Returns:
            RedisConnectionConfig object.
        """
        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379")
        return RedisConnectionConfig(url=redis_url)

    def _get_log_level(self, default: LogLevel) -> LogLevel:
        """
        Get log level from environment.

        Environment variables:
            - LOG_LEVEL: Log level (falls back to the engine.yaml level)

        Returns:
            LogLevel enum value.
        """
        level_str = os.getenv("LOG_LEVEL")
        if not level_str:
            return default
        try:
            return LogLevel(level_str.upper())
        except ValueError:
            return default

    def load(self) -> AppConfig:
        """
        Load and validate all configuration files.

        This is the main entry point for loading configuration. It loads
        all YAML files, merges environment variables, and returns a fully
        validated AppConfig object.

        Returns:
            AppConfig: Validated application configuration.

        Raises:
            ConfigLoadError: If any configuration is invalid or missing.
        """
        try:
            thresholds = self._load_thresholds()
            sections = self._load_engine()
            redis = self._load_redis_connection()
            logging_config = sections["logging"]
            sections["logging"] = logging_config.model_copy(
                update={"level": self._get_log_level(logging_config.level)}
            )

            return AppConfig(
                thresholds=thresholds,
                redis=redis,
                **sections,
            )

        except ConfigLoadError:
            raise
        except ValidationError as e:
            raise ConfigLoadError(
                f"Configuration validation failed: {e}",
                cause=e,
            ) from e
        except Exception as e:
            raise ConfigLoadError(
                f"Unexpected error loading configuration: {e}",
                cause=e,
            ) from e


def load_config(config_dir: Union[Path, str] = "config") -> AppConfig:
    """
    Convenience function to load application configuration.

    Args:
        config_dir: Path to configuration directory (default: 'config').

    Returns:
        AppConfig: Validated application configuration.

    Raises:
        ConfigLoadError: If configuration loading fails.

    Example:
        >>> from presence_guard.config import load_config
        >>> config = load_config()
        >>> config.dispatcher.cooldown_for(AlertLevel.EMERGENCY)
        300
    """
    loader = ConfigLoader(config_dir)
    return loader.load()
