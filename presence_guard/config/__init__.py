"""
Configuration management for the liveness engine.

This module handles loading and validating configuration from YAML files.
All configuration values are validated using Pydantic models so that an
invalid threshold ordering or an out-of-range setting is caught at startup.

Configuration is loaded from YAML files in the config/ directory:
    - thresholds.yaml: Alert level thresholds
    - engine.yaml: Component settings

Environment variables can override connection settings:
    - REDIS_URL: Redis connection URL
    - LOG_LEVEL: Application log level
    - NOTIFY_WEBHOOK_URL: Webhook used by the platform notifier

Example:
    >>> from presence_guard.config import load_config, ThresholdConfigProvider
    >>> config = load_config()
    >>> provider = ThresholdConfigProvider(defaults=config.thresholds.defaults)

Modules:
    loader: Configuration file loading utilities
    models: Pydantic models for configuration validation
    thresholds: Cached, validated threshold provider
"""

from presence_guard.config.loader import ConfigLoader, load_config
from presence_guard.config.models import (
    # Enums
    LogFormat,
    LogLevel,
    # Thresholds
    DEFAULT_THRESHOLDS,
    ThresholdConfig,
    ThresholdSettings,
    # Engine sections
    DispatcherSettings,
    HeartbeatSettings,
    NotifierConfig,
    QuietHoursConfig,
    SchedulerSettings,
    ValidatorSettings,
    # Storage and logging
    LoggingConfig,
    RedisConnectionConfig,
    RedisStorageConfig,
    # Root
    AppConfig,
)
from presence_guard.config.thresholds import ThresholdConfigProvider
from presence_guard.exceptions import ConfigLoadError

__all__ = [
    # Loader
    "ConfigLoader",
    "ConfigLoadError",
    "load_config",
    # Enums
    "LogFormat",
    "LogLevel",
    # Thresholds
    "DEFAULT_THRESHOLDS",
    "ThresholdConfig",
    "ThresholdSettings",
    "ThresholdConfigProvider",
    # Engine sections
    "HeartbeatSettings",
    "ValidatorSettings",
    "SchedulerSettings",
    "DispatcherSettings",
    "QuietHoursConfig",
    "NotifierConfig",
    # Storage and logging
    "LoggingConfig",
    "RedisConnectionConfig",
    "RedisStorageConfig",
    # Root
    "AppConfig",
]
