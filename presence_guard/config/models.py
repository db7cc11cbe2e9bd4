"""
Pydantic models for application configuration.

This module defines all configuration models that are validated when loading
YAML configuration files. The models ensure type safety and provide the
reference defaults for every tunable of the engine.

Configuration files:
    - config/thresholds.yaml: Alert level thresholds
    - config/engine.yaml: Heartbeat, validator, scheduler, dispatcher,
      notifier, storage and logging settings

Example:
    >>> from presence_guard.config.models import ThresholdConfig
    >>> thresholds = ThresholdConfig.from_hours(24, 48, 72)
    >>> thresholds.warning_duration
    datetime.timedelta(days=1)
"""

from datetime import timedelta
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from presence_guard.models.presence import AlertLevel


# =============================================================================
# ENUMS
# =============================================================================


class LogFormat(str, Enum):
    """Logging format options."""

    JSON = "json"
    TEXT = "text"


class LogLevel(str, Enum):
    """Logging level options."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# =============================================================================
# THRESHOLD CONFIGURATION
# =============================================================================


class ThresholdConfig(BaseModel):
    """
    Ordered silence durations that separate the alert levels.

    Invariant: 0 < warning_duration < danger_duration < emergency_duration.
    A mapping violating it fails validation, so an invalid config can never
    be constructed; callers keep their previous config instead.

    Example:
        >>> ThresholdConfig(
        ...     warning_duration=timedelta(hours=24),
        ...     danger_duration=timedelta(hours=48),
        ...     emergency_duration=timedelta(hours=72),
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    warning_duration: timedelta = Field(
        default=timedelta(hours=24),
        description="Silence before the warning level",
    )
    danger_duration: timedelta = Field(
        default=timedelta(hours=48),
        description="Silence before the danger level",
    )
    emergency_duration: timedelta = Field(
        default=timedelta(hours=72),
        description="Silence before the emergency level",
    )

    @model_validator(mode="after")
    def validate_ordering(self) -> "ThresholdConfig":
        """Enforce positive, strictly increasing durations."""
        if self.warning_duration <= timedelta(0):
            raise ValueError("warning_duration must be positive")
        if self.warning_duration >= self.danger_duration:
            raise ValueError("warning_duration must be shorter than danger_duration")
        if self.danger_duration >= self.emergency_duration:
            raise ValueError("danger_duration must be shorter than emergency_duration")
        return self

    @classmethod
    def from_hours(
        cls,
        warning: float,
        danger: float,
        emergency: float,
    ) -> "ThresholdConfig":
        """
        Build a config from hour values.

        Args:
            warning: Hours before the warning level.
            danger: Hours before the danger level.
            emergency: Hours before the emergency level.

        Returns:
            ThresholdConfig: The validated config.

        Raises:
            pydantic.ValidationError: If the ordering invariant is violated.
            OverflowError: If an hour value does not fit a timedelta.
        """
        return cls(
            warning_duration=timedelta(hours=warning),
            danger_duration=timedelta(hours=danger),
            emergency_duration=timedelta(hours=emergency),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ThresholdConfig":
        """
        Build a config from a raw settings mapping.

        Accepts either ``*_duration`` keys (seconds or ISO-8601 durations)
        or ``*_hours`` keys as stored by the admin settings document.

        Raises:
            pydantic.ValidationError: If values are missing or out of order.
        """
        if "warning_hours" in data or "danger_hours" in data or "emergency_hours" in data:
            return cls.from_hours(
                warning=float(data.get("warning_hours", 24)),
                danger=float(data.get("danger_hours", 48)),
                emergency=float(data.get("emergency_hours", 72)),
            )
        return cls.model_validate(
            {
                key: data[key]
                for key in ("warning_duration", "danger_duration", "emergency_duration")
                if key in data
            }
        )


DEFAULT_THRESHOLDS = ThresholdConfig()


class ThresholdSettings(BaseModel):
    """Threshold provider settings (thresholds.yaml)."""

    model_config = {"frozen": True, "extra": "forbid"}

    defaults: ThresholdConfig = Field(
        default_factory=ThresholdConfig,
        description="Thresholds used until a remote source answers",
    )
    cache_seconds: int = Field(
        default=300,
        description="How long a fetched config is reused",
        ge=0,
    )


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================


class HeartbeatSettings(BaseModel):
    """Heartbeat emitter settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    motion_cooldown_seconds: float = Field(
        default=5.0,
        description="Minimum spacing between accepted motion events",
        ge=0,
    )
    max_motions_per_hour: int = Field(
        default=10,
        description="Accepted motion events per wall-clock hour",
        ge=1,
    )
    periodic_interval_seconds: int = Field(
        default=3600,
        description="Background heartbeat interval, independent of motion",
        ge=1,
    )
    min_intensity: float = Field(
        default=0.0,
        description="Motion intensity below which events are ignored as noise",
        ge=0,
    )


class ValidatorSettings(BaseModel):
    """Anti-spoofing validator settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    max_drift_ms: int = Field(
        default=30_000,
        description="Maximum allowed |server - claimed| time in milliseconds",
        ge=0,
    )
    rate_limit_max_requests: int = Field(
        default=10,
        description="Requests accepted per user within the window",
        ge=1,
    )
    rate_limit_window_seconds: int = Field(
        default=60,
        description="Sliding rate-limit window",
        ge=1,
    )
    max_daily_motion_count: int = Field(
        default=10_000,
        description="Implausible daily motion count bound",
        ge=1,
    )
    rapid_transition_seconds: int = Field(
        default=60,
        description="Transitions closer than this are flagged",
        ge=0,
    )
    danger_recovery_seconds: int = Field(
        default=3600,
        description="danger -> normal faster than this is flagged",
        ge=0,
    )
    repeated_transition_limit: int = Field(
        default=5,
        description="Transitions into the same level per hour before flagging",
        ge=1,
    )
    audit_history_size: int = Field(
        default=1000,
        description="Suspicious activity entries kept in memory",
        ge=1,
    )
    max_tracked_users: int = Field(
        default=10_000,
        description="Upper bound on per-user in-memory windows",
        ge=1,
    )


class SchedulerSettings(BaseModel):
    """Escalation scheduler settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    tick_interval_seconds: int = Field(
        default=300,
        description="Period between escalation ticks",
        ge=1,
    )
    store_timeout_seconds: float = Field(
        default=5.0,
        description="Bound on each presence store call during a tick",
        gt=0,
    )


class QuietHoursConfig(BaseModel):
    """Local hours during which non-emergency notifications are held back."""

    model_config = {"frozen": True, "extra": "forbid"}

    enabled: bool = Field(
        default=False,
        description="Whether quiet hours apply",
    )
    start_hour: int = Field(
        default=22,
        description="First quiet hour (0-23)",
        ge=0,
        le=23,
    )
    end_hour: int = Field(
        default=8,
        description="First non-quiet hour (0-23)",
        ge=0,
        le=23,
    )
    utc_offset_hours: float = Field(
        default=0.0,
        description="Offset of the observers' local time from UTC",
        ge=-14,
        le=14,
    )

    def is_quiet(self, hour: int) -> bool:
        """Check if a local hour falls in the quiet window (wraps midnight)."""
        if not self.enabled:
            return False
        if self.start_hour > self.end_hour:
            return hour >= self.start_hour or hour < self.end_hour
        return self.start_hour <= hour < self.end_hour


class DispatcherSettings(BaseModel):
    """Notification dispatcher settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    cooldown_seconds: int = Field(
        default=300,
        description="Minimum interval between notifications per (person, level)",
        ge=1,
    )
    level_cooldown_seconds: Dict[AlertLevel, int] = Field(
        default_factory=dict,
        description="Per-level cooldown overrides",
    )
    notify_timeout_seconds: float = Field(
        default=10.0,
        description="Bound on each platform notifier call",
        gt=0,
    )
    history_size: int = Field(
        default=100,
        description="Delivered notifications kept in memory",
        ge=1,
    )
    max_tracked_keys: int = Field(
        default=10_000,
        description="Upper bound on cooldown entries held in memory",
        ge=1,
    )
    quiet_hours: QuietHoursConfig = Field(
        default_factory=QuietHoursConfig,
        description="Quiet hours configuration",
    )

    @field_validator("level_cooldown_seconds")
    @classmethod
    def validate_level_cooldowns(cls, v: Dict[AlertLevel, int]) -> Dict[AlertLevel, int]:
        """Reject non-positive overrides."""
        for level, seconds in v.items():
            if seconds <= 0:
                raise ValueError(f"cooldown for {level.value} must be positive")
        return v

    def cooldown_for(self, level: AlertLevel) -> int:
        """Cooldown window in seconds for a level."""
        return self.level_cooldown_seconds.get(level, self.cooldown_seconds)


class NotifierConfig(BaseModel):
    """Platform notifier configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    webhook_url: Optional[str] = Field(
        default=None,
        description="JSON webhook for push delivery; log-only when unset",
    )
    timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for webhook delivery",
        gt=0,
    )


class RedisStorageConfig(BaseModel):
    """Redis key layout and retention."""

    model_config = {"frozen": True, "extra": "forbid"}

    key_prefix: str = Field(
        default="presence",
        description="Prefix for all keys and channels",
        min_length=1,
    )
    heartbeat_retention_days: int = Field(
        default=30,
        description="Days of heartbeats kept per user",
        ge=1,
    )
    security_log_retention_days: int = Field(
        default=90,
        description="Days of security log entries kept per user",
        ge=1,
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    format: LogFormat = Field(
        default=LogFormat.JSON,
        description="Log output format",
    )
    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Default log level",
    )


# =============================================================================
# CONNECTION CONFIGURATION (from environment)
# =============================================================================


class RedisConnectionConfig(BaseModel):
    """Redis connection configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    url: str = Field(
        default="redis://localhost:6379",
        description="Redis connection URL",
    )
    db: int = Field(
        default=0,
        description="Redis database number",
        ge=0,
    )
    max_connections: int = Field(
        default=10,
        description="Maximum connection pool size",
        ge=1,
    )
    socket_timeout: int = Field(
        default=5,
        description="Socket timeout in seconds",
        ge=1,
    )


# =============================================================================
# ROOT CONFIGURATION
# =============================================================================


class AppConfig(BaseModel):
    """
    Root application configuration.

    Aggregates all configuration sections into a single validated object.

    Example:
        >>> config = AppConfig()
        >>> config.dispatcher.cooldown_for(AlertLevel.WARNING)
        300
    """

    model_config = {"frozen": True, "extra": "forbid"}

    thresholds: ThresholdSettings = Field(
        default_factory=ThresholdSettings,
        description="Threshold provider settings",
    )
    heartbeat: HeartbeatSettings = Field(
        default_factory=HeartbeatSettings,
        description="Heartbeat emitter settings",
    )
    validator: ValidatorSettings = Field(
        default_factory=ValidatorSettings,
        description="Anti-spoofing validator settings",
    )
    scheduler: SchedulerSettings = Field(
        default_factory=SchedulerSettings,
        description="Escalation scheduler settings",
    )
    dispatcher: DispatcherSettings = Field(
        default_factory=DispatcherSettings,
        description="Notification dispatcher settings",
    )
    notifier: NotifierConfig = Field(
        default_factory=NotifierConfig,
        description="Platform notifier settings",
    )
    storage: RedisStorageConfig = Field(
        default_factory=RedisStorageConfig,
        description="Redis key layout and retention",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )
    redis: RedisConnectionConfig = Field(
        default_factory=RedisConnectionConfig,
        description="Redis connection config",
    )

    @model_validator(mode="after")
    def validate_config(self) -> "AppConfig":
        """Validate cross-section constraints."""
        if self.scheduler.store_timeout_seconds >= self.scheduler.tick_interval_seconds:
            raise ValueError("store_timeout_seconds must be shorter than tick_interval_seconds")
        return self
