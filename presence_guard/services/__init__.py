"""
Service runtime for the liveness engine.

Provides structured logging setup and the ServiceRunner base class that owns
the service lifecycle: configuration loading, Redis connection, signal
handling, and orderly cleanup.

Lifecycle:
    run()
      -> load_config()          configuration from CONFIG_PATH
      -> setup_logging()        structlog with the configured format
      -> RedisClient.connect()
      -> _initialize()          service-specific wiring
      -> _run()                 main loop until shutdown_event is set
      -> _cleanup()             service-specific cleanup
      -> RedisClient.disconnect()

Example:
    >>> class MyService(ServiceRunner):
    ...     @property
    ...     def service_name(self) -> str:
    ...         return "my-service"
    ...     async def _initialize(self) -> None: ...
    ...     async def _run(self) -> None:
    ...         await self.shutdown_event.wait()
    >>> await MyService("config").run()
"""

import asyncio
import logging
import signal
import sys
from abc import ABC, abstractmethod
from typing import Optional, Union

import structlog

from presence_guard.config.loader import load_config
from presence_guard.config.models import AppConfig, LogFormat, LogLevel
from presence_guard.storage.redis_client import RedisClient


def setup_logging(
    level: Union[LogLevel, str] = LogLevel.INFO,
    log_format: Union[LogFormat, str] = LogFormat.JSON,
) -> None:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Minimum level to emit.
        log_format: "json" for machine-readable output, "text" for console.
    """
    level_name = level.value if isinstance(level, LogLevel) else str(level).upper()
    format_name = log_format.value if isinstance(log_format, LogFormat) else str(log_format)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if format_name == LogFormat.TEXT.value
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
        force=True,
    )


class ServiceRunner(ABC):
    """
    Base class for long-running engine services.

    Attributes:
        config_path: Directory holding the YAML configuration.
        config: Loaded application configuration.
        redis_client: Connected Redis client.
        shutdown_event: Set on SIGINT/SIGTERM or by stop().
        logger: Logger bound with the service name.
    """

    def __init__(self, config_path: str = "config") -> None:
        self.config_path = config_path
        self.config: Optional[AppConfig] = None
        self.redis_client: Optional[RedisClient] = None
        self.shutdown_event = asyncio.Event()
        self.logger = structlog.get_logger(__name__).bind(service=self.service_name)

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Service name used in logs."""

    @abstractmethod
    async def _initialize(self) -> None:
        """Wire service components. Called after Redis is connected."""

    @abstractmethod
    async def _run(self) -> None:
        """Main loop. Must return once shutdown_event is set."""

    async def _cleanup(self) -> None:
        """Service-specific cleanup. Optional."""

    def stop(self) -> None:
        """Request shutdown."""
        if not self.shutdown_event.is_set():
            self.logger.info("shutdown_requested")
            self.shutdown_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform or thread
                self.logger.debug("signal_handler_unavailable", signal=sig.name)

    async def run(self) -> None:
        """
        Run the service until shutdown.

        Raises:
            ConfigLoadError: If configuration cannot be loaded.
            StoreUnavailable: If Redis cannot be reached at startup.
        """
        self.config = load_config(self.config_path)
        setup_logging(self.config.logging.level, self.config.logging.format)

        self.logger.info("service_starting", config_path=self.config_path)

        self.redis_client = RedisClient(self.config.redis, self.config.storage)
        await self.redis_client.connect()

        self._install_signal_handlers()

        try:
            await self._initialize()
            self.logger.info("service_started")
            await self._run()
        finally:
            try:
                await self._cleanup()
            except Exception as e:
                self.logger.error("service_cleanup_failed", error=str(e))
            await self.redis_client.disconnect()
            self.logger.info("service_stopped")


__all__ = [
    "ServiceRunner",
    "setup_logging",
]
