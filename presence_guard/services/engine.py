"""
Presence engine service entry point.

This service is responsible for:
- Receiving heartbeat payloads over Redis pub/sub
- Validating them (schema, rate limit, clock drift) and storing accepted ones
- Re-evaluating every watched person on a fixed interval
- Notifying observers through the configured platform notifier
- Running an immediate evaluation when a refresh is requested

Usage:
    python -m presence_guard.services.engine

Environment Variables:
    REDIS_URL: Redis connection URL (default: redis://localhost:6379)
    LOG_LEVEL: Logging level (default: INFO)
    CONFIG_PATH: Path to config directory (default: config)
    NOTIFY_WEBHOOK_URL: Webhook for notifications (optional, logs otherwise)
"""

import asyncio
import os
import sys
from typing import Any, Dict, Optional

import structlog

from presence_guard import __version__
from presence_guard.config.thresholds import ThresholdConfigProvider
from presence_guard.detection.dispatcher import NotificationDispatcher
from presence_guard.detection.scheduler import EscalationScheduler
from presence_guard.exceptions import StoreUnavailable
from presence_guard.heartbeat.ingest import HeartbeatIngestor
from presence_guard.interfaces.notifier import PlatformNotifier
from presence_guard.notifiers import create_notifier
from presence_guard.security.validator import AntiSpoofingValidator
from presence_guard.services import ServiceRunner, setup_logging
from presence_guard.storage.redis_store import (
    RedisFriendDirectory,
    RedisPresenceStore,
    RedisThresholdSource,
)

logger = structlog.get_logger(__name__)


class EngineService(ServiceRunner):
    """
    Liveness engine service.

    Attributes:
        ingestor: Validates and stores inbound heartbeats.
        scheduler: Periodic escalation loop.
        dispatcher: Cooldown-guarded notification dispatch.
        notifier: Platform notifier used by the dispatcher.
    """

    def __init__(self, config_path: str = "config") -> None:
        super().__init__(config_path)
        self.ingestor: Optional[HeartbeatIngestor] = None
        self.scheduler: Optional[EscalationScheduler] = None
        self.dispatcher: Optional[NotificationDispatcher] = None
        self.notifier: Optional[PlatformNotifier] = None

    @property
    def service_name(self) -> str:
        return "presence-engine"

    async def _initialize(self) -> None:
        """Wire store, validator, dispatcher and scheduler."""
        if self.config is None or self.redis_client is None:
            raise RuntimeError("Service not properly initialized")

        store = RedisPresenceStore(self.redis_client)
        directory = RedisFriendDirectory(self.redis_client)

        thresholds = ThresholdConfigProvider(
            source=RedisThresholdSource(self.redis_client),
            defaults=self.config.thresholds.defaults,
            cache_seconds=self.config.thresholds.cache_seconds,
        )

        validator = AntiSpoofingValidator(store=store, settings=self.config.validator)
        self.ingestor = HeartbeatIngestor(
            validator=validator,
            store=store,
            store_timeout_seconds=self.config.scheduler.store_timeout_seconds,
        )

        self.notifier = create_notifier(self.config.notifier)
        self.dispatcher = NotificationDispatcher(
            notifier=self.notifier,
            settings=self.config.dispatcher,
        )

        self.scheduler = EscalationScheduler(
            store=store,
            directory=directory,
            thresholds=thresholds,
            dispatcher=self.dispatcher,
            validator=validator,
            settings=self.config.scheduler,
        )

        self.logger.info(
            "engine_components_initialized",
            notifier=self.notifier.name,
            tick_interval_seconds=self.config.scheduler.tick_interval_seconds,
        )

    async def _run(self) -> None:
        """Start the scheduler and consume pub/sub until shutdown."""
        if self.redis_client is None or self.scheduler is None:
            raise RuntimeError("Service not properly initialized")

        await self.scheduler.start()

        consumer = asyncio.create_task(self._consume())
        shutdown = asyncio.create_task(self.shutdown_event.wait())
        try:
            done, _ = await asyncio.wait(
                {consumer, shutdown},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if consumer in done:
                # Surface subscription failures
                consumer.result()
        finally:
            for task in (consumer, shutdown):
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    async def _consume(self) -> None:
        if self.redis_client is None:
            return

        channels = [self.redis_client.channel_inbound, self.redis_client.channel_refresh]
        try:
            async with self.redis_client.subscribe(channels) as messages:
                async for message in messages:
                    if self.shutdown_event.is_set():
                        break

                    try:
                        await self._process_message(message)
                    except Exception as e:
                        self.logger.error(
                            "message_processing_error",
                            channel=message.get("channel"),
                            error=str(e),
                            error_type=type(e).__name__,
                        )

        except asyncio.CancelledError:
            self.logger.info("pubsub_cancelled")
            raise

    async def _process_message(self, message: Dict[str, Any]) -> None:
        """
        Route one pub/sub message.

        Args:
            message: Parsed message with "channel" and "data".
        """
        if self.redis_client is None or self.ingestor is None or self.scheduler is None:
            return

        channel = message.get("channel")
        data = message.get("data")

        if channel == self.redis_client.channel_inbound:
            if not isinstance(data, dict):
                self.logger.warning("inbound_message_not_object", data_type=type(data).__name__)
                return
            try:
                await self.ingestor.submit(data)
            except StoreUnavailable as e:
                self.logger.warning("heartbeat_store_failed", error=str(e))

        elif channel == self.redis_client.channel_refresh:
            self.logger.info("refresh_requested")
            await self.scheduler.refresh_now()

    async def _cleanup(self) -> None:
        """Stop the scheduler and release the notifier."""
        if self.scheduler is not None:
            await self.scheduler.stop()
        if self.notifier is not None:
            await self.notifier.close()
        if self.ingestor is not None:
            self.logger.info("cleanup_state", **self.ingestor.get_stats())


async def main() -> None:
    """Main entry point."""
    setup_logging()

    config_path = os.getenv("CONFIG_PATH", "config")

    logger.info(
        "presence_engine_starting",
        version=__version__,
        config_path=config_path,
    )

    service = EngineService(config_path=config_path)

    try:
        await service.run()
    except Exception as e:
        logger.error("service_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
