"""
Async Redis client for the liveness engine.

This module owns the Redis connection pool and the pub/sub plumbing used by
the engine service. The storage adapters in ``redis_store`` borrow the
underlying connection through ``require_connection``.

Key Patterns:
    - Heartbeats: `{prefix}:heartbeats:{user_id}` (sorted set scored by epoch ms)
    - Security logs: `{prefix}:securityLogs:{user_id}` (sorted set scored by epoch ms)
    - Presence state: `{prefix}:userStatus:{user_id}` (JSON string)
    - Observers: `{prefix}:observers` (set)
    - Friends: `{prefix}:friends:{observer_id}` (hash user_id -> display name)
    - Thresholds: `{prefix}:settings:notification_thresholds` (hash)
    - Pub/Sub channels: `{prefix}:heartbeats:inbound`, `{prefix}:refresh`

Example:
    >>> config = RedisConnectionConfig(url="redis://localhost:6379")
    >>> client = RedisClient(config)
    >>> await client.connect()
    >>> try:
    ...     async with client.subscribe([client.channel_inbound]) as messages:
    ...         async for message in messages:
    ...             print(message["data"])
    ... finally:
    ...     await client.disconnect()
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.client import PubSub
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError, TimeoutError as RedisTimeoutError

from presence_guard.config.models import RedisConnectionConfig, RedisStorageConfig
from presence_guard.exceptions import StoreUnavailable

logger = structlog.get_logger(__name__)


class RedisClient:
    """
    Async Redis connection manager.

    Attributes:
        config: Redis connection configuration.
        storage_config: Key prefix and retention settings.
        _pool: Connection pool for efficient connection reuse.
        _client: Redis client instance.
        _connected: Whether the client is connected.
    """

    def __init__(
        self,
        config: RedisConnectionConfig,
        storage_config: Optional[RedisStorageConfig] = None,
    ) -> None:
        """
        Initialize the Redis client.

        Args:
            config: Redis connection configuration containing URL, db, and pool settings.
            storage_config: Optional key layout configuration. Defaults to
                RedisStorageConfig() if not provided.
        """
        self.config = config
        self.storage_config = storage_config or RedisStorageConfig()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None  # type: ignore[type-arg]
        self._connected: bool = False

        logger.info(
            "redis_client_initialized",
            url=config.url,
            db=config.db,
            max_connections=config.max_connections,
        )

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    @property
    def prefix(self) -> str:
        return self.storage_config.key_prefix

    @property
    def channel_inbound(self) -> str:
        """Channel carrying heartbeat payloads from devices."""
        return f"{self.prefix}:heartbeats:inbound"

    @property
    def channel_refresh(self) -> str:
        """Channel carrying manual refresh requests."""
        return f"{self.prefix}:refresh"

    def key(self, *parts: str) -> str:
        """Build a namespaced key, e.g. key("heartbeats", "u1")."""
        return ":".join((self.prefix,) + parts)

    async def connect(self) -> None:
        """
        Establish connection to Redis.

        Creates a connection pool and verifies it with PING.

        Raises:
            StoreUnavailable: If connection fails.
        """
        if self._connected:
            logger.warning("redis_already_connected")
            return

        try:
            self._pool = ConnectionPool.from_url(
                self.config.url,
                db=self.config.db,
                max_connections=self.config.max_connections,
                socket_timeout=self.config.socket_timeout,
                socket_connect_timeout=self.config.socket_timeout,
                decode_responses=True,
            )
            self._client = Redis(connection_pool=self._pool)

            await self._client.ping()
            self._connected = True

            logger.info(
                "redis_connected",
                url=self.config.url,
                db=self.config.db,
            )

        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            self._connected = False
            logger.error(
                "redis_connection_failed",
                url=self.config.url,
                error=str(e),
            )
            raise StoreUnavailable(
                f"Failed to connect to Redis at {self.config.url}: {e}"
            ) from e

    async def disconnect(self) -> None:
        """
        Close Redis connection and release resources.

        Safe to call multiple times.
        """
        if self._client is not None:
            try:
                await self._client.aclose()
            except RedisError as e:
                logger.warning("redis_close_error", error=str(e))
            finally:
                self._client = None

        if self._pool is not None:
            try:
                await self._pool.aclose()
            except Exception as e:
                logger.warning("redis_pool_close_error", error=str(e))
            finally:
                self._pool = None

        self._connected = False
        logger.info("redis_disconnected")

    def require_connection(self) -> Redis:  # type: ignore[type-arg]
        """
        Ensure client is connected and return the Redis instance.

        Returns:
            Redis: The Redis client instance.

        Raises:
            StoreUnavailable: If not connected.
        """
        if not self._connected or self._client is None:
            raise StoreUnavailable("Redis client is not connected")
        return self._client

    # =========================================================================
    # PUB/SUB
    # =========================================================================

    @asynccontextmanager
    async def subscribe(
        self, channels: List[str]
    ) -> AsyncIterator[AsyncIterator[Dict[str, Any]]]:
        """
        Subscribe to Redis pub/sub channels.

        Context manager that yields an async iterator of parsed messages.
        Messages that are not valid JSON are logged and skipped.

        Args:
            channels: List of channel names to subscribe to.

        Yields:
            AsyncIterator[Dict[str, Any]]: Messages as {"channel", "data"}.

        Raises:
            StoreUnavailable: If not connected.
        """
        client = self.require_connection()
        pubsub: PubSub = client.pubsub()

        try:
            await pubsub.subscribe(*channels)

            logger.info(
                "pubsub_subscribed",
                channels=channels,
            )

            async def message_iterator() -> AsyncIterator[Dict[str, Any]]:
                """Iterate over messages from subscribed channels."""
                async for message in pubsub.listen():
                    if message["type"] == "message":
                        try:
                            data = json.loads(message["data"])
                            yield {
                                "channel": message["channel"],
                                "data": data,
                            }
                        except json.JSONDecodeError as e:
                            logger.warning(
                                "pubsub_message_parse_failed",
                                channel=message["channel"],
                                error=str(e),
                            )

            yield message_iterator()

        finally:
            await pubsub.unsubscribe(*channels)
            await pubsub.aclose()

            logger.info(
                "pubsub_unsubscribed",
                channels=channels,
            )
