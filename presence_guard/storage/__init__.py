"""
Storage adapters for the presence store, friend directory and threshold source.

Modules:
    memory: In-process adapters for single-process runs and tests
    redis_client: Redis connection pool and pub/sub
    redis_store: Redis-backed adapters

Example:
    >>> from presence_guard.storage import RedisClient, RedisPresenceStore
    >>> client = RedisClient(config.redis, config.storage)
    >>> await client.connect()
    >>> store = RedisPresenceStore(client)
"""

from presence_guard.storage.memory import InMemoryFriendDirectory, InMemoryPresenceStore
from presence_guard.storage.redis_client import RedisClient
from presence_guard.storage.redis_store import (
    RedisFriendDirectory,
    RedisPresenceStore,
    RedisThresholdSource,
)

__all__ = [
    # In-memory
    "InMemoryPresenceStore",
    "InMemoryFriendDirectory",
    # Redis
    "RedisClient",
    "RedisPresenceStore",
    "RedisFriendDirectory",
    "RedisThresholdSource",
]
