"""
Redis-backed storage adapters.

Implements the PresenceStore, FriendDirectory and ThresholdSource
interfaces on top of a connected RedisClient. Appended collections are
sorted sets scored by epoch milliseconds, trimmed to the configured
retention on every append; keyed collections are plain JSON strings.

Every RedisError surfaces as StoreUnavailable so the scheduler and the
ingestion path can treat it as transient.

Example:
    >>> client = RedisClient(RedisConnectionConfig())
    >>> await client.connect()
    >>> store = RedisPresenceStore(client)
    >>> await store.append(HEARTBEATS, record)
"""

import json
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional

import structlog
from pydantic import BaseModel
from redis.exceptions import RedisError

from presence_guard.exceptions import StoreUnavailable
from presence_guard.interfaces.friend_directory import FriendDirectory
from presence_guard.interfaces.presence_store import (
    COLLECTIONS,
    HEARTBEATS,
    SECURITY_LOGS,
    PresenceStore,
)
from presence_guard.interfaces.threshold_source import ThresholdSource
from presence_guard.models.base import to_epoch_ms
from presence_guard.models.presence import FriendLink
from presence_guard.storage.redis_client import RedisClient

logger = structlog.get_logger(__name__)


class RedisPresenceStore(PresenceStore):
    """
    Presence store backed by Redis sorted sets.

    Attributes:
        client: Connected RedisClient.
        retention: Per-collection retention for appended records.
    """

    def __init__(self, client: RedisClient) -> None:
        self.client = client
        storage = client.storage_config
        self.retention: Dict[str, timedelta] = {
            HEARTBEATS: timedelta(days=storage.heartbeat_retention_days),
            SECURITY_LOGS: timedelta(days=storage.security_log_retention_days),
        }

    def _key(self, collection: str, user_id: str) -> str:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        return self.client.key(collection, user_id)

    async def append(self, collection: str, record: BaseModel) -> None:
        user_id = record.partition_key  # type: ignore[attr-defined]
        key = self._key(collection, user_id)
        score = to_epoch_ms(record.sort_key)  # type: ignore[attr-defined]
        redis = self.client.require_connection()

        try:
            async with redis.pipeline(transaction=True) as pipe:
                pipe.zadd(key, {record.model_dump_json(): score})
                retention = self.retention.get(collection)
                if retention is not None:
                    cutoff = score - retention.total_seconds() * 1000.0
                    pipe.zremrangebyscore(key, "-inf", f"({cutoff}")
                await pipe.execute()

            logger.debug(
                "record_appended",
                collection=collection,
                user_id=user_id,
            )

        except RedisError as e:
            logger.error(
                "record_append_failed",
                collection=collection,
                user_id=user_id,
                error=str(e),
            )
            raise StoreUnavailable(
                f"Failed to append to {collection} for {user_id}: {e}"
            ) from e

    async def get_latest(self, collection: str, user_id: str) -> Optional[Dict[str, Any]]:
        key = self._key(collection, user_id)
        redis = self.client.require_connection()

        try:
            key_type = await redis.type(key)
            if key_type == "string":
                data = await redis.get(key)
                return json.loads(data) if data is not None else None
            if key_type == "zset":
                members = await redis.zrange(key, -1, -1)
                return json.loads(members[0]) if members else None
            return None

        except RedisError as e:
            logger.error(
                "record_retrieve_failed",
                collection=collection,
                user_id=user_id,
                error=str(e),
            )
            raise StoreUnavailable(
                f"Failed to read {collection} for {user_id}: {e}"
            ) from e

    async def query_range(
        self,
        collection: str,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> List[Dict[str, Any]]:
        key = self._key(collection, user_id)
        redis = self.client.require_connection()

        try:
            members = await redis.zrangebyscore(key, to_epoch_ms(start), to_epoch_ms(end))
            return [json.loads(member) for member in members]

        except RedisError as e:
            logger.error(
                "record_range_failed",
                collection=collection,
                user_id=user_id,
                error=str(e),
            )
            raise StoreUnavailable(
                f"Failed to query {collection} for {user_id}: {e}"
            ) from e

    async def put(self, collection: str, user_id: str, record: BaseModel) -> None:
        key = self._key(collection, user_id)
        redis = self.client.require_connection()

        try:
            await redis.set(key, record.model_dump_json())
        except RedisError as e:
            logger.error(
                "record_put_failed",
                collection=collection,
                user_id=user_id,
                error=str(e),
            )
            raise StoreUnavailable(
                f"Failed to write {collection} for {user_id}: {e}"
            ) from e


class RedisFriendDirectory(FriendDirectory):
    """
    Friend directory stored as one hash per observer.

    The `{prefix}:observers` set indexes observers so the scheduler does not
    need to scan the keyspace.
    """

    def __init__(self, client: RedisClient) -> None:
        self.client = client

    @property
    def _observers_key(self) -> str:
        return self.client.key("observers")

    def _friends_key(self, observer_id: str) -> str:
        return self.client.key("friends", observer_id)

    async def add_friend(
        self,
        observer_id: str,
        user_id: str,
        display_name: Optional[str] = None,
    ) -> None:
        """Link an observer to a watched person."""
        redis = self.client.require_connection()
        try:
            async with redis.pipeline(transaction=True) as pipe:
                pipe.hset(self._friends_key(observer_id), user_id, display_name or "")
                pipe.sadd(self._observers_key, observer_id)
                await pipe.execute()
        except RedisError as e:
            raise StoreUnavailable(f"Failed to add friend for {observer_id}: {e}") from e

    async def list_observers(self) -> List[str]:
        redis = self.client.require_connection()
        try:
            observers = await redis.smembers(self._observers_key)
            return sorted(observers)
        except RedisError as e:
            logger.error("observers_retrieve_failed", error=str(e))
            raise StoreUnavailable(f"Failed to list observers: {e}") from e

    async def get_friends(self, observer_id: str) -> List[FriendLink]:
        redis = self.client.require_connection()
        try:
            raw = await redis.hgetall(self._friends_key(observer_id))
        except RedisError as e:
            logger.error(
                "friends_retrieve_failed",
                observer_id=observer_id,
                error=str(e),
            )
            raise StoreUnavailable(f"Failed to read friends of {observer_id}: {e}") from e

        return [
            FriendLink(user_id=user_id, display_name=name or None)
            for user_id, name in sorted(raw.items())
        ]


class RedisThresholdSource(ThresholdSource):
    """
    Threshold settings read from an admin-maintained hash.

    Hash values arrive as strings; numeric ones are converted so both
    ``*_hours`` and ``*_duration`` (seconds) fields validate.
    """

    def __init__(self, client: RedisClient, key: str = "settings:notification_thresholds") -> None:
        self.client = client
        self.key = client.key(key)

    async def fetch(self) -> Optional[Mapping[str, Any]]:
        redis = self.client.require_connection()
        try:
            raw = await redis.hgetall(self.key)
        except RedisError as e:
            raise StoreUnavailable(f"Failed to read thresholds: {e}") from e

        if not raw:
            return None
        return {field: _coerce_number(value) for field, value in raw.items()}


def _coerce_number(value: str) -> Any:
    try:
        return float(value)
    except ValueError:
        return value
