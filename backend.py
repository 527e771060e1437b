import json
from typing import Callable, Optional

import redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, REDIS_DB
from redis_keys import REDIS_META_KEY, REDIS_MESSAGES_KEY, REDIS_USERS_KEY, REDIS_ROOM_CHANNEL, REDIS_RATE_KEY
from logging_config import get_logger

logger = get_logger(__name__)


class RedisBackend:
    """Store access for rooms, messages, rate counters and the room channels.

    Owns key naming and which writes go into a single MULTI/EXEC batch. Policy
    (TTL arithmetic, capacity, ownership) lives in the core components.
    """

    def __init__(self, redis_client: redis.Redis, pubsub_client: Optional[redis.Redis] = None):
        self.redis_client = redis_client
        # Separate connection for pub/sub (required by Redis)
        self.pubsub_client = pubsub_client if pubsub_client is not None else redis_client

    def ping(self) -> bool:
        return bool(self.redis_client.ping())

    def _room_keys(self, room_id: str) -> list[str]:
        return [
            REDIS_META_KEY.format(slug=room_id),
            REDIS_MESSAGES_KEY.format(slug=room_id),
            REDIS_USERS_KEY.format(slug=room_id),
        ]

    def create_room(self, room_id: str, room_data: dict, ttl: int):
        logger.info(f"Creating room {room_id} with TTL {ttl} seconds")
        key = REDIS_META_KEY.format(slug=room_id)
        # Lists are stored as JSON strings in the hash
        room_data_str = {k: json.dumps(v) if isinstance(v, list) else str(v) for k, v in room_data.items()}
        pipe = self.redis_client.pipeline(transaction=True)
        pipe.hset(key, mapping=room_data_str)
        pipe.expire(key, ttl)
        pipe.execute()
        logger.debug(f"Room {room_id} created with key: {key}")
        return room_id

    def get_connected(self, room_id: str) -> Optional[list]:
        """Return the room's connected token list, or None if the room has no metadata."""
        raw = self.redis_client.hget(REDIS_META_KEY.format(slug=room_id), "connected")
        if raw is None:
            return None
        return json.loads(raw)

    def update_connected(self, room_id: str, update: Callable[[list], Optional[list]]):
        """Read-modify-write the connected list under WATCH.

        ``update`` receives the current list and returns the new one, or None
        to leave it untouched. The whole callback is retried if another client
        changes the metadata hash in between. Returns ``(before, after)``;
        ``before`` is None when the room has no metadata.
        """
        key = REDIS_META_KEY.format(slug=room_id)

        def _transaction(pipe):
            raw = pipe.hget(key, "connected")
            if raw is None:
                return None, None
            before = json.loads(raw)
            after = update(list(before))
            if after is None:
                return before, before
            pipe.multi()
            pipe.hset(key, "connected", json.dumps(after))
            return before, after

        return self.redis_client.transaction(_transaction, key, value_from_callable=True)

    def room_exists(self, room_id: str) -> bool:
        return self.redis_client.exists(REDIS_META_KEY.format(slug=room_id)) > 0

    def get_ttl(self, room_id: str) -> int:
        """Raw TTL of the metadata key: -2 if missing, -1 if it has no expiry."""
        return self.redis_client.ttl(REDIS_META_KEY.format(slug=room_id))

    def set_room_ttl(self, room_id: str, ttl: int):
        pipe = self.redis_client.pipeline(transaction=True)
        for key in self._room_keys(room_id):
            pipe.expire(key, ttl)
        pipe.execute()
        logger.debug(f"Room {room_id} TTL set to {ttl} seconds")

    def delete_room(self, room_id: str) -> int:
        """Delete every room-scoped key in one batch. Missing keys are ignored."""
        pipe = self.redis_client.pipeline(transaction=True)
        for key in self._room_keys(room_id):
            pipe.delete(key)
        deleted = sum(pipe.execute())
        logger.debug(f"Room {room_id} deleted: {deleted} keys removed")
        return deleted

    def append_message(self, room_id: str, message: dict, ttl: int) -> int:
        """Append a message and apply ``ttl`` to all room keys atomically.

        Returns the new length of the message list.
        """
        messages_key = REDIS_MESSAGES_KEY.format(slug=room_id)
        pipe = self.redis_client.pipeline(transaction=True)
        pipe.rpush(messages_key, json.dumps(message))
        for key in self._room_keys(room_id):
            pipe.expire(key, ttl)
        results = pipe.execute()
        return results[0]

    def get_messages(self, room_id: str) -> list[dict]:
        raw = self.redis_client.lrange(REDIS_MESSAGES_KEY.format(slug=room_id), 0, -1)
        return [json.loads(item) for item in raw]

    def get_message(self, room_id: str, index: int) -> Optional[dict]:
        raw = self.redis_client.lindex(REDIS_MESSAGES_KEY.format(slug=room_id), index)
        if raw is None:
            return None
        return json.loads(raw)

    def set_message(self, room_id: str, index: int, message: dict) -> bool:
        """Overwrite the message at ``index``. Returns False if the list or index is gone."""
        try:
            self.redis_client.lset(REDIS_MESSAGES_KEY.format(slug=room_id), index, json.dumps(message))
        except redis.exceptions.ResponseError as e:
            logger.debug(f"LSET failed for room {room_id} index {index}: {e}")
            return False
        return True

    def increment_counter(self, token: str) -> int:
        return self.redis_client.incr(REDIS_RATE_KEY.format(token=token))

    def expire_counter(self, token: str, seconds: int):
        self.redis_client.expire(REDIS_RATE_KEY.format(token=token), seconds)

    def add_connection(self, room_id: str, connection_id: str, ttl: int = 0):
        """Add a live websocket connection to a room."""
        users_key = REDIS_USERS_KEY.format(slug=room_id)
        added = self.redis_client.sadd(users_key, connection_id)
        if ttl > 0:
            self.redis_client.expire(users_key, ttl)
        logger.debug(f"Connection {connection_id} added to room {room_id} (new={bool(added)})")
        return True

    def remove_connection(self, room_id: str, connection_id: str):
        users_key = REDIS_USERS_KEY.format(slug=room_id)
        removed = self.redis_client.srem(users_key, connection_id)
        logger.debug(f"Connection {connection_id} removed from room {room_id}: {removed}")
        return True

    def get_room_channel_name(self, room_id: str) -> str:
        """Get the Redis pub/sub channel name for a room."""
        return REDIS_ROOM_CHANNEL.format(slug=room_id)

    def publish_message(self, room_id: str, message: dict) -> int:
        """Publish a message to the room's Redis pub/sub channel."""
        channel = self.get_room_channel_name(room_id)
        subscribers = self.redis_client.publish(channel, json.dumps(message))
        logger.debug(f"Published to room {room_id} channel {channel}, {subscribers} subscribers")
        return subscribers

    def subscribe_to_room(self, room_id: str):
        """Create a pubsub subscriber for a room channel."""
        channel = self.get_room_channel_name(room_id)
        pubsub = self.pubsub_client.pubsub()
        pubsub.subscribe(channel)
        logger.debug(f"Subscribed to channel {channel}")
        return pubsub


def create_redis_backend() -> RedisBackend:
    """Connect to the configured Redis and return a backend using it."""
    try:
        redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True)
        redis_client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        pubsub_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, db=REDIS_DB, decode_responses=True)
        pubsub_client.ping()
        logger.info("Redis pub/sub client connected successfully")
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
        raise
    return RedisBackend(redis_client, pubsub_client)
