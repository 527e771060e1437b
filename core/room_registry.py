import secrets
import uuid
from datetime import datetime, timezone

from backend import RedisBackend
from constants import BASE_TTL, MAX_ROOM_CAPACITY, TTL_EXTENSION_SECONDS
from core.errors import RoomFull, RoomNotFound
from logging_config import get_logger

logger = get_logger(__name__)


def generate_token() -> str:
    return secrets.token_urlsafe(24)


def sliding_ttl(current_ttl: int, base_ttl: int = BASE_TTL, extension: int = TTL_EXTENSION_SECONDS) -> int:
    """Next TTL after activity.

    A missing or unset TTL (<= 0) is topped back up to the base rather than
    treated as expiry; the caller has already seen the room exist.
    """
    if current_ttl > 0:
        return min(current_ttl + extension, base_ttl)
    return base_ttl


class RoomRegistry:
    """Room metadata and the sliding expiration policy."""

    def __init__(self, backend: RedisBackend, base_ttl: int = BASE_TTL, capacity: int = MAX_ROOM_CAPACITY):
        self.backend = backend
        self.base_ttl = base_ttl
        self.capacity = capacity

    def create_room(self) -> str:
        room_id = uuid.uuid4().hex
        self.backend.create_room(room_id, {
            "connected": [],
            "created_at": datetime.now(timezone.utc).isoformat(),
        }, ttl=self.base_ttl)
        logger.info(f"Room {room_id} created, expires in {self.base_ttl}s")
        return room_id

    def room_exists(self, room_id: str) -> bool:
        return self.backend.room_exists(room_id)

    def get_connected(self, room_id: str):
        return self.backend.get_connected(room_id)

    def get_remaining_ttl(self, room_id: str) -> int:
        ttl = self.backend.get_ttl(room_id)
        return ttl if ttl > 0 else 0

    def extended_ttl(self, room_id: str) -> int:
        return sliding_ttl(self.backend.get_ttl(room_id), self.base_ttl)

    def connection_ttl(self, room_id: str) -> int:
        """TTL for a new live connection, or 0 if the room metadata is gone.

        Metadata without an expiry is topped up like any other activity.
        """
        ttl = self.backend.get_ttl(room_id)
        if ttl == -2:
            return 0
        return ttl if ttl > 0 else sliding_ttl(ttl, self.base_ttl)

    def touch(self, room_id: str, ttl: int):
        self.backend.set_room_ttl(room_id, ttl)

    def destroy_room(self, room_id: str) -> int:
        deleted = self.backend.delete_room(room_id)
        logger.info(f"Room {room_id} destroyed ({deleted} keys removed)")
        return deleted

    def join_room(self, room_id: str) -> str:
        """Issue a new capability token and add it to the room's connected set."""
        token = generate_token()

        def add_token(connected):
            if len(connected) >= self.capacity:
                return None
            return connected + [token]

        before, after = self.backend.update_connected(room_id, add_token)
        if before is None:
            logger.warning(f"Join failed: room {room_id} not found")
            raise RoomNotFound()
        if token not in after:
            logger.warning(f"Join failed: room {room_id} is full ({len(before)}/{self.capacity})")
            raise RoomFull()
        logger.info(f"Token joined room {room_id} ({len(after)}/{self.capacity})")
        return token
