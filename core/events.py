from datetime import datetime, timezone

from backend import RedisBackend
from logging_config import get_logger

logger = get_logger(__name__)

EVENT_MESSAGE = "message"
EVENT_DESTROY = "destroy"
EVENT_MESSAGE_EDIT = "message.edit"
EVENT_MESSAGE_DELETE = "message.delete"

EVENT_KINDS = (EVENT_MESSAGE, EVENT_DESTROY, EVENT_MESSAGE_EDIT, EVENT_MESSAGE_DELETE)
EVENT_PREFIX = "chat."


def event_name(kind: str) -> str:
    return f"{EVENT_PREFIX}{kind}"


class EventPublisher:
    """Fan-out of committed room changes over the room's pub/sub channel.

    At-most-once: nothing is stored, so a subscriber that misses an event
    has to re-read the room. Only call after the store write succeeded.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend

    def emit(self, room_id: str, kind: str, payload: dict) -> int:
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind}")
        envelope = {
            "event": event_name(kind),
            "room_id": room_id,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        subscribers = self.backend.publish_message(room_id, envelope)
        logger.debug(f"Emitted {envelope['event']} for room {room_id} to {subscribers} subscribers")
        return subscribers
