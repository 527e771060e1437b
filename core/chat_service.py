import uuid
from datetime import datetime, timezone

from backend import RedisBackend
from core.access_control import authorize
from core.events import EVENT_DESTROY, EVENT_MESSAGE, EVENT_MESSAGE_DELETE, EVENT_MESSAGE_EDIT, EventPublisher
from core.message_log import MessageLog
from core.rate_limiter import RateLimiter
from core.room_registry import RoomRegistry
from logging_config import get_logger
from schemas.messages import EditMessageRequest, Message, PostMessageRequest

logger = get_logger(__name__)


def _public(message: Message) -> dict:
    # Event payloads go to every participant, so they never carry the author token
    return message.model_dump(exclude={"token"})


class ChatService:
    """Room and message operations, independent of the transport.

    Every authenticated call re-runs access control against the current
    store state, mutates, and only then emits the matching event.
    """

    def __init__(self, backend: RedisBackend):
        self.backend = backend
        self.registry = RoomRegistry(backend)
        self.messages = MessageLog(backend, self.registry)
        self.rate_limiter = RateLimiter(backend)
        self.events = EventPublisher(backend)

    def create_room(self) -> str:
        return self.registry.create_room()

    def join_room(self, room_id: str) -> str:
        return self.registry.join_room(room_id)

    def get_ttl(self, room_id: str, token: str) -> int:
        auth = authorize(self.registry, room_id, token)
        return self.registry.get_remaining_ttl(auth.room_id)

    def destroy_room(self, room_id: str, token: str):
        auth = authorize(self.registry, room_id, token)
        self.registry.destroy_room(auth.room_id)
        self.events.emit(auth.room_id, EVENT_DESTROY, {"is_destroyed": True})

    def post_message(self, room_id: str, token: str, request: PostMessageRequest) -> Message:
        auth = authorize(self.registry, room_id, token)
        self.rate_limiter.check_and_increment(auth.token)
        message = Message(
            id=uuid.uuid4().hex,
            sender=request.sender,
            text=request.text,
            timestamp=datetime.now(timezone.utc).isoformat(),
            room_id=auth.room_id,
            token=auth.token,
        )
        self.messages.append(auth.room_id, message)
        self.events.emit(auth.room_id, EVENT_MESSAGE, _public(message))
        return message

    def list_messages(self, room_id: str, token: str) -> list[Message]:
        auth = authorize(self.registry, room_id, token)
        return self.messages.list_messages(auth.room_id, auth.token)

    def edit_message(self, room_id: str, token: str, message_id: str, request: EditMessageRequest) -> Message:
        auth = authorize(self.registry, room_id, token)
        message = self.messages.edit_message(auth.room_id, message_id, request.text, auth.token)
        self.events.emit(auth.room_id, EVENT_MESSAGE_EDIT, _public(message))
        return message

    def delete_message(self, room_id: str, token: str, message_id: str) -> Message:
        auth = authorize(self.registry, room_id, token)
        message = self.messages.delete_message(auth.room_id, message_id, auth.token)
        self.events.emit(auth.room_id, EVENT_MESSAGE_DELETE, {"message_id": message_id, "room_id": auth.room_id})
        return message
