from datetime import datetime, timezone

from backend import RedisBackend
from core.errors import MessageDeleted, MessageNotFound, NotAuthorized, RoomGone
from core.room_registry import RoomRegistry
from logging_config import get_logger
from schemas.messages import Message

logger = get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class MessageLog:
    """Ordered per-room message list with in-place edit and soft delete.

    Messages are addressed by list position. Edits and deletes locate the
    position with a scan and then overwrite it with LSET; the two steps are
    not atomic, so concurrent writers on the same room race and the last
    write at an index wins.
    """

    def __init__(self, backend: RedisBackend, registry: RoomRegistry):
        self.backend = backend
        self.registry = registry

    def ensure_live(self, room_id: str):
        # TTL expiry can land between any two requests
        if not self.registry.room_exists(room_id):
            logger.warning(f"Room {room_id} is gone")
            raise RoomGone()

    def append(self, room_id: str, message: Message) -> Message:
        self.ensure_live(room_id)
        ttl = self.registry.extended_ttl(room_id)
        length = self.backend.append_message(room_id, message.model_dump(), ttl)
        logger.debug(f"Message {message.id} appended to room {room_id} at index {length - 1}, TTL now {ttl}s")
        return message

    def _load(self, room_id: str) -> list[Message]:
        return [Message.model_validate(m) for m in self.backend.get_messages(room_id)]

    def list_messages(self, room_id: str, requester_token: str) -> list[Message]:
        self.ensure_live(room_id)
        messages = []
        for message in self._load(room_id):
            if message.token != requester_token:
                message = message.model_copy(update={"token": None})
            messages.append(message)
        return messages

    def find_index(self, room_id: str, message_id: str) -> int:
        self.ensure_live(room_id)
        for index, message in enumerate(self._load(room_id)):
            if message.id == message_id:
                return index
        raise MessageNotFound()

    def _owned_at(self, room_id: str, index: int, requester_token: str) -> Message:
        raw = self.backend.get_message(room_id, index) if index >= 0 else None
        if raw is None:
            raise MessageNotFound()
        message = Message.model_validate(raw)
        if message.token != requester_token:
            logger.warning(f"Token {requester_token[:8]}... does not own message {message.id} in room {room_id}")
            raise NotAuthorized()
        if message.is_deleted:
            raise MessageDeleted()
        return message

    def _replace(self, room_id: str, index: int, message: Message) -> Message:
        if not self.backend.set_message(room_id, index, message.model_dump()):
            # Room was destroyed or expired after the message was located
            raise RoomGone()
        return message

    def edit_at(self, room_id: str, index: int, new_text: str, requester_token: str) -> Message:
        message = self._owned_at(room_id, index, requester_token)
        updated = message.model_copy(update={
            "text": new_text,
            "is_edited": True,
            "edited_at": _now(),
        })
        return self._replace(room_id, index, updated)

    def soft_delete_at(self, room_id: str, index: int, requester_token: str) -> Message:
        message = self._owned_at(room_id, index, requester_token)
        deleted = message.model_copy(update={
            "text": "",
            "is_deleted": True,
            "deleted_at": _now(),
        })
        return self._replace(room_id, index, deleted)

    def edit_message(self, room_id: str, message_id: str, new_text: str, requester_token: str) -> Message:
        index = self.find_index(room_id, message_id)
        message = self.edit_at(room_id, index, new_text, requester_token)
        logger.info(f"Message {message_id} edited in room {room_id}")
        return message

    def delete_message(self, room_id: str, message_id: str, requester_token: str) -> Message:
        index = self.find_index(room_id, message_id)
        message = self.soft_delete_at(room_id, index, requester_token)
        logger.info(f"Message {message_id} deleted in room {room_id}")
        return message
