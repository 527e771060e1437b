from dataclasses import dataclass, field

from constants import MAX_ROOM_CAPACITY
from core.errors import InvalidToken, MissingCredentials, RoomFull, RoomNotFound
from core.room_registry import RoomRegistry


@dataclass(frozen=True)
class AuthContext:
    room_id: str
    token: str
    connected: list = field(default_factory=list)


def authorize(registry: RoomRegistry, room_id, token, capacity: int = MAX_ROOM_CAPACITY) -> AuthContext:
    """Check a (room, token) pair against the room's current connected set.

    Runs on every request; nothing is cached, so a token removed from the
    set is rejected on its next call.
    """
    if not room_id or not token:
        raise MissingCredentials()

    connected = registry.get_connected(room_id)
    if connected is None:
        raise RoomNotFound()

    if len(connected) >= capacity and token not in connected:
        raise RoomFull()

    if token not in connected:
        raise InvalidToken()

    return AuthContext(room_id=room_id, token=token, connected=connected)
