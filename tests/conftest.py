import fakeredis
import pytest
from fastapi.testclient import TestClient

from app import create_app
from backend import RedisBackend
from core.chat_service import ChatService


@pytest.fixture
def redis_client():
    # Own server per test so no state leaks between tests
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def backend(redis_client):
    return RedisBackend(redis_client)


@pytest.fixture
def chat(backend):
    return ChatService(backend)


@pytest.fixture
def room(chat):
    """A room with both seats taken: (room_id, token1, token2)."""
    room_id = chat.create_room()
    t1 = chat.join_room(room_id)
    t2 = chat.join_room(room_id)
    return room_id, t1, t2


@pytest.fixture
def client(backend):
    with TestClient(create_app(backend=backend)) as c:
        yield c


def next_event(pubsub, attempts: int = 20):
    """Poll a pubsub until a published message arrives."""
    for _ in range(attempts):
        message = pubsub.get_message(ignore_subscribe_messages=True, timeout=0.05)
        if message is not None:
            return message
    return None
