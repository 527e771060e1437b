import json

import pytest

from conftest import next_event
from core.events import EventPublisher


def test_emit_publishes_envelope_on_room_channel(backend):
    pubsub = backend.subscribe_to_room("room1")
    publisher = EventPublisher(backend)

    publisher.emit("room1", "message.delete", {"message_id": "m1", "room_id": "room1"})

    received = next_event(pubsub)
    assert received["channel"] == "room:channel:room1"
    envelope = json.loads(received["data"])
    assert envelope["event"] == "chat.message.delete"
    assert envelope["room_id"] == "room1"
    assert envelope["data"] == {"message_id": "m1", "room_id": "room1"}
    assert envelope["timestamp"]
    pubsub.close()


def test_emit_is_scoped_to_room(backend):
    pubsub = backend.subscribe_to_room("room1")
    EventPublisher(backend).emit("room2", "destroy", {"is_destroyed": True})
    assert next_event(pubsub, attempts=3) is None
    pubsub.close()


def test_emit_without_subscribers_is_fire_and_forget(backend):
    assert EventPublisher(backend).emit("room1", "message", {"id": "m1"}) == 0


def test_unknown_event_kind(backend):
    with pytest.raises(ValueError):
        EventPublisher(backend).emit("room1", "presence", {})
