import pytest
import redis
from starlette.websockets import WebSocketDisconnect


def create_room(client):
    response = client.post("/room/create")
    assert response.status_code == 200
    return response.json()["room_id"]


def join(client, room_id):
    response = client.post("/room/join", params={"room_id": room_id})
    assert response.status_code == 200
    assert response.cookies.get("x-auth-token") == response.json()["token"]
    token = response.json()["token"]
    # Tests play several participants from one client, so drop the cookie and use the header
    client.cookies.clear()
    return token


@pytest.fixture
def api_room(client):
    room_id = create_room(client)
    return room_id, join(client, room_id), join(client, room_id)


def auth(token):
    return {"X-Auth-Token": token}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok", "redis": True}


def test_third_participant_cannot_join(client, api_room):
    room_id, _, _ = api_room
    response = client.post("/room/join", params={"room_id": room_id})
    assert response.status_code == 401
    assert response.json()["detail"] == "Room is full"


def test_join_unknown_room(client):
    assert client.post("/room/join", params={"room_id": "missing"}).status_code == 401


def test_cookie_authenticates(client):
    room_id = create_room(client)
    client.post("/room/join", params={"room_id": room_id})
    response = client.get("/room/ttl", params={"room_id": room_id})
    assert response.status_code == 200
    assert 0 < response.json()["ttl"] <= 600


def test_ttl_requires_credentials(client, api_room):
    room_id, t1, _ = api_room
    assert client.get("/room/ttl", params={"room_id": room_id}).status_code == 401
    assert client.get("/room/ttl", headers=auth(t1)).status_code == 401
    assert client.get("/room/ttl", params={"room_id": room_id}, headers=auth("bogus")).status_code == 401


def test_post_and_list_with_redaction(client, api_room):
    room_id, t1, t2 = api_room
    response = client.post("/messages", params={"room_id": room_id}, headers=auth(t1), json={"sender": "alice", "text": "hi"})
    assert response.status_code == 201
    posted = response.json()
    assert posted["sender"] == "alice"
    assert posted["text"] == "hi"

    client.post("/messages", params={"room_id": room_id}, headers=auth(t2), json={"sender": "bob", "text": "yo"})

    as_t2 = client.get("/messages", params={"room_id": room_id}, headers=auth(t2)).json()["messages"]
    assert [m["text"] for m in as_t2] == ["hi", "yo"]
    assert as_t2[0]["token"] is None
    assert as_t2[1]["token"] == t2


@pytest.mark.parametrize("body", [
    {"sender": "alice", "text": "x" * 1001},
    {"sender": "a" * 101, "text": "hi"},
    {"sender": "alice"},
])
def test_post_validation(client, api_room, body):
    room_id, t1, _ = api_room
    response = client.post("/messages", params={"room_id": room_id}, headers=auth(t1), json=body)
    assert response.status_code == 422


def test_edit_and_delete_status_codes(client, api_room):
    room_id, t1, t2 = api_room
    params = {"room_id": room_id}
    message_id = client.post("/messages", params=params, headers=auth(t1), json={"sender": "alice", "text": "hi"}).json()["id"]

    assert client.patch("/messages/nope", params=params, headers=auth(t1), json={"text": "x"}).status_code == 404
    assert client.patch(f"/messages/{message_id}", params=params, headers=auth(t2), json={"text": "x"}).status_code == 403
    assert client.delete(f"/messages/{message_id}", params=params, headers=auth(t2)).status_code == 403

    response = client.patch(f"/messages/{message_id}", params=params, headers=auth(t1), json={"text": "hi there"})
    assert response.json() == {"success": True}
    [message] = client.get("/messages", params=params, headers=auth(t1)).json()["messages"]
    assert message["is_edited"] is True
    assert message["text"] == "hi there"

    assert client.delete(f"/messages/{message_id}", params=params, headers=auth(t1)).json() == {"success": True}
    assert client.patch(f"/messages/{message_id}", params=params, headers=auth(t1), json={"text": "x"}).status_code == 409


def test_rate_limit_returns_429(client, api_room):
    room_id, t1, _ = api_room
    for i in range(20):
        response = client.post("/messages", params={"room_id": room_id}, headers=auth(t1), json={"sender": "a", "text": str(i)})
        assert response.status_code == 201
    response = client.post("/messages", params={"room_id": room_id}, headers=auth(t1), json={"sender": "a", "text": "over"})
    assert response.status_code == 429


def test_destroy_room(client, api_room, redis_client):
    room_id, t1, _ = api_room
    client.post("/messages", params={"room_id": room_id}, headers=auth(t1), json={"sender": "a", "text": "bye"})

    response = client.delete("/room", params={"room_id": room_id}, headers=auth(t1))
    assert response.status_code == 200
    assert redis_client.keys(f"room:*{room_id}") == []

    # The token died with the room
    assert client.get("/messages", params={"room_id": room_id}, headers=auth(t1)).status_code == 401


def test_store_failure_is_503(client, backend, api_room, monkeypatch):
    room_id, t1, _ = api_room

    def broken(room_id):
        raise redis.exceptions.ConnectionError("connection refused")

    monkeypatch.setattr(backend, "get_connected", broken)
    response = client.get("/messages", params={"room_id": room_id}, headers=auth(t1))
    assert response.status_code == 503
    assert response.json() == {"detail": "Store unavailable"}


def test_websocket_rejects_bad_token(client, api_room):
    room_id, _, _ = api_room
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect(f"/room/{room_id}/ws?token=bogus"):
            pass
    assert exc.value.code == 1008


def test_websocket_forwards_events_and_closes_on_destroy(client, api_room):
    room_id, t1, t2 = api_room
    params = {"room_id": room_id}
    with client.websocket_connect(f"/room/{room_id}/ws?token={t1}") as ws:
        response = client.post("/messages", params=params, headers=auth(t2), json={"sender": "bob", "text": "hi"})
        assert response.status_code == 201

        event = ws.receive_json()
        assert event["event"] == "chat.message"
        assert event["room_id"] == room_id
        assert event["data"]["text"] == "hi"
        assert "token" not in event["data"]

        assert client.delete("/room", params=params, headers=auth(t1)).status_code == 200
        event = ws.receive_json()
        assert event["event"] == "chat.destroy"
        assert event["data"] == {"is_destroyed": True}

        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == 1000


def test_websocket_accepts_room_without_expiry(client, api_room, redis_client):
    room_id, t1, t2 = api_room
    redis_client.persist(f"room:meta:{room_id}")
    with client.websocket_connect(f"/room/{room_id}/ws?token={t1}") as ws:
        client.post("/messages", params={"room_id": room_id}, headers=auth(t2), json={"sender": "bob", "text": "hi"})
        assert ws.receive_json()["event"] == "chat.message"
        assert 0 < redis_client.ttl(f"room:users:{room_id}") <= 600


def test_post_to_expired_room_is_410(client, api_room, monkeypatch):
    room_id, t1, _ = api_room
    # Metadata expires between access control and the liveness check
    monkeypatch.setattr(client.app.state.chat.registry, "room_exists", lambda room_id: False)
    response = client.post("/messages", params={"room_id": room_id}, headers=auth(t1), json={"sender": "a", "text": "late"})
    assert response.status_code == 410
    assert response.json()["detail"] == "Room does not exist"
