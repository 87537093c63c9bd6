"""Tests for the realtime channel.

Covers:
- Handshake authentication (error event, then close 1008)
- Room join/leave and participant checks
- Message fan-out to every member, typing relay to everyone but the sender
- Broadcasts triggered by REST writes (messages, module submissions)
- Eviction of removed participants from their chat's room
- Database failures reported as E_INTERNAL error events
- Gateway ordering and cleanup, driven without a socket
"""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from starlette.websockets import WebSocketDisconnect

from devcollab.realtime import handler as handler_module
from devcollab.realtime.gateway import Connection, RealtimeGateway
from devcollab.services import chats as chats_service
from tests.helpers import auth_headers, mint_test_token


def connect(client: TestClient, user_id, name: str):
    token = mint_test_token(user_id, name=name)
    return client.websocket_connect(f"/realtime?token={token}")


@pytest.fixture
def users(client: TestClient):
    """Alice and Bob, bootstrapped, with their direct chat."""
    alice, bob = uuid4(), uuid4()
    alice_headers = auth_headers(alice, name="Alice")
    client.get("/me", headers=alice_headers)
    client.get("/me", headers=auth_headers(bob, name="Bob"))
    chat = client.post(f"/chats/direct/{bob}", headers=alice_headers).json()["data"]
    return alice, bob, chat["id"]


class TestHandshake:
    def test_missing_token_is_rejected(self, client: TestClient):
        with client.websocket_connect("/realtime") as ws:
            error = ws.receive_json()
            assert error["type"] == "error"
            assert error["code"] == "E_UNAUTHENTICATED"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert exc_info.value.code == 1008

    def test_expired_token_is_rejected(self, client: TestClient):
        token = mint_test_token(uuid4(), expires_in=-60)

        with client.websocket_connect(f"/realtime?token={token}") as ws:
            assert ws.receive_json()["message"] == "Token expired"
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert exc_info.value.code == 1008

    def test_valid_token_answers_ping(self, client: TestClient):
        with connect(client, uuid4(), "Dana") as ws:
            ws.send_json({"type": "ping"})

            assert ws.receive_json() == {"type": "pong"}


class TestEvents:
    def test_join_and_leave(self, client: TestClient, users):
        alice, _, chat_id = users

        with connect(client, alice, "Alice") as ws:
            ws.send_json({"type": "join_chat", "chat_id": chat_id})
            assert ws.receive_json() == {"type": "joined", "chat_id": chat_id}

            ws.send_json({"type": "leave_chat", "chat_id": chat_id})
            assert ws.receive_json() == {"type": "left", "chat_id": chat_id}

    def test_outsider_cannot_join(self, client: TestClient, users):
        _, _, chat_id = users

        with connect(client, uuid4(), "Carol") as ws:
            ws.send_json({"type": "join_chat", "chat_id": chat_id})
            error = ws.receive_json()

        assert error["type"] == "error"
        assert error["code"] == "E_NOT_PARTICIPANT"

    def test_unknown_chat_cannot_be_joined(self, client: TestClient, users):
        alice, _, _ = users

        with connect(client, alice, "Alice") as ws:
            ws.send_json({"type": "join_chat", "chat_id": str(uuid4())})

            assert ws.receive_json()["code"] == "E_CHAT_NOT_FOUND"

    @pytest.mark.parametrize(
        "frame",
        [
            "not json",
            '{"type": "dance"}',
            '{"type": "join_chat"}',
            '{"type": "join_chat", "chat_id": "not-a-uuid"}',
            "[1, 2, 3]",
        ],
    )
    def test_malformed_event(self, client: TestClient, frame):
        with connect(client, uuid4(), "Erin") as ws:
            ws.send_text(frame)
            error = ws.receive_json()
            # Connection stays usable
            ws.send_json({"type": "ping"})
            pong = ws.receive_json()

        assert error["code"] == "E_INVALID_EVENT"
        assert pong == {"type": "pong"}

    def test_typing_before_join_is_rejected(self, client: TestClient, users):
        alice, _, chat_id = users

        with connect(client, alice, "Alice") as ws:
            ws.send_json({"type": "typing", "chat_id": chat_id})

            assert ws.receive_json()["code"] == "E_INVALID_EVENT"

    def test_message_reaches_every_member(self, client: TestClient, users):
        alice, bob, chat_id = users

        with connect(client, alice, "Alice") as a, connect(client, bob, "Bob") as b:
            for ws in (a, b):
                ws.send_json({"type": "join_chat", "chat_id": chat_id})
                ws.receive_json()

            a.send_json({"type": "message", "chat_id": chat_id, "content": "hello"})
            seen_by_alice = a.receive_json()
            seen_by_bob = b.receive_json()

        assert seen_by_alice == seen_by_bob
        assert seen_by_bob["type"] == "receive_message"
        assert seen_by_bob["message"]["content"] == "hello"
        assert seen_by_bob["message"]["sender"]["id"] == str(alice)
        assert seen_by_bob["message"]["seq"] == 1

        history = client.get(
            f"/chats/{chat_id}/messages", headers=auth_headers(bob)
        ).json()["data"]
        assert [m["id"] for m in history] == [seen_by_bob["message"]["id"]]

    def test_empty_message_is_not_stored(self, client: TestClient, users):
        alice, _, chat_id = users

        with connect(client, alice, "Alice") as ws:
            ws.send_json({"type": "join_chat", "chat_id": chat_id})
            ws.receive_json()
            ws.send_json({"type": "message", "chat_id": chat_id, "content": "   "})

            assert ws.receive_json()["code"] == "E_EMPTY_MESSAGE"

        history = client.get(f"/chats/{chat_id}/messages", headers=auth_headers(alice))
        assert history.json()["data"] == []

    def test_typing_skips_the_sender(self, client: TestClient, users):
        alice, bob, chat_id = users

        with connect(client, alice, "Alice") as a, connect(client, bob, "Bob") as b:
            for ws in (a, b):
                ws.send_json({"type": "join_chat", "chat_id": chat_id})
                ws.receive_json()

            a.send_json({"type": "typing", "chat_id": chat_id})
            notice = b.receive_json()
            a.send_json({"type": "ping"})
            next_for_alice = a.receive_json()

        assert notice == {
            "type": "user_typing",
            "chat_id": chat_id,
            "user_id": str(alice),
            "display_name": "Alice",
        }
        assert next_for_alice == {"type": "pong"}


@pytest.fixture
def project_room(client: TestClient):
    """Owner and member of a project chat."""
    owner, member = uuid4(), uuid4()
    owner_headers = auth_headers(owner, name="Owner")
    client.get("/me", headers=owner_headers)
    client.get("/me", headers=auth_headers(member, name="Member"))
    project_id = client.post(
        "/projects", json={"name": "Engine"}, headers=owner_headers
    ).json()["data"]["id"]
    chat_id = client.post(f"/chats/project/{project_id}", headers=owner_headers).json()[
        "data"
    ]["id"]
    client.post(f"/chats/{chat_id}/participants/{member}", headers=owner_headers)
    return owner_headers, member, project_id, chat_id


class TestParticipantRemoval:
    def test_removed_member_stops_receiving(self, client: TestClient, project_room):
        owner_headers, member, _, chat_id = project_room

        with connect(client, member, "Member") as ws:
            ws.send_json({"type": "join_chat", "chat_id": chat_id})
            ws.receive_json()

            removed = client.delete(
                f"/chats/{chat_id}/participants/{member}", headers=owner_headers
            )
            assert removed.status_code == 200
            assert ws.receive_json() == {"type": "left", "chat_id": chat_id}

            client.post(
                f"/chats/{chat_id}/messages", data={"content": "secret"}, headers=owner_headers
            )
            ws.send_json({"type": "typing", "chat_id": chat_id})
            typing_error = ws.receive_json()
            ws.send_json({"type": "ping"})
            next_event = ws.receive_json()

            ws.send_json({"type": "join_chat", "chat_id": chat_id})
            rejoin = ws.receive_json()

        assert typing_error["code"] == "E_INVALID_EVENT"
        assert next_event == {"type": "pong"}
        assert rejoin["code"] == "E_NOT_PARTICIPANT"


class TestDatabaseFailures:
    def test_join_failure_keeps_socket_open(
        self, client: TestClient, users, monkeypatch: pytest.MonkeyPatch
    ):
        alice, _, chat_id = users

        def unavailable(*args):
            raise OperationalError("SELECT 1", {}, Exception("database unavailable"))

        monkeypatch.setattr(chats_service, "get_participant_chat_or_raise", unavailable)

        with connect(client, alice, "Alice") as ws:
            ws.send_json({"type": "join_chat", "chat_id": chat_id})
            error = ws.receive_json()
            ws.send_json({"type": "ping"})
            pong = ws.receive_json()

        assert error["type"] == "error"
        assert error["code"] == "E_INTERNAL"
        assert "unavailable" not in error["message"]
        assert pong == {"type": "pong"}

    def test_message_failure_is_reported(
        self, client: TestClient, users, monkeypatch: pytest.MonkeyPatch
    ):
        alice, _, chat_id = users

        with connect(client, alice, "Alice") as ws:
            ws.send_json({"type": "join_chat", "chat_id": chat_id})
            ws.receive_json()

            def unavailable(*args):
                raise OperationalError("INSERT", {}, Exception("database unavailable"))

            monkeypatch.setattr(chats_service, "append_message", unavailable)
            ws.send_json({"type": "message", "chat_id": chat_id, "content": "hello"})
            error = ws.receive_json()
            ws.send_json({"type": "ping"})
            pong = ws.receive_json()

        assert error["code"] == "E_INTERNAL"
        assert pong == {"type": "pong"}

    def test_bootstrap_failure_closes_with_internal_error(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch
    ):
        def unavailable(*args):
            raise OperationalError("INSERT", {}, Exception("database unavailable"))

        monkeypatch.setattr(handler_module, "ensure_user", unavailable)

        with connect(client, uuid4(), "Dana") as ws:
            error = ws.receive_json()
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert error["code"] == "E_INTERNAL"
        assert exc_info.value.code == 1011


class TestRestBroadcasts:
    def test_rest_message_is_broadcast(self, client: TestClient, users):
        alice, bob, chat_id = users

        with connect(client, bob, "Bob") as ws:
            ws.send_json({"type": "join_chat", "chat_id": chat_id})
            ws.receive_json()

            sent = client.post(
                f"/chats/{chat_id}/messages",
                data={"content": "via rest"},
                headers=auth_headers(alice),
            ).json()["data"]
            event = ws.receive_json()

        assert event["type"] == "receive_message"
        assert event["message"] == sent

    def test_module_submission_is_broadcast(self, client: TestClient, project_room):
        owner_headers, member, project_id, chat_id = project_room

        with connect(client, member, "Member") as ws:
            ws.send_json({"type": "join_chat", "chat_id": chat_id})
            ws.receive_json()

            client.post(
                f"/projects/{project_id}/modules",
                data={"title": "Renderer", "completion_percentage": "70"},
                headers=owner_headers,
            )
            event = ws.receive_json()

        message = event["message"]
        assert message["content"] == 'Module "Renderer" submitted with 70% completion.'
        assert message["project_progress"]["completion_percentage"] == 70


class FakeSocket:
    def __init__(self):
        self.sent: list[dict] = []

    async def send_json(self, data):
        self.sent.append(data)


class TestGateway:
    @pytest.mark.asyncio
    async def test_broadcast_preserves_order_per_connection(self):
        gateway = RealtimeGateway()
        room = uuid4()
        conns = [Connection(FakeSocket(), uuid4(), f"u{i}") for i in range(3)]
        for conn in conns:
            gateway.register(conn)
            gateway.join_room(conn, room)

        for i in range(20):
            gateway.broadcast(room, {"type": "n", "i": i})
        for conn in conns:
            await gateway.unregister(conn)

        for conn in conns:
            assert [e["i"] for e in conn.websocket.sent] == list(range(20))
        assert gateway.connection_count == 0

    @pytest.mark.asyncio
    async def test_unregister_leaves_every_room(self):
        gateway = RealtimeGateway()
        rooms = [uuid4(), uuid4()]
        conn = Connection(FakeSocket(), uuid4(), "solo")
        gateway.register(conn)
        for room in rooms:
            gateway.join_room(conn, room)

        await gateway.unregister(conn)

        assert all(gateway.room_members(room) == [] for room in rooms)
        assert conn.rooms == set()

    @pytest.mark.asyncio
    async def test_typing_excludes_sender(self):
        gateway = RealtimeGateway()
        room = uuid4()
        typist = Connection(FakeSocket(), uuid4(), "Typist")
        reader = Connection(FakeSocket(), uuid4(), "Reader")
        for conn in (typist, reader):
            gateway.register(conn)
            gateway.join_room(conn, room)

        delivered = gateway.typing(typist, room)
        for conn in (typist, reader):
            await gateway.unregister(conn)

        assert delivered == 1
        assert typist.websocket.sent == []
        assert reader.websocket.sent[0]["display_name"] == "Typist"

    def test_broadcast_to_empty_room(self):
        assert RealtimeGateway().broadcast(uuid4(), {"type": "x"}) == 0

    @pytest.mark.asyncio
    async def test_evict_drops_only_that_users_connections(self):
        gateway = RealtimeGateway()
        room, other_room = uuid4(), uuid4()
        removed_user = uuid4()
        phone = Connection(FakeSocket(), removed_user, "Bob")
        laptop = Connection(FakeSocket(), removed_user, "Bob")
        owner = Connection(FakeSocket(), uuid4(), "Owner")
        for conn in (phone, laptop, owner):
            gateway.register(conn)
            gateway.join_room(conn, room)
        gateway.join_room(phone, other_room)

        evicted = await gateway.evict(room, removed_user)
        phone_rooms = set(phone.rooms)
        gateway.broadcast(room, {"type": "after"})
        for conn in (phone, laptop, owner):
            await gateway.unregister(conn)

        assert evicted == 2
        assert gateway.room_members(room) == []
        for conn in (phone, laptop):
            assert conn.websocket.sent == [{"type": "left", "chat_id": str(room)}]
        assert owner.websocket.sent == [{"type": "after"}]
        assert phone_rooms == {other_room}
