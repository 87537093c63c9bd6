"""Integration tests for chat, message and project routes.

Exercises the HTTP surface end to end: auth bootstrap, envelopes, multipart
messages, uploads, read receipts and module submissions.
"""

import json
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from devcollab.storage import FakeStorageClient
from tests.helpers import auth_headers


def register(client: TestClient, name: str) -> tuple[UUID, dict[str, str]]:
    """Bootstrap a user through an authenticated request."""
    user_id = uuid4()
    headers = auth_headers(user_id, name=name, username=name.lower())
    assert client.get("/me", headers=headers).status_code == 200
    return user_id, headers


@pytest.fixture
def alice(client: TestClient):
    return register(client, "Alice")


@pytest.fixture
def bob(client: TestClient):
    return register(client, "Bob")


@pytest.fixture
def project_chat(client: TestClient, alice, bob):
    """A project owned by Alice whose chat has Alice and Bob."""
    _, alice_headers = alice
    bob_id, _ = bob
    project = client.post(
        "/projects",
        json={"name": "Compiler", "deadline": "2026-12-31T00:00:00Z"},
        headers=alice_headers,
    ).json()["data"]
    chat = client.post(f"/chats/project/{project['id']}", headers=alice_headers)
    assert chat.status_code == 201
    chat_id = chat.json()["data"]["id"]
    added = client.post(f"/chats/{chat_id}/participants/{bob_id}", headers=alice_headers)
    assert added.status_code == 200
    return project["id"], chat_id


class TestDirectChatFlow:
    def test_open_send_fetch_read(self, client: TestClient, alice, bob):
        alice_id, alice_headers = alice
        bob_id, bob_headers = bob

        opened = client.post(f"/chats/direct/{bob_id}", headers=alice_headers)
        assert opened.status_code == 200
        chat = opened.json()["data"]
        assert chat["kind"] == "direct"
        assert {p["id"] for p in chat["participants"]} == {str(alice_id), str(bob_id)}

        reopened = client.post(f"/chats/direct/{alice_id}", headers=bob_headers)
        assert reopened.json()["data"]["id"] == chat["id"]

        sent = client.post(
            f"/chats/{chat['id']}/messages", data={"content": "hi Bob"}, headers=alice_headers
        )
        assert sent.status_code == 201
        message = sent.json()["data"]
        assert message["seq"] == 1
        assert message["sender"]["name"] == "Alice"
        assert [r["user_id"] for r in message["read_by"]] == [str(alice_id)]

        listing = client.get("/chats", headers=bob_headers).json()["data"]
        assert listing[0]["last_message"]["content"] == "hi Bob"
        assert listing[0]["last_message"]["sender_id"] == str(alice_id)

        history = client.get(f"/chats/{chat['id']}/messages", headers=bob_headers).json()["data"]
        assert [m["content"] for m in history] == ["hi Bob"]
        assert {r["user_id"] for r in history[0]["read_by"]} == {str(alice_id), str(bob_id)}

        marked = client.post(f"/chats/{chat['id']}/read", headers=bob_headers)
        assert marked.json()["data"] == {"marked": 0}

    def test_after_seq_catch_up(self, client: TestClient, alice, bob):
        _, alice_headers = alice
        bob_id, bob_headers = bob
        chat_id = client.post(f"/chats/direct/{bob_id}", headers=alice_headers).json()["data"]["id"]
        for text in ["one", "two", "three"]:
            client.post(f"/chats/{chat_id}/messages", data={"content": text}, headers=alice_headers)

        response = client.get(f"/chats/{chat_id}/messages?after_seq=2", headers=bob_headers)

        assert [m["seq"] for m in response.json()["data"]] == [3]

    def test_empty_message_rejected(self, client: TestClient, alice, bob):
        _, alice_headers = alice
        bob_id, _ = bob
        chat_id = client.post(f"/chats/direct/{bob_id}", headers=alice_headers).json()["data"]["id"]

        response = client.post(
            f"/chats/{chat_id}/messages", data={"content": "  "}, headers=alice_headers
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_EMPTY_MESSAGE"

    def test_outsider_gets_403(self, client: TestClient, alice, bob):
        _, alice_headers = alice
        bob_id, _ = bob
        _, carol_headers = register(client, "Carol")
        chat_id = client.post(f"/chats/direct/{bob_id}", headers=alice_headers).json()["data"]["id"]

        assert client.get(f"/chats/{chat_id}", headers=carol_headers).status_code == 403
        response = client.get(f"/chats/{chat_id}/messages", headers=carol_headers)
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_NOT_PARTICIPANT"

    def test_unknown_peer_gets_404(self, client: TestClient, alice):
        _, alice_headers = alice

        response = client.post(f"/chats/direct/{uuid4()}", headers=alice_headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_USER_NOT_FOUND"


class TestFiles:
    def test_message_with_files(self, client: TestClient, storage: FakeStorageClient, alice, bob):
        _, alice_headers = alice
        bob_id, _ = bob
        chat_id = client.post(f"/chats/direct/{bob_id}", headers=alice_headers).json()["data"]["id"]

        response = client.post(
            f"/chats/{chat_id}/messages",
            data={"content": ""},
            files=[
                ("files", ("app.tsx", b"export {}\n", "text/plain")),
                ("files", ("shot.png", b"\x89PNG", "image/png")),
            ],
            headers=alice_headers,
        )

        assert response.status_code == 201
        attachments = response.json()["data"]["attachments"]
        assert [(a["kind"], a.get("language")) for a in attachments] == [
            ("code", "typescript"),
            ("image", None),
        ]
        assert all(a["storage_ref"] in storage.paths for a in attachments)

    def test_upload_single_file(self, client: TestClient, alice, bob):
        _, alice_headers = alice
        bob_id, _ = bob
        chat_id = client.post(f"/chats/direct/{bob_id}", headers=alice_headers).json()["data"]["id"]

        response = client.post(
            f"/chats/{chat_id}/upload",
            files={"file": ("main.rs", b"fn main() {}\n", "text/plain")},
            headers=alice_headers,
        )

        assert response.status_code == 201
        message = response.json()["data"]
        assert message["content"] == "Shared a rust file: main.rs"
        assert message["attachments"][0]["preview"] == "fn main() {}\n"

    def test_oversized_upload_rejected(
        self, client: TestClient, monkeypatch: pytest.MonkeyPatch, alice, bob
    ):
        from devcollab.config import clear_settings_cache

        monkeypatch.setenv("MAX_UPLOAD_BYTES", "8")
        clear_settings_cache()
        _, alice_headers = alice
        bob_id, _ = bob
        chat_id = client.post(f"/chats/direct/{bob_id}", headers=alice_headers).json()["data"]["id"]

        response = client.post(
            f"/chats/{chat_id}/upload",
            files={"file": ("big.txt", b"0123456789", "text/plain")},
            headers=alice_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_FILE_TOO_LARGE"


class TestProjectChatRoutes:
    def test_second_project_chat_conflicts(self, client: TestClient, alice, project_chat):
        _, alice_headers = alice
        project_id, _ = project_chat

        response = client.post(f"/chats/project/{project_id}", headers=alice_headers)

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "E_PROJECT_CHAT_EXISTS"

    def test_chat_lists_project_summary(self, client: TestClient, bob, project_chat):
        _, bob_headers = bob
        _, chat_id = project_chat

        chat = client.get(f"/chats/{chat_id}", headers=bob_headers).json()["data"]

        assert chat["project"]["name"] == "Compiler"
        assert chat["project"]["completion_percentage"] == 0
        assert len(chat["participants"]) == 2

    def test_non_owner_cannot_remove(self, client: TestClient, alice, bob, project_chat):
        alice_id, _ = alice
        _, bob_headers = bob
        _, chat_id = project_chat

        response = client.delete(f"/chats/{chat_id}/participants/{alice_id}", headers=bob_headers)

        assert response.status_code == 403

    def test_project_visible_to_members_only(
        self, client: TestClient, alice, bob, project_chat
    ):
        _, alice_headers = alice
        bob_id, bob_headers = bob
        project_id, chat_id = project_chat
        _, carol_headers = register(client, "Carol")

        assert client.get(f"/projects/{project_id}", headers=bob_headers).status_code == 200
        outsider = client.get(f"/projects/{project_id}", headers=carol_headers)
        assert outsider.status_code == 403
        assert outsider.json()["error"]["code"] == "E_FORBIDDEN"

        client.delete(f"/chats/{chat_id}/participants/{bob_id}", headers=alice_headers)
        assert client.get(f"/projects/{project_id}", headers=bob_headers).status_code == 403
        assert client.get(f"/projects/{project_id}", headers=alice_headers).status_code == 200

    def test_unknown_project(self, client: TestClient, alice):
        _, alice_headers = alice

        response = client.get(f"/projects/{uuid4()}", headers=alice_headers)

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_PROJECT_NOT_FOUND"

    def test_progress_snapshot_field(self, client: TestClient, alice, project_chat):
        _, alice_headers = alice
        project_id, chat_id = project_chat

        response = client.post(
            f"/chats/{chat_id}/messages",
            data={
                "content": "halfway",
                "project_progress": json.dumps(
                    {"project_id": project_id, "completion_percentage": 50}
                ),
            },
            headers=alice_headers,
        )

        assert response.status_code == 201
        assert response.json()["data"]["project_progress"]["completion_percentage"] == 50

    def test_progress_snapshot_out_of_range(self, client: TestClient, alice, project_chat):
        _, alice_headers = alice
        project_id, chat_id = project_chat

        response = client.post(
            f"/chats/{chat_id}/messages",
            data={
                "content": "done?",
                "project_progress": json.dumps(
                    {"project_id": project_id, "completion_percentage": 140}
                ),
            },
            headers=alice_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_PERCENTAGE"


class TestModuleSubmissionRoute:
    def test_complete_submission(self, client: TestClient, bob, project_chat):
        _, bob_headers = bob
        project_id, chat_id = project_chat

        response = client.post(
            f"/projects/{project_id}/modules",
            data={"title": "Lexer", "completion_percentage": "80"},
            files=[("files", ("lexer.py", b"import re\n", "text/x-python"))],
            headers=bob_headers,
        )

        assert response.status_code == 201
        body = response.json()["data"]
        assert body["status"] == "complete"
        assert body["project"]["completion_percentage"] == 80
        assert body["chat_message"]["chat_id"] == chat_id
        assert body["chat_message"]["project_progress"]["completion_percentage"] == 80
        assert body["chat_message"]["attachments"][0]["module_data"]["title"] == "Lexer"

        project = client.get(f"/projects/{project_id}", headers=bob_headers).json()["data"]
        assert project["completion_percentage"] == 80
        assert project["module_count"] == 1

    def test_partial_submission_without_chat(self, client: TestClient, alice):
        _, alice_headers = alice
        project_id = client.post(
            "/projects", json={"name": "Solo"}, headers=alice_headers
        ).json()["data"]["id"]

        response = client.post(
            f"/projects/{project_id}/modules",
            data={"title": "Lexer", "completion_percentage": "10"},
            headers=alice_headers,
        )

        assert response.status_code == 201
        body = response.json()["data"]
        assert body["status"] == "partial"
        assert body["chat_message"] is None
        assert body["chat_error"] == "E_CHAT_NOT_FOUND"
        assert body["project"]["completion_percentage"] == 10

    def test_out_of_range_percentage(self, client: TestClient, alice, project_chat):
        _, alice_headers = alice
        project_id, _ = project_chat

        response = client.post(
            f"/projects/{project_id}/modules",
            data={"title": "Lexer", "completion_percentage": "101"},
            headers=alice_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_PERCENTAGE"

    def test_blank_project_name_rejected(self, client: TestClient, alice):
        _, alice_headers = alice

        response = client.post("/projects", json={"name": "   "}, headers=alice_headers)

        assert response.status_code == 400
