"""Integration tests exercising the chat API via FastAPI's TestClient."""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from app.core.errors import TransientIOError
from app.main import app
from parley.realtime.managers import get_gateway


def register_user(client: TestClient, name: str, password: str = "supersecret") -> dict[str, Any]:
    response = client.post(
        "/api/auth/register",
        json={"name": name, "email": f"{name.lower()}@example.com", "password": password},
    )
    assert response.status_code == 201, response.text
    return response.json()


def login_user(client: TestClient, name: str, password: str = "supersecret") -> str:
    response = client.post(
        "/api/auth/login",
        json={"email": f"{name.lower()}@example.com", "password": password},
    )
    assert response.status_code == 200, response.text
    return response.json()["access_token"]


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def people(client: TestClient) -> dict[str, dict[str, Any]]:
    result = {}
    for name in ("Alice", "Bob", "Carol"):
        user = register_user(client, name)
        result[name] = {"id": user["id"], "headers": auth_headers(login_user(client, name))}
    return result


@pytest.fixture()
def channel_id(client: TestClient, people) -> str:
    response = client.post(
        "/api/chat/channels",
        json={"user_id": people["Bob"]["id"]},
        headers=people["Alice"]["headers"],
    )
    assert response.status_code == 200, response.text
    return response.json()["channel_id"]


def test_register_rejects_duplicate_email(client: TestClient):
    register_user(client, "Dana")
    response = client.post(
        "/api/auth/register",
        json={"name": "Other", "email": "DANA@example.com", "password": "supersecret"},
    )
    assert response.status_code == 400


def test_current_user_exposes_private_channel(client: TestClient, people):
    response = client.get("/api/chat/me", headers=people["Alice"]["headers"])

    assert response.status_code == 200
    body = response.json()
    assert body["private_channel"] == f"private-chat.{people['Alice']['id']}"
    assert body["avatar_url"].startswith("https://www.gravatar.com/avatar/")


def test_open_channel_is_shared_by_both_participants(client: TestClient, people, channel_id):
    again = client.post(
        "/api/chat/channels",
        json={"user_id": people["Bob"]["id"]},
        headers=people["Alice"]["headers"],
    )
    reverse = client.post(
        "/api/chat/channels",
        json={"user_id": people["Alice"]["id"]},
        headers=people["Bob"]["headers"],
    )

    assert again.json()["channel_id"] == channel_id
    assert reverse.json()["channel_id"] == channel_id
    assert reverse.json()["user"]["id"] == people["Alice"]["id"]

    self_chat = client.post(
        "/api/chat/channels",
        json={"user_id": people["Alice"]["id"]},
        headers=people["Alice"]["headers"],
    )
    assert self_chat.status_code == 400
    missing = client.post(
        "/api/chat/channels", json={"user_id": 999}, headers=people["Alice"]["headers"]
    )
    assert missing.status_code == 404


def test_message_flow_with_seen_tracking(client: TestClient, people, channel_id):
    alice, bob = people["Alice"], people["Bob"]

    sent = client.post(
        "/api/chat/messages",
        data={"channel_id": channel_id, "message": "Hello Bob"},
        headers=alice["headers"],
    )
    assert sent.status_code == 201, sent.text
    assert sent.json()["isSender"] is True
    assert sent.json()["timeAgo"] == "just now"

    history = client.get(f"/api/chat/channels/{channel_id}/messages", headers=bob["headers"])
    assert history.status_code == 200
    page = history.json()
    assert page["total"] == 1
    assert page["items"][0]["message"] == "Hello Bob"
    assert page["items"][0]["isSender"] is False

    unseen = client.get(f"/api/chat/unseen/{alice['id']}", headers=bob["headers"])
    assert unseen.json()["unseen"] == 1

    contacts = client.get("/api/chat/contacts", headers=bob["headers"]).json()
    assert contacts[0]["channel_id"] == channel_id
    assert contacts[0]["unseen_counter"] == 1
    assert contacts[0]["user"]["id"] == alice["id"]

    seen = client.post("/api/chat/seen", json={"user_id": alice["id"]}, headers=bob["headers"])
    assert seen.json() == {"updated": 1}
    again = client.post("/api/chat/seen", json={"user_id": alice["id"]}, headers=bob["headers"])
    assert again.json() == {"updated": 0}
    unseen = client.get(f"/api/chat/unseen/{alice['id']}", headers=bob["headers"])
    assert unseen.json()["unseen"] == 0


def test_401_and_403_are_distinct(client: TestClient, people, channel_id):
    anonymous = client.post("/api/chat/messages", data={"channel_id": channel_id, "message": "hi"})
    assert anonymous.status_code == 401

    outsider = client.post(
        "/api/chat/messages",
        data={"channel_id": channel_id, "message": "hi"},
        headers=people["Carol"]["headers"],
    )
    assert outsider.status_code == 403

    history = client.get(
        f"/api/chat/channels/{channel_id}/messages", headers=people["Carol"]["headers"]
    )
    assert history.status_code == 403

    unknown = client.get("/api/chat/channels/unknown/messages", headers=people["Alice"]["headers"])
    assert unknown.status_code == 404


def test_attachments_shared_photos_and_deletion(client: TestClient, people, channel_id, blob_store):
    alice, bob = people["Alice"], people["Bob"]

    sent = client.post(
        "/api/chat/messages",
        data={"channel_id": channel_id},
        files={"file": ("Beach <1>.PNG", b"\x89PNG-bytes", "image/png")},
        headers=alice["headers"],
    )
    assert sent.status_code == 201, sent.text
    message = sent.json()
    stored_name = message["attachment"]["file"]
    assert stored_name.endswith(".png")
    assert message["attachment"]["type"] == "image"
    assert message["attachment"]["title"] == "Beach &lt;1&gt;.PNG"

    shared = client.get(f"/api/chat/channels/{channel_id}/shared", headers=bob["headers"]).json()
    assert shared == [{"file": stored_name, "url": f"/storage/attachments/{stored_name}"}]

    details = client.get(f"/api/chat/channels/{channel_id}", headers=bob["headers"]).json()
    assert details["user"]["id"] == alice["id"]
    assert len(details["shared_photos"]) == 1

    download = client.get(f"/api/chat/attachments/{stored_name}", headers=bob["headers"])
    assert download.status_code == 200
    assert download.content == b"\x89PNG-bytes"

    forbidden = client.delete(f"/api/chat/messages/{message['id']}", headers=bob["headers"])
    assert forbidden.status_code == 403

    deleted = client.delete(f"/api/chat/messages/{message['id']}", headers=alice["headers"])
    assert deleted.json() == {"deleted": True}
    assert not (blob_store.root / "attachments" / stored_name).exists()

    gone = client.delete(f"/api/chat/messages/{message['id']}", headers=alice["headers"])
    assert gone.status_code == 404
    missing_file = client.get(f"/api/chat/attachments/{stored_name}", headers=bob["headers"])
    assert missing_file.status_code == 404


def test_failed_send_removes_uploaded_file(client: TestClient, people, channel_id, blob_store, monkeypatch):
    def failing_create_message(db, **kwargs):
        raise TransientIOError("Could not store message")

    monkeypatch.setattr("app.api.chat.create_message", failing_create_message)

    response = client.post(
        "/api/chat/messages",
        data={"channel_id": channel_id, "message": "see attached"},
        files={"file": ("notes.txt", b"draft", "text/plain")},
        headers=people["Alice"]["headers"],
    )

    assert response.status_code == 503
    attachments_dir = blob_store.root / "attachments"
    assert not attachments_dir.exists() or list(attachments_dir.iterdir()) == []

    history = client.get(f"/api/chat/channels/{channel_id}/messages", headers=people["Bob"]["headers"])
    assert history.json()["total"] == 0


def test_disallowed_upload_is_rejected(client: TestClient, people, channel_id):
    response = client.post(
        "/api/chat/messages",
        data={"channel_id": channel_id},
        files={"file": ("run.exe", b"MZ", "application/octet-stream")},
        headers=people["Alice"]["headers"],
    )
    assert response.status_code == 400


def test_favorites_and_conversation_deletion(client: TestClient, people, channel_id):
    alice = people["Alice"]

    starred = client.post(
        "/api/chat/favorites", json={"channel_id": channel_id, "star": True}, headers=alice["headers"]
    )
    assert starred.json() == {"channel_id": channel_id, "favorite": True, "changed": True}
    repeated = client.post(
        "/api/chat/favorites", json={"channel_id": channel_id, "star": True}, headers=alice["headers"]
    )
    assert repeated.json()["changed"] is False

    favorites = client.get("/api/chat/favorites", headers=alice["headers"]).json()
    assert [item["channel_id"] for item in favorites] == [channel_id]
    assert favorites[0]["favorite"] is True

    for text in ("one", "two"):
        client.post(
            "/api/chat/messages",
            data={"channel_id": channel_id, "message": text},
            headers=alice["headers"],
        )
    cleared = client.delete(f"/api/chat/channels/{channel_id}/messages", headers=people["Bob"]["headers"])
    assert cleared.json() == {"deleted": True}

    history = client.get(f"/api/chat/channels/{channel_id}/messages", headers=alice["headers"]).json()
    assert history["total"] == 0


def test_subscription_auth_endpoint(client: TestClient, people):
    alice, bob = people["Alice"], people["Bob"]

    granted = client.post(
        "/api/chat/auth",
        json={"channel_name": f"private-chat.{alice['id']}", "socket_id": "1.2"},
        headers=alice["headers"],
    )
    assert granted.status_code == 200
    assert set(granted.json()) == {"auth", "channel_data"}

    other = client.post(
        "/api/chat/auth",
        json={"channel_name": f"private-chat.{bob['id']}", "socket_id": "1.2"},
        headers=alice["headers"],
    )
    assert other.status_code == 403

    anonymous = client.post(
        "/api/chat/auth",
        json={"channel_name": f"private-chat.{alice['id']}", "socket_id": "1.2"},
    )
    assert anonymous.status_code == 401


class RecordingGateway:
    def __init__(self) -> None:
        self.published: list[tuple[str, str, dict[str, Any]]] = []

    async def publish(self, channel: str, event: str, data: dict[str, Any] | None = None) -> bool:
        self.published.append((channel, event, data or {}))
        return True


def test_send_notifies_counterpart_with_their_view(client: TestClient, people, channel_id):
    recorder = RecordingGateway()
    app.dependency_overrides[get_gateway] = lambda: recorder
    alice, bob = people["Alice"], people["Bob"]

    sent = client.post(
        "/api/chat/messages",
        data={"channel_id": channel_id, "message": "hi Bob"},
        headers=alice["headers"],
    )

    assert sent.status_code == 201, sent.text
    assert sent.json()["isSender"] is True
    assert len(recorder.published) == 1
    channel, event, data = recorder.published[0]
    assert channel == f"private-chat.{bob['id']}"
    assert event == "messaging"
    assert data["from_id"] == alice["id"]
    assert data["to_channel_id"] == channel_id
    assert data["message"]["isSender"] is False
    assert data["message"]["message"] == "hi Bob"
