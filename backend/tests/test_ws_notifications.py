from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from app.api import ws as ws_module
from app.core.security import issue_access_token
from app.models import User


def _create_user(session_factory, name: str) -> int:
    with session_factory() as session:
        user = User(name=name, email=f"{name.lower()}@example.com", hashed_password="hashed")
        session.add(user)
        session.commit()
        return user.id


def _headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_access_token(user_id).token}"}


def test_connection_requires_token(client: TestClient) -> None:
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/notifications"):
            pass


def test_subscribed_socket_receives_new_messages(client: TestClient, session_factory) -> None:
    alice_id = _create_user(session_factory, "Alice")
    bob_id = _create_user(session_factory, "Bob")
    token = issue_access_token(bob_id).token

    channel_id = client.post(
        "/api/chat/channels", json={"user_id": bob_id}, headers=_headers(alice_id)
    ).json()["channel_id"]

    with client.websocket_connect(f"/ws/notifications?token={token}") as connection:
        hello = connection.receive_json()
        assert hello["type"] == "connection_established"
        socket_id = hello["socket_id"]

        channel = f"private-chat.{bob_id}"
        grant = client.post(
            "/api/chat/auth",
            json={"channel_name": channel, "socket_id": socket_id},
            headers=_headers(bob_id),
        ).json()

        connection.send_json({"type": "subscribe", "channel": channel, **grant})
        assert connection.receive_json() == {"type": "subscription_succeeded", "channel": channel}

        client.post(
            "/api/chat/messages",
            data={"channel_id": channel_id, "message": "Hi Bob"},
            headers=_headers(alice_id),
        )
        event = connection.receive_json()
        assert event["type"] == "event"
        assert event["event"] == "messaging"
        assert event["data"]["from_id"] == alice_id
        assert event["data"]["message"]["message"] == "Hi Bob"
        assert event["data"]["message"]["isSender"] is False


def test_subscription_with_forged_grant_is_rejected(client: TestClient, session_factory) -> None:
    alice_id = _create_user(session_factory, "Alice")
    bob_id = _create_user(session_factory, "Bob")
    token = issue_access_token(alice_id).token

    with client.websocket_connect(f"/ws/notifications?token={token}") as connection:
        socket_id = connection.receive_json()["socket_id"]
        # A grant Alice obtained for her own channel cannot open Bob's.
        grant = client.post(
            "/api/chat/auth",
            json={"channel_name": f"private-chat.{alice_id}", "socket_id": socket_id},
            headers=_headers(alice_id),
        ).json()
        connection.send_json({"type": "subscribe", "channel": f"private-chat.{bob_id}", **grant})
        error = connection.receive_json()

    assert error["type"] == "error"
    assert error["status"] == 403


def test_idle_connection_receives_keepalive_pings(client: TestClient, session_factory) -> None:
    user_id = _create_user(session_factory, "Idle")
    token = issue_access_token(user_id).token

    settings = ws_module.settings
    original_timeout = settings.websocket_receive_timeout_seconds
    settings.websocket_receive_timeout_seconds = 0.3
    try:
        with client.websocket_connect(f"/ws/notifications?token={token}") as connection:
            assert connection.receive_json()["type"] == "connection_established"
            time.sleep(0.4)
            assert connection.receive_json()["type"] == "ping"
            connection.send_json({"type": "pong"})

            connection.send_json({"type": "ping"})
            assert connection.receive_json()["type"] == "pong"
    finally:
        settings.websocket_receive_timeout_seconds = original_timeout
