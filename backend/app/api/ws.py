"""WebSocket endpoint delivering private chat notifications."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, Dict, TypeVar

from fastapi import APIRouter, WebSocket, status
from fastapi.websockets import WebSocketDisconnect, WebSocketState

from app.api.deps import get_user_from_token
from app.config import get_settings
from app.core.errors import UnauthenticatedError
from app.core.identity import Identity
from app.database import get_db_session
from parley.realtime.managers import get_authorizer, get_connection_manager, safe_send_json

router = APIRouter(prefix="/ws", tags=["ws"])

settings = get_settings()

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def iter_keepalive_messages(
    websocket: WebSocket,
    receiver: Callable[[], Awaitable[T]],
    *,
    timeout_seconds: float | int | None,
    ping_payload: Dict[str, Any] | None = None,
) -> AsyncIterator[T]:
    """Yield messages from *receiver*, pinging the client whenever it goes idle."""

    ping_payload = ping_payload or {"type": "ping"}
    timeout = float(timeout_seconds) if timeout_seconds else 0.0
    while True:
        try:
            if timeout > 0:
                message = await asyncio.wait_for(receiver(), timeout=timeout)
            else:
                message = await receiver()
        except asyncio.TimeoutError:
            if websocket.application_state != WebSocketState.CONNECTED:
                break
            if not await safe_send_json(websocket, ping_payload):
                break
            continue
        except (RuntimeError, WebSocketDisconnect):
            break
        else:
            yield message


async def _resolve_identity(websocket: WebSocket) -> Identity | None:
    token = websocket.query_params.get("token")
    if not token:
        auth_header = websocket.headers.get("Authorization")
        if auth_header and auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Missing token")
        return None

    try:
        with get_db_session() as db:
            return Identity.from_user(get_user_from_token(token, db))
    except UnauthenticatedError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return None


def _new_socket_id() -> str:
    return f"{secrets.randbelow(10**9)}.{secrets.randbelow(10**9)}"


async def _send_error(websocket: WebSocket, detail: str, **extra: Any) -> None:
    await safe_send_json(websocket, {"type": "error", "detail": detail, **extra})


@router.websocket("/notifications")
async def websocket_notifications(websocket: WebSocket) -> None:
    """Relay events published to the caller's private channel.

    After connecting, the client receives its ``socket_id``, obtains a grant
    from ``POST /api/chat/auth`` and sends ``{"type": "subscribe", "channel",
    "auth", "channel_data"}``.
    """

    identity = await _resolve_identity(websocket)
    if identity is None:
        return

    connections = get_connection_manager()
    authorizer = get_authorizer()
    socket_id = _new_socket_id()

    await websocket.accept()
    await connections.register(websocket)
    await safe_send_json(websocket, {"type": "connection_established", "socket_id": socket_id})

    try:
        async for raw_message in iter_keepalive_messages(
            websocket,
            websocket.receive_text,
            timeout_seconds=settings.websocket_receive_timeout_seconds,
        ):
            try:
                payload = json.loads(raw_message)
            except json.JSONDecodeError:
                await _send_error(websocket, "Invalid payload")
                continue
            if not isinstance(payload, dict):
                await _send_error(websocket, "Invalid payload")
                continue

            action = payload.get("type")
            if action == "pong":
                continue
            if action == "ping":
                await safe_send_json(websocket, {"type": "pong"})
            elif action == "subscribe":
                channel = str(payload.get("channel") or "")
                granted = authorizer.owner_of(channel) == identity.id and authorizer.verify(
                    str(payload.get("auth") or ""),
                    socket_id,
                    channel,
                    str(payload.get("channel_data") or ""),
                )
                if not granted:
                    logger.info(
                        "Rejected websocket subscription",
                        extra={"user_id": identity.id, "channel": channel},
                    )
                    await _send_error(
                        websocket,
                        "Subscription not authorized",
                        channel=channel,
                        status=status.HTTP_403_FORBIDDEN,
                    )
                    continue
                await connections.subscribe(channel, websocket)
                await safe_send_json(websocket, {"type": "subscription_succeeded", "channel": channel})
            elif action == "unsubscribe":
                await connections.unsubscribe(str(payload.get("channel") or ""), websocket)
            else:
                await _send_error(websocket, "Unsupported message type")
    finally:
        await connections.unregister(websocket)
