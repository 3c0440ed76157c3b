"""Websocket fan-out and cross-node publishing of chat events."""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Any, Dict, Set

from fastapi.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from app.config import get_settings
from app.monitoring.metrics import (
    realtime_connections,
    realtime_events_total,
    realtime_publish_errors_total,
)

from .auth import SubscriptionAuthorizer
from .transport import (
    EVENTS_TOPIC,
    BrokerConfig,
    BrokerUnavailableError,
    RedisTransport,
    Subscription,
)


logger = logging.getLogger(__name__)


async def safe_send_json(websocket: WebSocket, data: dict[str, Any]) -> bool:
    """Send JSON to a websocket, returning False when it is already gone."""

    if websocket.application_state != WebSocketState.CONNECTED:
        return False
    try:
        await websocket.send_json(data)
        return True
    except (WebSocketDisconnect, RuntimeError) as exc:
        logger.debug("Failed to send websocket message: %s", exc)
        return False


class ConnectionManager:
    """Track websockets subscribed to each named channel on this node."""

    def __init__(self) -> None:
        self._channels: Dict[str, Set[WebSocket]] = defaultdict(set)
        self._sockets: Dict[WebSocket, Set[str]] = {}
        self._lock = asyncio.Lock()

    async def register(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket not in self._sockets:
                self._sockets[websocket] = set()
                realtime_connections.inc()

    async def unregister(self, websocket: WebSocket) -> None:
        async with self._lock:
            channels = self._sockets.pop(websocket, None)
            if channels is None:
                return
            for channel in channels:
                self._discard(channel, websocket)
            realtime_connections.dec()

    async def subscribe(self, channel: str, websocket: WebSocket) -> None:
        async with self._lock:
            self._sockets.setdefault(websocket, set()).add(channel)
            self._channels[channel].add(websocket)

    async def unsubscribe(self, channel: str, websocket: WebSocket) -> None:
        async with self._lock:
            channels = self._sockets.get(websocket)
            if channels is not None:
                channels.discard(channel)
            self._discard(channel, websocket)

    def _discard(self, channel: str, websocket: WebSocket) -> None:
        bucket = self._channels.get(channel)
        if bucket is None:
            return
        bucket.discard(websocket)
        if not bucket:
            self._channels.pop(channel, None)

    def subscribers(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    async def broadcast(self, channel: str, payload: dict[str, Any]) -> int:
        """Send ``payload`` to every local subscriber; returns the delivery count."""

        delivered = 0
        for websocket in list(self._channels.get(channel, ())):
            if await safe_send_json(websocket, payload):
                delivered += 1
        return delivered


class PubSubGateway:
    """Best-effort event publishing to named channels across the cluster."""

    def __init__(
        self,
        connections: ConnectionManager,
        transport: RedisTransport,
        *,
        node_id: str,
        publish_timeout: float,
    ) -> None:
        self._connections = connections
        self._transport = transport
        self._node_id = node_id
        self._publish_timeout = publish_timeout
        self._subscription: Subscription | None = None
        self._publish_warning_logged = False

    @property
    def node_id(self) -> str:
        return self._node_id

    @staticmethod
    def _client_payload(envelope: dict[str, Any]) -> dict[str, Any]:
        return {
            "type": "event",
            "channel": envelope["channel"],
            "event": envelope["event"],
            "data": envelope.get("data"),
        }

    async def start(self) -> None:
        async def handle(envelope: dict[str, Any]) -> None:
            if envelope.get("origin") == self._node_id:
                return
            channel = envelope.get("channel")
            event = envelope.get("event")
            if not isinstance(channel, str) or not isinstance(event, str):
                return
            await self._connections.broadcast(channel, self._client_payload(envelope))
            realtime_events_total.labels(event, "in").inc()

        if not self._transport.configured:
            return
        try:
            self._subscription = await self._transport.subscribe(EVENTS_TOPIC, handle)
        except BrokerUnavailableError:
            logger.warning(
                "Realtime broker unavailable; events will only reach this instance",
                exc_info=logger.isEnabledFor(logging.DEBUG),
            )
            self._subscription = None

    async def stop(self) -> None:
        if self._subscription is not None:
            await self._subscription.close()
            self._subscription = None

    async def publish(self, channel: str, event: str, data: dict[str, Any] | None = None) -> bool:
        """Deliver an event locally and hand it to the broker.

        Returns ``False`` when the broker could not be reached in time; the
        failure is logged and counted but never raised.
        """

        envelope = {"channel": channel, "event": event, "data": data or {}, "origin": self._node_id}
        await self._connections.broadcast(channel, self._client_payload(envelope))
        if not self._transport.configured:
            realtime_events_total.labels(event, "local").inc()
            return True

        try:
            await asyncio.wait_for(
                self._transport.publish(EVENTS_TOPIC, envelope),
                timeout=self._publish_timeout,
            )
        except asyncio.TimeoutError:
            return self._publish_failed(event, channel, "timeout")
        except BrokerUnavailableError:
            return self._publish_failed(event, channel, "unavailable")
        except Exception:
            realtime_publish_errors_total.labels(event, "error").inc()
            logger.exception("Unexpected error while publishing %s event", event, extra={"channel": channel})
            return False
        self._publish_warning_logged = False
        realtime_events_total.labels(event, "out").inc()
        return True

    def _publish_failed(self, event: str, channel: str, reason: str) -> bool:
        realtime_publish_errors_total.labels(event, reason).inc()
        if not self._publish_warning_logged:
            logger.warning(
                "Realtime broker %s while publishing %s event; delivered locally only",
                reason,
                event,
                extra={"channel": channel},
            )
            self._publish_warning_logged = True
        return False


settings = get_settings()

_node_id = settings.realtime_node_id or uuid.uuid4().hex

transport = RedisTransport(
    BrokerConfig(
        redis_url=settings.realtime_redis_url,
        prefix=settings.realtime_namespace,
        node_id=_node_id,
    )
)

connection_manager = ConnectionManager()
gateway = PubSubGateway(
    connection_manager,
    transport,
    node_id=_node_id,
    publish_timeout=settings.realtime_publish_timeout_seconds,
)
authorizer = SubscriptionAuthorizer(
    key=settings.broker_key,
    secret=settings.broker_secret,
    prefix=settings.private_channel_prefix,
)


async def startup_realtime() -> None:
    if not transport.configured:
        logger.info("No realtime broker configured; running in single-node mode")
        return
    try:
        await transport.start()
    except BrokerUnavailableError:
        logger.warning(
            "Realtime broker unavailable during startup; continuing without cross-node sync",
            exc_info=logger.isEnabledFor(logging.DEBUG),
        )
        return
    await gateway.start()


async def shutdown_realtime() -> None:
    await gateway.stop()
    await transport.stop()


def get_connection_manager() -> ConnectionManager:
    return connection_manager


def get_gateway() -> PubSubGateway:
    return gateway


def get_authorizer() -> SubscriptionAuthorizer:
    return authorizer


__all__ = [
    "ConnectionManager",
    "PubSubGateway",
    "safe_send_json",
    "startup_realtime",
    "shutdown_realtime",
    "get_connection_manager",
    "get_gateway",
    "get_authorizer",
]
