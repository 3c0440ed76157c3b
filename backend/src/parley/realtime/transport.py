"""Redis pub/sub transport used to fan realtime events out across nodes."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

from app.monitoring.metrics import realtime_transport_restarts_total


logger = logging.getLogger(__name__)

_BROKER_ERRORS: tuple[type[BaseException], ...] = (
    RedisError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    OSError,
)

_RECOVERY_BASE_DELAY = 0.5
_RECOVERY_MAX_DELAY = 30.0

MessageHandler = Callable[[dict[str, Any]], Awaitable[None]]


@dataclass(slots=True)
class BrokerConfig:
    """Connection settings for the broker."""

    redis_url: str | None
    prefix: str = "parley.realtime"
    node_id: str | None = None


class BrokerUnavailableError(RuntimeError):
    """Raised when the broker is not configured or cannot be reached."""


class Subscription:
    """Handle returned when subscribing to a broker topic."""

    def __init__(
        self,
        name: str,
        cleanup: Callable[[], Awaitable[None]],
    ) -> None:
        self._name = name
        self._cleanup = cleanup

    @property
    def name(self) -> str:
        return self._name

    async def close(self) -> None:
        await self._cleanup()


@dataclass(slots=True)
class _ListenerState:
    topic: str
    channel: str
    handler: MessageHandler
    task: asyncio.Task[Any] | None = None
    pubsub: Any | None = None
    active: bool = True
    suspending: bool = False


class RedisTransport:
    """JSON pub/sub on Redis with automatic listener recovery."""

    def __init__(self, config: BrokerConfig) -> None:
        self._config = config
        self._redis: redis_asyncio.Redis | None = None
        self._listeners: list[_ListenerState] = []
        self._recovery_lock = asyncio.Lock()
        self._recovery_task: asyncio.Task[Any] | None = None

    @property
    def node_id(self) -> str | None:
        return self._config.node_id

    @property
    def configured(self) -> bool:
        return bool(self._config.redis_url)

    @property
    def connected(self) -> bool:
        return self._redis is not None

    async def start(self) -> None:
        if not self._config.redis_url or self._redis is not None:
            return
        client = redis_asyncio.from_url(
            self._config.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        try:
            await client.ping()
        except _BROKER_ERRORS as exc:
            logger.exception("Failed to connect to Redis realtime broker")
            with contextlib.suppress(Exception):
                await client.close()
            raise BrokerUnavailableError("Redis broker is unavailable") from exc
        self._redis = client

    async def stop(self) -> None:
        for state in list(self._listeners):
            await self._close_listener(state)
        if self._recovery_task is not None:
            self._recovery_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._recovery_task
            self._recovery_task = None
        if self._redis is not None:
            with contextlib.suppress(Exception):
                await self._redis.close()
            self._redis = None

    def channel_for(self, topic: str) -> str:
        prefix = self._config.prefix.rstrip(".")
        return f"{prefix}.{topic}" if prefix else topic

    async def _client(self) -> redis_asyncio.Redis:
        if self._redis is None:
            if not self._config.redis_url:
                raise BrokerUnavailableError("Redis broker is not configured")
            await self.start()
        assert self._redis is not None
        return self._redis

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        client = await self._client()
        channel = self.channel_for(topic)
        try:
            await client.publish(channel, json.dumps(payload))
        except _BROKER_ERRORS as exc:
            self._trigger_recovery("publish_failed")
            raise BrokerUnavailableError("Redis broker is unavailable") from exc
        logger.debug("Published realtime payload", extra={"channel": channel})

    async def subscribe(self, topic: str, handler: MessageHandler) -> Subscription:
        await self._client()
        state = _ListenerState(topic=topic, channel=self.channel_for(topic), handler=handler)
        self._listeners.append(state)
        try:
            await self._attach_listener(state)
        except BrokerUnavailableError:
            await self._close_listener(state)
            self._trigger_recovery("subscribe_failed")
            raise

        async def cleanup() -> None:
            await self._close_listener(state)

        return Subscription(state.channel, cleanup)

    # ------------------------------------------------------------------
    # Listener lifecycle
    # ------------------------------------------------------------------
    async def _attach_listener(self, state: _ListenerState) -> None:
        if self._redis is None:
            raise BrokerUnavailableError("Redis broker is not configured")
        pubsub = self._redis.pubsub()
        try:
            await pubsub.subscribe(state.channel)
        except _BROKER_ERRORS as exc:
            with contextlib.suppress(Exception):
                await pubsub.close()
            raise BrokerUnavailableError("Redis broker is unavailable") from exc
        state.pubsub = pubsub

        async def reader() -> None:
            try:
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    raw = message.get("data")
                    if not isinstance(raw, str):
                        continue
                    try:
                        payload = json.loads(raw)
                    except json.JSONDecodeError:
                        logger.warning("Discarded malformed realtime payload", extra={"channel": state.channel})
                        continue
                    if isinstance(payload, dict):
                        await state.handler(payload)
            finally:
                with contextlib.suppress(Exception):
                    await pubsub.unsubscribe(state.channel)
                with contextlib.suppress(Exception):
                    await pubsub.close()

        task = asyncio.create_task(reader(), name=f"realtime-redis-{state.channel}")
        state.task = task
        task.add_done_callback(lambda finished: self._on_listener_done(state, finished))

    async def _pause_listener(self, state: _ListenerState) -> None:
        state.suspending = True
        task = state.task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        state.task = None
        state.pubsub = None
        state.suspending = False

    async def _close_listener(self, state: _ListenerState) -> None:
        state.active = False
        await self._pause_listener(state)
        if state in self._listeners:
            self._listeners.remove(state)

    def _on_listener_done(self, state: _ListenerState, task: asyncio.Task[Any]) -> None:
        if task is not state.task and state.task is not None:
            return
        state.task = None
        state.pubsub = None
        if not state.active or state.suspending or task.cancelled():
            return
        exc = task.exception()
        logger.warning(
            "Redis listener stopped; scheduling recovery",
            exc_info=exc,
            extra={"channel": state.channel},
        )
        self._trigger_recovery("reader_stopped")

    def _trigger_recovery(self, reason: str) -> None:
        if not self._config.redis_url:
            return
        if self._recovery_task is not None and not self._recovery_task.done():
            return
        logger.info("Scheduling Redis realtime recovery", extra={"reason": reason})
        self._recovery_task = asyncio.create_task(
            self._recovery_runner(reason), name="realtime-redis-recovery"
        )

    async def _recovery_runner(self, reason: str) -> None:
        attempt = 0
        while True:
            await asyncio.sleep(min(_RECOVERY_BASE_DELAY * (2**attempt), _RECOVERY_MAX_DELAY))
            try:
                await self._restart(reason)
            except (BrokerUnavailableError, *_BROKER_ERRORS):
                attempt += 1
                logger.warning(
                    "Redis realtime recovery attempt failed",
                    exc_info=logger.isEnabledFor(logging.DEBUG),
                    extra={"attempt": attempt, "reason": reason},
                )
                continue
            break
        self._recovery_task = None

    async def _restart(self, reason: str) -> None:
        async with self._recovery_lock:
            for state in list(self._listeners):
                await self._pause_listener(state)
            if self._redis is not None:
                with contextlib.suppress(Exception):
                    await self._redis.close()
                self._redis = None
            await self.start()
            for state in [state for state in self._listeners if state.active]:
                await self._attach_listener(state)

        realtime_transport_restarts_total.labels("redis", reason).inc()
        logger.info(
            "Redis realtime broker recovered",
            extra={"reason": reason, "subscriptions": len(self._listeners)},
        )


EVENTS_TOPIC = "events"
