"""Metric definitions for chat traffic and realtime delivery."""

from __future__ import annotations

from .registry import registry


chat_messages_created_total = registry.counter(
    "chat_messages_created_total",
    "Number of messages stored, by content kind.",
    label_names=("kind",),
)

chat_messages_deleted_total = registry.counter(
    "chat_messages_deleted_total",
    "Number of messages deleted, by deletion scope.",
    label_names=("scope",),
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events handled by the pub/sub gateway.",
    label_names=("event", "direction"),
)

realtime_publish_errors_total = registry.counter(
    "realtime_publish_errors_total",
    "Realtime publishes that failed or timed out.",
    label_names=("event", "reason"),
)

subscription_auth_total = registry.counter(
    "subscription_auth_total",
    "Private channel subscription authorization attempts.",
    label_names=("result",),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of websocket connections handled by this node.",
)

realtime_transport_restarts_total = registry.counter(
    "realtime_transport_restarts_total",
    "Broker subscription listeners restarted after a failure.",
    label_names=("backend", "reason"),
)
