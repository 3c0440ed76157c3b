"""Realtime helpers for distributed websocket delivery."""

from .auth import SubscriptionAuthorizer, SubscriptionGrant  # noqa: F401
from .managers import (  # noqa: F401
    ConnectionManager,
    PubSubGateway,
    get_authorizer,
    get_connection_manager,
    get_gateway,
    shutdown_realtime,
    startup_realtime,
)
from .transport import BrokerConfig, BrokerUnavailableError, RedisTransport  # noqa: F401

__all__ = [
    "BrokerConfig",
    "BrokerUnavailableError",
    "RedisTransport",
    "SubscriptionAuthorizer",
    "SubscriptionGrant",
    "ConnectionManager",
    "PubSubGateway",
    "startup_realtime",
    "shutdown_realtime",
    "get_connection_manager",
    "get_gateway",
    "get_authorizer",
]
