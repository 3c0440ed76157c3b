"""Tests for private channel subscription grants."""

from __future__ import annotations

import hashlib
import hmac
import json

import pytest

from app.core.errors import ForbiddenError, InvalidRequestError, UnauthenticatedError
from app.core.identity import ANONYMOUS, Identity
from app.monitoring.metrics import subscription_auth_total
from parley.realtime.auth import SubscriptionAuthorizer


@pytest.fixture()
def authorizer() -> SubscriptionAuthorizer:
    return SubscriptionAuthorizer(key="app-key", secret="app-secret", prefix="private-chat")


def test_grant_for_own_channel(authorizer):
    identity = Identity(id=7, name="Alice")
    channel = authorizer.channel_for(7)

    grant = authorizer.authorize(identity, 7, channel, "123.456")

    assert channel == "private-chat.7"
    assert json.loads(grant.channel_data) == {"user_id": 7, "user_info": {"name": "Alice"}}
    expected = hmac.new(
        b"app-secret",
        f"123.456:private-chat.7:{grant.channel_data}".encode(),
        hashlib.sha256,
    ).hexdigest()
    assert grant.auth == f"app-key:{expected}"
    assert authorizer.verify(grant.auth, "123.456", channel, grant.channel_data)
    assert subscription_auth_total.value(result="granted") == 1


def test_grant_is_bound_to_socket_and_channel(authorizer):
    grant = authorizer.authorize(Identity(id=7, name="Alice"), 7, "private-chat.7", "1.1")

    assert not authorizer.verify(grant.auth, "2.2", "private-chat.7", grant.channel_data)
    assert not authorizer.verify(grant.auth, "1.1", "private-chat.8", grant.channel_data)
    assert not authorizer.verify(grant.auth, "1.1", "private-chat.7", '{"user_id":8}')
    assert not authorizer.verify("other-key:" + grant.auth.split(":", 1)[1], "1.1", "private-chat.7", grant.channel_data)


def test_cannot_subscribe_to_another_users_channel(authorizer):
    with pytest.raises(ForbiddenError):
        authorizer.authorize(Identity(id=7, name="Alice"), 8, "private-chat.8", "1.1")
    # Owner id and channel name must agree as well.
    with pytest.raises(ForbiddenError):
        authorizer.authorize(Identity(id=7, name="Alice"), 7, "private-chat.8", "1.1")
    with pytest.raises(ForbiddenError):
        authorizer.authorize(Identity(id=7, name="Alice"), None, "presence-room", "1.1")
    assert subscription_auth_total.value(result="forbidden") == 3


def test_unauthenticated_is_distinct_from_forbidden(authorizer):
    with pytest.raises(UnauthenticatedError) as exc:
        authorizer.authorize(ANONYMOUS, 7, "private-chat.7", "1.1")

    assert exc.value.status_code == 401
    assert ForbiddenError.status_code == 403
    assert subscription_auth_total.value(result="unauthenticated") == 1


def test_socket_id_is_required(authorizer):
    with pytest.raises(InvalidRequestError):
        authorizer.authorize(Identity(id=7, name="Alice"), 7, "private-chat.7", "")


@pytest.mark.parametrize(
    ("channel", "owner"),
    [
        ("private-chat.12", 12),
        ("private-chat.abc", None),
        ("presence-chat.12", None),
        ("private-chat.", None),
        ("12", None),
    ],
)
def test_owner_of(authorizer, channel, owner):
    assert authorizer.owner_of(channel) == owner


def test_empty_secret_is_rejected():
    with pytest.raises(ValueError):
        SubscriptionAuthorizer(key="k", secret="")
