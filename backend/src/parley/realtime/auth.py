"""Authorization of private channel subscriptions.

A grant follows the Pusher private/presence channel scheme: the ``auth``
string is ``"<key>:<signature>"`` where the signature is the hex
HMAC-SHA256 of ``"<socket_id>:<channel_name>:<channel_data>"``.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass

from app.core.errors import ForbiddenError, InvalidRequestError, UnauthenticatedError
from app.core.identity import Identity
from app.monitoring.metrics import subscription_auth_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubscriptionGrant:
    auth: str
    channel_data: str

    def as_dict(self) -> dict[str, str]:
        return {"auth": self.auth, "channel_data": self.channel_data}


class SubscriptionAuthorizer:
    """Signs subscriptions to a user's own ``<prefix>.<user_id>`` channel."""

    def __init__(self, *, key: str, secret: str, prefix: str = "private-chat") -> None:
        if not secret:
            raise ValueError("Broker secret must not be empty")
        self._key = key
        self._secret = secret.encode("utf-8")
        self._prefix = prefix.rstrip(".")

    def channel_for(self, user_id: int) -> str:
        return f"{self._prefix}.{user_id}"

    def owner_of(self, channel_name: str) -> int | None:
        """User id encoded in a private channel name, or ``None``."""

        head, sep, tail = channel_name.rpartition(".")
        if not sep or head != self._prefix or not tail.isdigit():
            return None
        return int(tail)

    def _sign(self, socket_id: str, channel_name: str, channel_data: str) -> str:
        message = f"{socket_id}:{channel_name}:{channel_data}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def authorize(
        self, identity: Identity, owner_id: int | None, channel_name: str, socket_id: str
    ) -> SubscriptionGrant:
        """Grant a subscription to ``channel_name`` scoped to ``owner_id``."""

        if not identity.authenticated:
            subscription_auth_total.labels("unauthenticated").inc()
            raise UnauthenticatedError()
        if not socket_id:
            subscription_auth_total.labels("invalid").inc()
            raise InvalidRequestError("socket_id is required")
        if (
            owner_id is None
            or owner_id != identity.id
            or channel_name != self.channel_for(owner_id)
        ):
            subscription_auth_total.labels("forbidden").inc()
            logger.info(
                "Rejected private channel subscription",
                extra={"user_id": identity.id, "channel": channel_name},
            )
            raise ForbiddenError("Cannot subscribe to another user's channel")

        channel_data = json.dumps(
            {"user_id": identity.id, "user_info": {"name": identity.name}},
            separators=(",", ":"),
        )
        signature = self._sign(socket_id, channel_name, channel_data)
        subscription_auth_total.labels("granted").inc()
        return SubscriptionGrant(auth=f"{self._key}:{signature}", channel_data=channel_data)

    def verify(self, grant_auth: str, socket_id: str, channel_name: str, channel_data: str) -> bool:
        key, sep, signature = grant_auth.partition(":")
        if not sep or key != self._key:
            return False
        expected = self._sign(socket_id, channel_name, channel_data)
        return hmac.compare_digest(expected, signature)
