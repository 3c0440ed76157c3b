"""Resolution of the canonical channel shared by two users."""

from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import ForbiddenError, InvalidRequestError, NotFoundError
from app.models import Channel, ChannelMember, User, canonical_pair_key

logger = logging.getLogger(__name__)

_CREATE_ATTEMPTS = 3


def find_channel(db: Session, user_id: int, other_id: int) -> str | None:
    """Return the id of the channel whose members are exactly the two users."""

    pair_members = (
        select(ChannelMember.channel_id)
        .where(ChannelMember.user_id.in_([user_id, other_id]))
        .group_by(ChannelMember.channel_id)
        .having(func.count(ChannelMember.user_id) == 2)
    )
    # Exclude group channels that happen to contain both users.
    total_members = (
        select(ChannelMember.channel_id)
        .where(ChannelMember.channel_id.in_(pair_members))
        .group_by(ChannelMember.channel_id)
        .having(func.count(ChannelMember.user_id) == 2)
        .order_by(ChannelMember.channel_id)
        .limit(1)
    )
    return db.execute(total_members).scalar_one_or_none()


def get_or_create_channel(db: Session, requester_id: int, counterpart_id: int) -> str:
    """Find or create the single direct channel for an unordered pair of users.

    Creation commits immediately. When two requests race, the loser hits the
    unique ``pair_key`` constraint, rolls back and picks up the winner's row.
    """

    if requester_id == counterpart_id:
        raise InvalidRequestError("Cannot open a conversation with yourself")

    for attempt in range(1, _CREATE_ATTEMPTS + 1):
        channel_id = find_channel(db, requester_id, counterpart_id)
        if channel_id is not None:
            return channel_id

        channel = Channel(pair_key=canonical_pair_key(requester_id, counterpart_id))
        channel.members = [
            ChannelMember(user_id=requester_id),
            ChannelMember(user_id=counterpart_id),
        ]
        db.add(channel)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(
                "Concurrent channel creation detected; reloading",
                extra={"pair": canonical_pair_key(requester_id, counterpart_id), "attempt": attempt},
            )
            continue
        logger.info(
            "Created direct channel",
            extra={"channel_id": channel.id, "pair": channel.pair_key},
        )
        return channel.id

    raise RuntimeError("Direct channel could not be resolved after concurrent creation")


def list_channel_member_ids(db: Session, channel_id: str) -> list[int]:
    stmt = (
        select(ChannelMember.user_id)
        .where(ChannelMember.channel_id == channel_id)
        .order_by(ChannelMember.user_id)
    )
    return list(db.execute(stmt).scalars())


def require_membership(db: Session, channel_id: str, user_id: int) -> list[int]:
    """Ensure ``user_id`` belongs to the channel and return all member ids."""

    if db.get(Channel, channel_id) is None:
        raise NotFoundError("Channel not found")
    member_ids = list_channel_member_ids(db, channel_id)
    if user_id not in member_ids:
        raise ForbiddenError("Not a member of this conversation")
    return member_ids


def get_counterpart(db: Session, channel_id: str, viewer_id: int) -> User | None:
    """The other participant of a direct channel."""

    stmt = (
        select(User)
        .join(ChannelMember, ChannelMember.user_id == User.id)
        .where(ChannelMember.channel_id == channel_id, User.id != viewer_id)
        .order_by(User.id)
        .limit(1)
    )
    return db.execute(stmt).scalar_one_or_none()


def list_user_channel_ids(db: Session, user_id: int) -> list[str]:
    stmt = select(ChannelMember.channel_id).where(ChannelMember.user_id == user_id)
    return list(db.execute(stmt).scalars())
